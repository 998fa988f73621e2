import uuid
from datetime import datetime

from app import db


class ModerationResultRecord(db.Model):
    """Append-only audit row, one per moderation run"""
    __tablename__ = 'moderation_results'
    __table_args__ = (
        db.Index('ix_moderation_results_content', 'content_id', 'content_type', 'created_at'),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    content_id = db.Column(db.String(36), nullable=False)
    content_type = db.Column(db.String(20), nullable=False)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    is_approved = db.Column(db.Boolean, nullable=False)
    confidence = db.Column(db.Float, nullable=False)  # 0.0 to 1.0
    flags = db.Column(db.JSON, default=list)
    reasons = db.Column(db.JSON, default=list)
    severity = db.Column(db.String(10), nullable=False)  # low, medium, high, critical
    requires_human_review = db.Column(db.Boolean, default=False)
    auto_actions = db.Column(db.JSON, default=list)
    processing_time_ms = db.Column(db.Integer)
    meta_data = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'content_id': self.content_id,
            'content_type': self.content_type,
            'user_id': self.user_id,
            'is_approved': self.is_approved,
            'confidence': self.confidence,
            'flags': self.flags or [],
            'reasons': self.reasons or [],
            'severity': self.severity,
            'requires_human_review': self.requires_human_review,
            'auto_actions': self.auto_actions or [],
            'processing_time_ms': self.processing_time_ms,
            'metadata': self.meta_data or {},
            'created_at': self.created_at.isoformat()
        }

    def __repr__(self):
        return f'<ModerationResultRecord {self.id}>'
