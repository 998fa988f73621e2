import uuid
from datetime import datetime

from app import db

OPEN_QUEUE_STATUSES = ('pending', 'in_review')
PRIORITY_ORDER = {'urgent': 1, 'high': 2, 'medium': 3, 'low': 4}


class ModerationQueueItem(db.Model):
    __tablename__ = 'moderation_queue'
    __table_args__ = (
        # At most one open item per piece of content
        db.Index(
            'uq_moderation_queue_open_content',
            'content_id', 'content_type',
            unique=True,
            sqlite_where=db.text("status IN ('pending', 'in_review')"),
            postgresql_where=db.text("status IN ('pending', 'in_review')"),
        ),
    )

    id = db.Column(db.String(36), primary_key=True,
                   default=lambda: str(uuid.uuid4()))
    content_id = db.Column(db.String(36), nullable=False)
    content_type = db.Column(db.String(20), nullable=False)
    user_id = db.Column(db.String(36), nullable=False)
    # low, medium, high, urgent
    priority = db.Column(db.String(10), nullable=False, default='medium')
    # pending, in_review, approved, rejected, escalated
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    flags = db.Column(db.JSON, default=list)
    reasons = db.Column(db.JSON, default=list)
    severity = db.Column(db.String(10), nullable=False, default='low')
    confidence = db.Column(db.Float, default=1.0)
    assigned_to = db.Column(db.String(36), index=True)
    assigned_at = db.Column(db.DateTime)
    reviewed_at = db.Column(db.DateTime)
    reviewed_by = db.Column(db.String(36))
    review_notes = db.Column(db.Text)
    escalation_reason = db.Column(db.Text)
    meta_data = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'content_id': self.content_id,
            'content_type': self.content_type,
            'user_id': self.user_id,
            'priority': self.priority,
            'status': self.status,
            'flags': self.flags or [],
            'reasons': self.reasons or [],
            'severity': self.severity,
            'confidence': self.confidence,
            'assigned_to': self.assigned_to,
            'assigned_at': self.assigned_at.isoformat() if self.assigned_at else None,
            'reviewed_at': self.reviewed_at.isoformat() if self.reviewed_at else None,
            'reviewed_by': self.reviewed_by,
            'review_notes': self.review_notes,
            'escalation_reason': self.escalation_reason,
            'metadata': self.meta_data or {},
            'created_at': self.created_at.isoformat()
        }

    def __repr__(self):
        return f'<ModerationQueueItem {self.id} {self.status}>'
