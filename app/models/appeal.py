import uuid
from datetime import datetime

from app import db


class ModerationAppeal(db.Model):
    __tablename__ = 'moderation_appeals'

    id = db.Column(db.String(36), primary_key=True,
                   default=lambda: str(uuid.uuid4()))
    content_id = db.Column(db.String(36), nullable=False, index=True)
    content_type = db.Column(db.String(20), nullable=False)
    user_id = db.Column(db.String(36), nullable=False)
    appeal_reason = db.Column(db.Text, nullable=False)
    # pending, reviewing, approved, denied
    status = db.Column(db.String(20), nullable=False, default='pending')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'content_id': self.content_id,
            'content_type': self.content_type,
            'user_id': self.user_id,
            'appeal_reason': self.appeal_reason,
            'status': self.status,
            'created_at': self.created_at.isoformat()
        }

    def __repr__(self):
        return f'<ModerationAppeal {self.id}>'
