import uuid
from datetime import datetime

from app import db


class Content(db.Model):
    """A piece of user-generated content, keyed by (id, content_type)"""
    __tablename__ = 'content'

    id = db.Column(db.String(36), primary_key=True,
                   default=lambda: str(uuid.uuid4()))
    # post, comment, image, profile, message
    content_type = db.Column(db.String(20), primary_key=True)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    body = db.Column(db.Text)
    image_urls = db.Column(db.JSON)
    meta_data = db.Column(db.JSON)
    # None until a reviewer or the pipeline decides
    is_approved = db.Column(db.Boolean)
    approved_by = db.Column(db.String(36))
    approved_at = db.Column(db.DateTime)
    is_hidden = db.Column(db.Boolean, default=False)
    hidden_reason = db.Column(db.String(255))
    is_removed = db.Column(db.Boolean, default=False)
    removed_by = db.Column(db.String(36))
    removed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'content_type': self.content_type,
            'user_id': self.user_id,
            'body': self.body,
            'image_urls': self.image_urls or [],
            'meta_data': self.meta_data,
            'is_approved': self.is_approved,
            'approved_by': self.approved_by,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'is_hidden': self.is_hidden,
            'hidden_reason': self.hidden_reason,
            'is_removed': self.is_removed,
            'removed_by': self.removed_by,
            'removed_at': self.removed_at.isoformat() if self.removed_at else None,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat()
        }

    def __repr__(self):
        return f'<Content {self.content_type}:{self.id}>'
