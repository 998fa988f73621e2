import secrets
import uuid
from datetime import datetime

from flask_login import UserMixin

from app import db


class User(UserMixin, db.Model):
    """Community member as seen by the moderation pipeline"""
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True,
                   default=lambda: str(uuid.uuid4()))
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True)
    api_key = db.Column(db.String(64), unique=True, index=True)
    # Authorization claims
    is_active = db.Column(db.Boolean, default=True)
    is_moderator = db.Column(db.Boolean, default=False)
    is_admin = db.Column(db.Boolean, default=False)
    # Enforcement state
    moderation_flags = db.Column(db.Integer, default=0)
    warning_count = db.Column(db.Integer, default=0)
    is_suspended = db.Column(db.Boolean, default=False)
    suspended_until = db.Column(db.DateTime)
    is_banned = db.Column(db.Boolean, default=False)
    banned_at = db.Column(db.DateTime)
    ban_until = db.Column(db.DateTime)
    # Profile signals used by behavior metrics
    followers_count = db.Column(db.Integer, default=0)
    engagement_rate = db.Column(db.Float, default=0.0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, **kwargs):
        super(User, self).__init__(**kwargs)
        if not self.api_key:
            self.api_key = self.generate_api_key()

    @staticmethod
    def generate_api_key():
        return f"mod_{secrets.token_urlsafe(32)}"

    @property
    def can_moderate(self):
        return bool(self.is_moderator or self.is_admin)

    def to_dict(self, include_api_key=False):
        data = {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'is_active': self.is_active,
            'is_moderator': self.is_moderator,
            'is_admin': self.is_admin,
            'moderation_flags': self.moderation_flags,
            'warning_count': self.warning_count,
            'is_suspended': self.is_suspended,
            'suspended_until': self.suspended_until.isoformat() if self.suspended_until else None,
            'is_banned': self.is_banned,
            'banned_at': self.banned_at.isoformat() if self.banned_at else None,
            'ban_until': self.ban_until.isoformat() if self.ban_until else None,
            'followers_count': self.followers_count,
            'engagement_rate': self.engagement_rate,
            'created_at': self.created_at.isoformat()
        }
        if include_api_key:
            data['api_key'] = self.api_key
        return data

    def __repr__(self):
        return f'<User {self.username}>'
