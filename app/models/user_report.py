import uuid
from datetime import datetime

from app import db

OPEN_REPORT_STATUSES = ('pending', 'investigating')


class UserReport(db.Model):
    __tablename__ = 'user_reports'
    __table_args__ = (
        db.CheckConstraint(
            'reported_user_id IS NOT NULL OR content_id IS NOT NULL',
            name='ck_user_reports_has_target'),
    )

    id = db.Column(db.String(36), primary_key=True,
                   default=lambda: str(uuid.uuid4()))
    reporter_id = db.Column(db.String(36), nullable=False, index=True)
    reported_user_id = db.Column(db.String(36), index=True)
    content_id = db.Column(db.String(36), index=True)
    content_type = db.Column(db.String(20))
    # spam, harassment, hate_speech, violence, inappropriate_content,
    # fake_account, copyright, other
    report_type = db.Column(db.String(30), nullable=False)
    reason = db.Column(db.Text, nullable=False)
    evidence = db.Column(db.JSON, default=list)
    priority = db.Column(db.String(10), nullable=False, default='low')
    # pending, investigating, resolved, dismissed
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    resolved_at = db.Column(db.DateTime)
    resolved_by = db.Column(db.String(36))
    resolution = db.Column(db.Text)
    action = db.Column(db.String(30))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'reporter_id': self.reporter_id,
            'reported_user_id': self.reported_user_id,
            'content_id': self.content_id,
            'content_type': self.content_type,
            'report_type': self.report_type,
            'reason': self.reason,
            'evidence': self.evidence or [],
            'priority': self.priority,
            'status': self.status,
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
            'resolved_by': self.resolved_by,
            'resolution': self.resolution,
            'action': self.action,
            'created_at': self.created_at.isoformat()
        }

    def __repr__(self):
        return f'<UserReport {self.id} {self.report_type}>'
