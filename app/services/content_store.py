"""
Content and user mutations triggered by moderation decisions.
Every operation is keyed by (content_id, content_type) or user_id and
returns False when the target is missing or the write failed.
"""
import logging
from datetime import datetime, timedelta

from app.services.database_service import db_service
from app.services.notifications.notification_service import notification_service

logger = logging.getLogger(__name__)

WARNING_TITLE = 'Community Guidelines Warning'
DEFAULT_WARNING = ('Your recent activity has been reported and reviewed. '
                   'Please ensure your content follows our community guidelines.')


class ContentStore:

    def __init__(self, database=None, notifier=None):
        self.db = database or db_service
        self.notifier = notifier or notification_service

    # Content mutations
    async def hide_content(self, content_id, content_type, reason='Auto-moderated'):
        return bool(await self.db.update_content(
            content_id, content_type, is_hidden=True, hidden_reason=reason))

    async def approve_content(self, content_id, content_type, approved_by):
        return bool(await self.db.update_content(
            content_id, content_type,
            is_approved=True, approved_by=approved_by, approved_at=datetime.utcnow()))

    async def reject_content(self, content_id, content_type, reason='Moderation review'):
        return bool(await self.db.update_content(
            content_id, content_type, is_approved=False, is_hidden=True, hidden_reason=reason))

    async def remove_content(self, content_id, content_type, removed_by):
        return bool(await self.db.update_content(
            content_id, content_type,
            is_removed=True, removed_by=removed_by, removed_at=datetime.utcnow()))

    # User mutations
    async def flag_user(self, user_id):
        return bool(await self.db.update_user_enforcement(user_id, increments={'moderation_flags': 1}))

    async def warn_user(self, user_id, message=DEFAULT_WARNING):
        updated = bool(await self.db.update_user_enforcement(user_id, increments={'warning_count': 1}))
        if updated:
            self.notifier.create_notification(
                user_id, 'system', WARNING_TITLE, message, priority='high')
        return updated

    async def suspend_user(self, user_id, days=7):
        return bool(await self.db.update_user_enforcement(
            user_id, is_suspended=True, suspended_until=datetime.utcnow() + timedelta(days=days)))

    async def ban_user(self, user_id):
        """Permanent ban"""
        return bool(await self.db.update_user_enforcement(
            user_id, is_banned=True, banned_at=datetime.utcnow(), ban_until=None))

    async def temporary_ban(self, user_id, hours=24):
        now = datetime.utcnow()
        return bool(await self.db.update_user_enforcement(
            user_id, is_banned=True, banned_at=now, ban_until=now + timedelta(hours=hours)))


content_store = ContentStore()
