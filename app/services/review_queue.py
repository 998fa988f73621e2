"""
Human review queue.

Items move pending -> in_review -> approved | rejected | escalated. Only
pending and in_review are open, and the database allows one open item per
(content_id, content_type).
"""
import asyncio
import logging
import random
from datetime import datetime, timedelta

from flask import current_app, has_app_context

from app.services.content_store import content_store
from app.services.database_service import db_service
from app.services.error_tracker import error_tracker
from app.services.moderation.errors import PipelineError
from app.services.notifications.discord_notifier import DiscordNotifier
from app.services.notifications.notification_service import notification_service
from app.utils.time_utils import format_wait_time, truncate

logger = logging.getLogger(__name__)

PRIORITY_BY_SEVERITY = {
    'critical': 'urgent',
    'high': 'high',
    'medium': 'medium',
    'low': 'low',
}

REVIEW_DECISIONS = ('approved', 'rejected', 'escalated')
ALERT_PRIORITIES = ('high', 'urgent')
STATISTICS_WINDOW = timedelta(days=30)


def priority_for_severity(severity):
    return PRIORITY_BY_SEVERITY.get(str(getattr(severity, 'value', severity)), 'medium')


class ReviewQueue:

    def __init__(self, database=None, store=None, notifier=None, discord=None):
        self.db = database or db_service
        self.store = store or content_store
        self.notifier = notifier or notification_service
        self._discord = discord

    @property
    def discord(self):
        if self._discord is None and has_app_context():
            self._discord = DiscordNotifier(current_app.config.get('DISCORD_WEBHOOK_URL'))
        return self._discord

    async def add_to_queue(self, content_id, content_type, user_id, flags=None, reasons=None,
                           severity='low', confidence=1.0, priority=None, metadata=None,
                           auto_assign=True):
        """
        Queue content for human review.

        Returns the open item for the content. When one already exists it is
        returned unchanged and nothing else happens.
        """
        severity = str(getattr(severity, 'value', severity))
        priority = priority or priority_for_severity(severity)

        outcome = await self.db.create_queue_item(
            content_id=content_id,
            content_type=content_type,
            user_id=user_id,
            priority=priority,
            flags=list(flags or []),
            reasons=list(reasons or []),
            severity=severity,
            confidence=confidence,
            meta_data=metadata or {}
        )
        if outcome is None:
            raise PipelineError(f"Failed to queue {content_type} {content_id} for review")

        item = outcome['item']
        if not outcome['created']:
            logger.info(f"{content_type} {content_id} already has open queue item {item['id']}")
            return item

        logger.info(f"Queued {content_type} {content_id} for review ({priority} priority)")

        if priority in ALERT_PRIORITIES:
            await self._alert_moderators(item)

        if auto_assign:
            assigned = await self.auto_assign(item['id'])
            if assigned:
                item = assigned

        return item

    async def auto_assign(self, item_id):
        """Give the item to the active moderator with the fewest items in review.

        Ties are broken at random. Returns the updated item or None when no
        moderator is available or the item was already taken.
        """
        moderators = await self.db.get_active_moderators()
        if not moderators:
            logger.warning(f"No active moderators available for queue item {item_id}")
            return None

        lowest = min(moderator['workload'] for moderator in moderators)
        candidates = [moderator for moderator in moderators if moderator['workload'] == lowest]
        reviewer = random.choice(candidates)

        return await self.assign_to_reviewer(item_id, reviewer['id']) or None

    async def assign_to_reviewer(self, item_id, reviewer_id):
        """
        Move an open item to in_review.

        Returns the updated item, or False when the item is closed or the
        update failed. Raises NotFoundError for an unknown item.
        """
        item = await self.db.assign_queue_item(item_id, reviewer_id)
        if not item:
            logger.warning(f"Queue item {item_id} could not be assigned to {reviewer_id}")
            return False

        self.notifier.create_notification(
            reviewer_id,
            'moderation',
            'Moderation Review Assigned',
            f"You have been assigned a {item['severity']} severity {item['content_type']} to review",
            priority='high' if item['priority'] in ALERT_PRIORITIES else 'normal',
            data={'queue_item_id': item_id}
        )
        return item

    async def complete_review(self, item_id, reviewer_id, decision, review_notes=None,
                              escalation_reason=None):
        """
        Close an open item with a reviewer decision and apply it to the content.

        Returns the closed item, or False when the item was already closed or
        the update failed. Raises NotFoundError for an unknown item.
        """
        if decision not in REVIEW_DECISIONS:
            raise ValueError(f"Invalid review decision: {decision}")

        item = await self.db.complete_queue_item(
            item_id, reviewer_id, decision,
            review_notes=review_notes,
            escalation_reason=escalation_reason
        )
        if not item:
            logger.warning(f"Queue item {item_id} could not be completed by {reviewer_id}")
            return False

        content_id = item['content_id']
        content_type = item['content_type']

        if decision == 'approved':
            await self.store.approve_content(content_id, content_type, approved_by=reviewer_id)
        elif decision == 'rejected':
            await self.store.reject_content(content_id, content_type, reason=review_notes or 'Rejected on review')
            self.notifier.create_notification(
                item['user_id'],
                'moderation',
                'Content Removed',
                f"Your {content_type} was removed after moderator review",
                priority='high',
                data={'content_id': content_id, 'content_type': content_type}
            )
        else:
            # Escalations stay with whoever picks them up next
            logger.info(f"Queue item {item_id} escalated by {reviewer_id}: {escalation_reason or 'no reason given'}")

        return item

    async def get_queue_items(self, status='pending', priority=None, severity=None, assigned_to=None,
                              limit=50, offset=0):
        listing = await self.db.list_queue_items(
            status=status, priority=priority, severity=severity,
            assigned_to=assigned_to, limit=limit, offset=offset
        )

        items = []
        for item in listing['items']:
            body = item.pop('content_body', None)
            item['wait_time'] = format_wait_time(item.pop('wait_time_seconds', 0))
            item['content_preview'] = truncate(body)
            items.append(item)

        return {'items': items, 'total_count': listing['total_count']}

    async def get_queue_statistics(self):
        """Queue counts and timings over the last 30 days"""
        return await self.db.get_queue_statistics(datetime.utcnow() - STATISTICS_WINDOW)

    async def _alert_moderators(self, item):
        moderators = await self.db.get_active_moderators()
        for moderator in moderators:
            self.notifier.create_notification(
                moderator['id'],
                'moderation',
                f"{item['priority'].upper()} Priority Review",
                f"New {item['severity']} severity {item['content_type']} requires review",
                priority='high',
                data={'queue_item_id': item['id']}
            )

        discord = self.discord
        if discord is not None and discord.is_configured():
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, discord.send_queue_alert, item)
            except RuntimeError as e:
                logger.error(f"Discord queue alert failed: {str(e)}")
                error_tracker.track_error('notification', str(e), details={'queue_item_id': item['id']})


review_queue = ReviewQueue()
