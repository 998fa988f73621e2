"""
Community report intake, triage and resolution
"""
import logging
from datetime import datetime

from app.services.content_store import content_store
from app.services.database_service import db_service
from app.services.error_tracker import error_tracker
from app.services.moderation.errors import (NotFoundError, PipelineError,
                                            ReportValidationError)
from app.services.notifications.notification_service import notification_service
from app.services.review_queue import review_queue
from app.utils.time_utils import format_time_ago, resolve_time_range

logger = logging.getLogger(__name__)

REPORT_TYPES = (
    'spam', 'harassment', 'hate_speech', 'violence',
    'inappropriate_content', 'fake_account', 'copyright', 'other'
)

PRIORITY_BY_TYPE = {
    'violence': 'urgent',
    'hate_speech': 'urgent',
    'harassment': 'high',
    'inappropriate_content': 'high',
    'spam': 'medium',
    'fake_account': 'medium',
}

# Reviewed straight away without waiting in pending
AUTO_ESCALATE_TYPES = ('violence', 'hate_speech')

# Severity given to reported content when it enters the review queue
QUEUE_SEVERITY_BY_TYPE = {
    'violence': 'high',
    'hate_speech': 'high',
    'harassment': 'medium',
    'inappropriate_content': 'medium',
}

RESOLUTION_ACTIONS = ('warn_user', 'suspend_user', 'ban_user', 'remove_content', 'dismiss')
SUSPENSION_DAYS = 7
DUPLICATE_WINDOW_HOURS = 24


def priority_for_report_type(report_type):
    return PRIORITY_BY_TYPE.get(report_type, 'low')


def validate_report(report_type, reason, reported_user_id=None, content_id=None, content_type=None):
    """Raises ReportValidationError for input that must never be stored"""
    if not report_type:
        raise ReportValidationError('Report type is required', field='report_type')
    if report_type not in REPORT_TYPES:
        raise ReportValidationError(f"Invalid report type: {report_type}", field='report_type')
    if not reason or not reason.strip():
        raise ReportValidationError('Report reason is required', field='reason')
    if not reported_user_id and not content_id:
        raise ReportValidationError('Report must target a user or content', field='target')
    if content_id and not content_type:
        raise ReportValidationError('Content type is required when reporting content', field='content_type')


class ReportingService:

    def __init__(self, database=None, store=None, notifier=None, queue=None):
        self.db = database or db_service
        self.store = store or content_store
        self.notifier = notifier or notification_service
        self.queue = queue or review_queue

    async def submit_report(self, reporter_id, report_type, reason, reported_user_id=None,
                            content_id=None, content_type=None, evidence=None):
        """
        File a report against a user or a piece of content.

        Returns the stored report. A repeat of an open report by the same
        reporter, of the same type, against the same target within 24 hours
        returns the earlier report instead of creating a new one.
        """
        validate_report(report_type, reason, reported_user_id, content_id, content_type)

        existing = await self.db.find_duplicate_report(
            reporter_id, report_type,
            reported_user_id=reported_user_id,
            content_id=content_id,
            content_type=content_type,
            hours=DUPLICATE_WINDOW_HOURS
        )
        if existing:
            logger.info(f"Duplicate {report_type} report from {reporter_id}, returning {existing['id']}")
            return existing

        priority = priority_for_report_type(report_type)
        report = await self.db.create_report(
            reporter_id=reporter_id,
            reported_user_id=reported_user_id,
            content_id=content_id,
            content_type=content_type,
            report_type=report_type,
            reason=reason.strip(),
            evidence=list(evidence or []),
            priority=priority,
            status='pending'
        )
        if report is None:
            raise PipelineError(f"Failed to store {report_type} report from {reporter_id}")

        logger.info(f"Report {report['id']} filed: {report_type} ({priority} priority)")

        if report_type in AUTO_ESCALATE_TYPES:
            escalated = await self.db.update_report(report['id'], status='investigating')
            if escalated:
                report = escalated
                logger.info(f"Report {report['id']} auto-escalated to investigating")

        if priority in ('high', 'urgent'):
            await self._notify_moderators(report)

        if content_id:
            await self._queue_reported_content(report)

        return report

    async def get_reports_for_review(self, status='pending', priority=None, report_type=None,
                                     limit=50, offset=0):
        listing = await self.db.list_reports(
            status=status, priority=priority, report_type=report_type,
            limit=limit, offset=offset
        )
        reports = []
        for report in listing['reports']:
            report['time_ago'] = format_time_ago(report.pop('seconds_ago', 0))
            reports.append(report)
        return {'reports': reports, 'total_count': listing['total_count']}

    async def resolve_report(self, report_id, moderator_id, resolution, action=None):
        """
        Close a report and optionally act on its target.

        The 'dismiss' action closes the report as dismissed; anything else
        closes it as resolved. Returns the updated report, or False when the
        update failed. Raises NotFoundError for an unknown report.
        """
        if action is not None and action not in RESOLUTION_ACTIONS:
            raise ReportValidationError(f"Invalid resolution action: {action}", field='action')

        report = await self.db.get_report(report_id)
        if report is None:
            raise NotFoundError('report', report_id)

        updated = await self.db.update_report(
            report_id,
            status='dismissed' if action == 'dismiss' else 'resolved',
            resolved_at=datetime.utcnow(),
            resolved_by=moderator_id,
            resolution=resolution,
            action=action
        )
        if not updated:
            return False

        if action and action != 'dismiss':
            await self._execute_action(report, action, moderator_id)

        self.notifier.create_notification(
            report['reporter_id'],
            'report',
            'Report Update',
            f"Your {report['report_type'].replace('_', ' ')} report has been reviewed",
            data={'report_id': report_id, 'status': updated['status']}
        )

        logger.info(f"Report {report_id} {updated['status']} by {moderator_id} (action: {action or 'none'})")
        return updated

    async def get_report_statistics(self, time_range='30d'):
        time_range, since = resolve_time_range(time_range, default='30d')
        stats = await self.db.get_report_statistics(since)
        return {'time_range': time_range, **stats}

    async def _execute_action(self, report, action, moderator_id):
        """Apply a resolution action; a missing target is logged and skipped"""
        user_id = report['reported_user_id']
        content_id = report['content_id']

        if action == 'remove_content':
            if not content_id:
                logger.warning(f"Report {report['id']} has no content to remove")
                return
            done = await self.store.remove_content(content_id, report['content_type'], removed_by=moderator_id)
        else:
            if not user_id and content_id:
                content = await self.db.get_content(content_id, report['content_type'])
                user_id = content['user_id'] if content else None
            if not user_id:
                logger.warning(f"Report {report['id']} has no user for {action}")
                return

            if action == 'warn_user':
                done = await self.store.warn_user(user_id)
            elif action == 'suspend_user':
                done = await self.store.suspend_user(user_id, days=SUSPENSION_DAYS)
            else:
                done = await self.store.ban_user(user_id)

        if not done:
            logger.warning(f"Resolution action {action} for report {report['id']} found no target")

    async def _notify_moderators(self, report):
        moderators = await self.db.get_active_moderators()
        for moderator in moderators:
            self.notifier.create_notification(
                moderator['id'],
                'report',
                f"{report['priority'].upper()} Priority Report",
                f"New {report['report_type'].replace('_', ' ')} report requires attention",
                priority='high',
                data={'report_id': report['id']}
            )

    async def _queue_reported_content(self, report):
        reported = await self.db.get_content(report['content_id'], report['content_type'])
        owner_id = (reported or {}).get('user_id') or report['reported_user_id'] or 'unknown'

        try:
            await self.queue.add_to_queue(
                report['content_id'],
                report['content_type'],
                owner_id,
                flags=['user_report', report['report_type']],
                reasons=[f"User report: {report['reason']}"],
                severity=QUEUE_SEVERITY_BY_TYPE.get(report['report_type'], 'low'),
                confidence=0.5,
                priority=report['priority'],
                metadata={'report_id': report['id']}
            )
        except PipelineError as e:
            logger.error(f"Could not queue reported content {report['content_id']}: {str(e)}")
            error_tracker.track_error('pipeline', str(e), content_id=report['content_id'])


reporting_service = ReportingService()
