"""
Async Centralized Database Service Layer for the moderation pipeline
Runs SQLAlchemy work in a thread pool inside an app context and returns plain dicts
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app import db
from app.models.appeal import ModerationAppeal
from app.models.content import Content
from app.models.moderation_result import ModerationResultRecord
from app.models.queue_item import (OPEN_QUEUE_STATUSES, PRIORITY_ORDER,
                                   ModerationQueueItem)
from app.models.user import User
from app.models.user_report import OPEN_REPORT_STATUSES, UserReport
from app.services.error_tracker import error_tracker
from app.services.moderation.errors import NotFoundError

logger = logging.getLogger(__name__)


def _priority_ordering(column):
    return db.case(PRIORITY_ORDER, value=column, else_=len(PRIORITY_ORDER) + 1)


def _seconds_since(moment, now=None):
    if moment is None:
        return 0.0
    return ((now or datetime.utcnow()) - moment).total_seconds()


class DatabaseService:
    """Async centralized database operations with consistent error handling"""

    def __init__(self):
        from flask import current_app
        try:
            max_workers = current_app.config.get('DB_THREAD_POOL_WORKERS', 8)
        except RuntimeError:
            # No app context available during initialization
            max_workers = 8
        self._executor = ThreadPoolExecutor(max_workers=max_workers)

    async def _safe_execute(self, operation_func, *args, **kwargs):
        """Run a database operation in the thread pool.

        SQLAlchemy errors are logged, rolled back and answered with None.
        Domain errors such as NotFoundError propagate to the caller.
        """
        from flask import current_app, has_app_context

        loop = asyncio.get_running_loop()

        if has_app_context():
            app = current_app._get_current_object()

            def context_operation():
                with app.app_context():
                    try:
                        return operation_func(*args, **kwargs)
                    except SQLAlchemyError:
                        db.session.rollback()
                        raise
        else:
            # No app context, run directly (shouldn't happen in normal operation)
            def context_operation():
                try:
                    return operation_func(*args, **kwargs)
                except SQLAlchemyError:
                    db.session.rollback()
                    raise

        try:
            return await loop.run_in_executor(self._executor, context_operation)
        except SQLAlchemyError as e:
            logger.error(f"Database error in {operation_func.__name__}: {str(e)}")
            error_tracker.track_error('database', str(e), details={'operation': operation_func.__name__})
            return None

    # User Operations
    async def get_active_moderators(self) -> List[Dict[str, Any]]:
        """Active moderator-flagged users with their current in_review workload"""
        def _get_moderators():
            moderators = User.query.filter(
                User.is_moderator.is_(True),
                User.is_active.is_(True)
            ).all()

            workload = dict(
                db.session.query(ModerationQueueItem.assigned_to, func.count(ModerationQueueItem.id))
                .filter(ModerationQueueItem.status == 'in_review',
                        ModerationQueueItem.assigned_to.isnot(None))
                .group_by(ModerationQueueItem.assigned_to)
                .all()
            )

            return [{
                'id': moderator.id,
                'username': moderator.username,
                'workload': workload.get(moderator.id, 0)
            } for moderator in moderators]

        return await self._safe_execute(_get_moderators) or []

    async def update_user_enforcement(self, user_id: str, increments: Optional[Dict[str, int]] = None,
                                      **fields) -> Optional[bool]:
        """Apply enforcement changes to a user; False when the user does not exist"""
        def _update_user():
            user = db.session.get(User, user_id)
            if not user:
                return False
            for key, amount in (increments or {}).items():
                setattr(user, key, (getattr(user, key) or 0) + amount)
            for key, value in fields.items():
                setattr(user, key, value)
            db.session.commit()
            return True

        return await self._safe_execute(_update_user)

    # Content Operations
    async def register_content(self, content_id: str, content_type: str, user_id: str,
                               body: Optional[str] = None, image_urls: Optional[List[str]] = None,
                               meta_data: Optional[Dict] = None) -> Optional[Dict[str, Any]]:
        """Insert the content row unless it already exists"""
        def _register():
            content = db.session.get(Content, (content_id, content_type))
            if content:
                return content.to_dict()

            content = Content(
                id=content_id,
                content_type=content_type,
                user_id=user_id,
                body=body,
                image_urls=list(image_urls or []),
                meta_data=meta_data or {}
            )
            db.session.add(content)
            try:
                db.session.commit()
            except IntegrityError:
                # Registered concurrently by another run
                db.session.rollback()
                content = db.session.get(Content, (content_id, content_type))
                if content is None:
                    raise
            return content.to_dict()

        return await self._safe_execute(_register)

    async def get_content(self, content_id: str, content_type: str) -> Optional[Dict[str, Any]]:
        def _get_content():
            content = db.session.get(Content, (content_id, content_type))
            return content.to_dict() if content else None

        return await self._safe_execute(_get_content)

    async def update_content(self, content_id: str, content_type: str, **fields) -> Optional[bool]:
        """Update content flags; False when the content does not exist"""
        def _update_content():
            content = db.session.get(Content, (content_id, content_type))
            if not content:
                return False
            for key, value in fields.items():
                setattr(content, key, value)
            db.session.commit()
            return True

        return await self._safe_execute(_update_content)

    # Moderation Result Operations
    async def insert_moderation_result(self, content_id: str, content_type: str, user_id: str,
                                       result: Dict[str, Any],
                                       processing_time_ms: Optional[int] = None) -> Optional[Dict[str, Any]]:
        def _insert():
            record = ModerationResultRecord(
                content_id=content_id,
                content_type=content_type,
                user_id=user_id,
                is_approved=result['is_approved'],
                confidence=result['confidence'],
                flags=result['flags'],
                reasons=result['reasons'],
                severity=result['severity'],
                requires_human_review=result['requires_human_review'],
                auto_actions=result['auto_actions'],
                processing_time_ms=processing_time_ms,
                meta_data=result.get('metadata') or {}
            )
            db.session.add(record)
            db.session.commit()
            return record.to_dict()

        return await self._safe_execute(_insert)

    async def get_latest_moderation_result(self, content_id: str, content_type: str) -> Optional[Dict[str, Any]]:
        def _get_latest():
            record = ModerationResultRecord.query.filter_by(
                content_id=content_id, content_type=content_type
            ).order_by(ModerationResultRecord.created_at.desc()).first()
            if not record:
                return None
            data = record.to_dict()
            data['seconds_ago'] = _seconds_since(record.created_at)
            return data

        return await self._safe_execute(_get_latest)

    async def get_user_moderation_history(self, user_id: str, days: int = 30) -> Optional[Dict[str, int]]:
        def _get_history():
            since = datetime.utcnow() - timedelta(days=days)
            query = ModerationResultRecord.query.filter(
                ModerationResultRecord.user_id == user_id,
                ModerationResultRecord.created_at >= since
            )
            return {
                'total_content': query.count(),
                'rejected_count': query.filter(ModerationResultRecord.is_approved.is_(False)).count(),
                'severe_violations': query.filter(
                    ModerationResultRecord.severity.in_(('high', 'critical'))).count()
            }

        return await self._safe_execute(_get_history)

    # Behavior Operations
    async def get_user_activity(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Raw counts behind the behavior metrics, computed fresh on every call"""
        def _get_activity():
            now = datetime.utcnow()
            hour_ago = now - timedelta(hours=1)
            day_ago = now - timedelta(hours=24)
            month_ago = now - timedelta(days=30)

            user = db.session.get(User, user_id)

            posts = Content.query.filter(Content.user_id == user_id, Content.content_type == 'post')
            posts_last_24h = posts.filter(Content.created_at >= day_ago)
            avg_length = db.session.query(func.avg(func.length(Content.body))).filter(
                Content.user_id == user_id,
                Content.content_type == 'post',
                Content.created_at >= day_ago
            ).scalar()

            return {
                'user_exists': user is not None,
                'account_age_hours': _seconds_since(user.created_at, now) / 3600 if user else 0.0,
                'posts_last_hour': posts.filter(Content.created_at >= hour_ago).count(),
                'posts_last_24h': posts_last_24h.count(),
                'avg_content_length_24h': float(avg_length or 0),
                'comments_last_24h': Content.query.filter(
                    Content.user_id == user_id,
                    Content.content_type == 'comment',
                    Content.created_at >= day_ago
                ).count(),
                'reports_received': UserReport.query.filter(
                    UserReport.reported_user_id == user_id,
                    UserReport.created_at >= month_ago
                ).count(),
                'followers_count': (user.followers_count or 0) if user else 0,
                'engagement_rate': float(user.engagement_rate or 0) if user else 0.0
            }

        return await self._safe_execute(_get_activity)

    async def count_recent_content_reports(self, content_id: str, content_type: Optional[str] = None,
                                           hours: int = 24) -> Optional[int]:
        """Open reports against one piece of content within the window"""
        def _count():
            since = datetime.utcnow() - timedelta(hours=hours)
            query = UserReport.query.filter(
                UserReport.content_id == content_id,
                UserReport.status.in_(OPEN_REPORT_STATUSES),
                UserReport.created_at >= since
            )
            if content_type:
                query = query.filter(UserReport.content_type == content_type)
            return query.count()

        return await self._safe_execute(_count)

    async def count_exact_duplicates(self, body: str, user_id: str, days: int = 7) -> Optional[int]:
        """Content from other users with an identical body within the window"""
        def _count():
            since = datetime.utcnow() - timedelta(days=days)
            return Content.query.filter(
                Content.body == body,
                Content.user_id != user_id,
                Content.created_at >= since
            ).count()

        return await self._safe_execute(_count)

    # Moderation Queue Operations
    async def create_queue_item(self, **data) -> Optional[Dict[str, Any]]:
        """Insert a pending item unless the content already has an open one.

        The partial unique index makes the insert the arbiter; a losing
        concurrent insert gets the existing open item back.
        """
        content_id = data['content_id']
        content_type = data['content_type']

        def _find_open():
            return ModerationQueueItem.query.filter(
                ModerationQueueItem.content_id == content_id,
                ModerationQueueItem.content_type == content_type,
                ModerationQueueItem.status.in_(OPEN_QUEUE_STATUSES)
            ).first()

        def _create():
            existing = _find_open()
            if existing:
                return {'item': existing.to_dict(), 'created': False}

            item = ModerationQueueItem(status='pending', **data)
            db.session.add(item)
            try:
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                existing = _find_open()
                if existing is None:
                    raise
                return {'item': existing.to_dict(), 'created': False}
            return {'item': item.to_dict(), 'created': True}

        return await self._safe_execute(_create)

    async def list_queue_items(self, status: Optional[str] = 'pending', priority: Optional[str] = None,
                               severity: Optional[str] = None, assigned_to: Optional[str] = None,
                               limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        def _list_items():
            query = db.session.query(ModerationQueueItem, Content.body).outerjoin(
                Content, db.and_(
                    Content.id == ModerationQueueItem.content_id,
                    Content.content_type == ModerationQueueItem.content_type
                )
            )
            if status:
                query = query.filter(ModerationQueueItem.status == status)
            if priority:
                query = query.filter(ModerationQueueItem.priority == priority)
            if severity:
                query = query.filter(ModerationQueueItem.severity == severity)
            if assigned_to:
                query = query.filter(ModerationQueueItem.assigned_to == assigned_to)

            total_count = query.count()
            rows = query.order_by(
                _priority_ordering(ModerationQueueItem.priority),
                ModerationQueueItem.created_at.asc()
            ).offset(offset).limit(limit).all()

            now = datetime.utcnow()
            items = []
            for item, body in rows:
                data = item.to_dict()
                data['wait_time_seconds'] = _seconds_since(item.created_at, now)
                data['content_body'] = body
                items.append(data)
            return {'items': items, 'total_count': total_count}

        return await self._safe_execute(_list_items) or {'items': [], 'total_count': 0}

    async def assign_queue_item(self, item_id: str, reviewer_id: str):
        """Move an open item to in_review under a reviewer.

        Returns the updated item, False when the item is already closed and
        None on a database error. Raises NotFoundError for an unknown id.
        """
        def _assign():
            updated = ModerationQueueItem.query.filter(
                ModerationQueueItem.id == item_id,
                ModerationQueueItem.status.in_(OPEN_QUEUE_STATUSES)
            ).update({
                'assigned_to': reviewer_id,
                'assigned_at': datetime.utcnow(),
                'status': 'in_review'
            }, synchronize_session=False)
            db.session.commit()

            item = db.session.get(ModerationQueueItem, item_id)
            if item is None:
                raise NotFoundError('queue item', item_id)
            return item.to_dict() if updated else False

        return await self._safe_execute(_assign)

    async def complete_queue_item(self, item_id: str, reviewer_id: str, decision: str,
                                  review_notes: Optional[str] = None,
                                  escalation_reason: Optional[str] = None):
        """Move an open item to a terminal state; same return contract as assign"""
        def _complete():
            updated = ModerationQueueItem.query.filter(
                ModerationQueueItem.id == item_id,
                ModerationQueueItem.status.in_(OPEN_QUEUE_STATUSES)
            ).update({
                'status': decision,
                'reviewed_at': datetime.utcnow(),
                'reviewed_by': reviewer_id,
                'review_notes': review_notes,
                'escalation_reason': escalation_reason
            }, synchronize_session=False)
            db.session.commit()

            item = db.session.get(ModerationQueueItem, item_id)
            if item is None:
                raise NotFoundError('queue item', item_id)
            return item.to_dict() if updated else False

        return await self._safe_execute(_complete)

    # User Report Operations
    async def find_duplicate_report(self, reporter_id: str, report_type: str,
                                    reported_user_id: Optional[str] = None,
                                    content_id: Optional[str] = None,
                                    content_type: Optional[str] = None,
                                    hours: int = 24) -> Optional[Dict[str, Any]]:
        def _find():
            target_filters = []
            if reported_user_id:
                target_filters.append(UserReport.reported_user_id == reported_user_id)
            if content_id:
                target_filters.append(db.and_(UserReport.content_id == content_id,
                                              UserReport.content_type == content_type))
            if not target_filters:
                return None

            since = datetime.utcnow() - timedelta(hours=hours)
            report = UserReport.query.filter(
                UserReport.reporter_id == reporter_id,
                UserReport.report_type == report_type,
                db.or_(*target_filters),
                UserReport.created_at >= since,
                UserReport.status.in_(OPEN_REPORT_STATUSES)
            ).order_by(UserReport.created_at.asc()).first()
            return report.to_dict() if report else None

        return await self._safe_execute(_find)

    async def create_report(self, **data) -> Optional[Dict[str, Any]]:
        def _create():
            report = UserReport(**data)
            db.session.add(report)
            db.session.commit()
            return report.to_dict()

        return await self._safe_execute(_create)

    async def get_report(self, report_id: str) -> Optional[Dict[str, Any]]:
        def _get_report():
            report = db.session.get(UserReport, report_id)
            return report.to_dict() if report else None

        return await self._safe_execute(_get_report)

    async def update_report(self, report_id: str, **fields) -> Optional[Dict[str, Any]]:
        """Raises NotFoundError for an unknown id"""
        def _update_report():
            report = db.session.get(UserReport, report_id)
            if not report:
                raise NotFoundError('report', report_id)
            for key, value in fields.items():
                setattr(report, key, value)
            db.session.commit()
            return report.to_dict()

        return await self._safe_execute(_update_report)

    async def list_reports(self, status: Optional[str] = 'pending', priority: Optional[str] = None,
                           report_type: Optional[str] = None, limit: int = 50,
                           offset: int = 0) -> Dict[str, Any]:
        def _list_reports():
            query = UserReport.query
            if status:
                query = query.filter(UserReport.status == status)
            if priority:
                query = query.filter(UserReport.priority == priority)
            if report_type:
                query = query.filter(UserReport.report_type == report_type)

            total_count = query.count()
            reports = query.order_by(
                _priority_ordering(UserReport.priority),
                UserReport.created_at.desc()
            ).offset(offset).limit(limit).all()

            now = datetime.utcnow()
            results = []
            for report in reports:
                data = report.to_dict()
                data['seconds_ago'] = _seconds_since(report.created_at, now)
                results.append(data)
            return {'reports': results, 'total_count': total_count}

        return await self._safe_execute(_list_reports) or {'reports': [], 'total_count': 0}

    # Appeal Operations
    async def create_appeal(self, content_id: str, content_type: str, user_id: str,
                            appeal_reason: str) -> Optional[Dict[str, Any]]:
        def _create():
            appeal = ModerationAppeal(
                content_id=content_id,
                content_type=content_type,
                user_id=user_id,
                appeal_reason=appeal_reason,
                status='pending'
            )
            db.session.add(appeal)
            db.session.commit()
            return appeal.to_dict()

        return await self._safe_execute(_create)

    # Statistics and Analytics
    async def get_moderation_statistics(self, since: datetime) -> Dict[str, Any]:
        def _get_stats():
            query = ModerationResultRecord.query.filter(ModerationResultRecord.created_at >= since)
            by_severity = dict(
                db.session.query(ModerationResultRecord.severity, func.count(ModerationResultRecord.id))
                .filter(ModerationResultRecord.created_at >= since)
                .group_by(ModerationResultRecord.severity)
                .all()
            )
            averages = db.session.query(
                func.avg(ModerationResultRecord.confidence),
                func.avg(ModerationResultRecord.processing_time_ms)
            ).filter(ModerationResultRecord.created_at >= since).first()

            return {
                'total_moderated': query.count(),
                'approved_count': query.filter(ModerationResultRecord.is_approved.is_(True)).count(),
                'rejected_count': query.filter(ModerationResultRecord.is_approved.is_(False)).count(),
                'human_review_count': query.filter(
                    ModerationResultRecord.requires_human_review.is_(True)).count(),
                'critical_count': by_severity.get('critical', 0),
                'high_count': by_severity.get('high', 0),
                'medium_count': by_severity.get('medium', 0),
                'low_count': by_severity.get('low', 0),
                'avg_confidence': float(averages[0] or 0),
                'avg_processing_time': float(averages[1] or 0)
            }

        return await self._safe_execute(_get_stats) or {}

    async def get_auto_moderation_statistics(self, since: datetime) -> Dict[str, Any]:
        def _get_stats():
            rows = db.session.query(
                ModerationResultRecord.flags,
                ModerationResultRecord.auto_actions
            ).filter(ModerationResultRecord.created_at >= since).all()

            stats = {
                'total_actions': 0,
                'hidden_content': 0,
                'warnings_sent': 0,
                'approval_required': 0,
                'spam_detected': 0,
                'duplicates_found': 0
            }
            for flags, actions in rows:
                if not actions:
                    continue
                flags = flags or []
                stats['total_actions'] += 1
                stats['hidden_content'] += 'hide_content' in actions
                stats['warnings_sent'] += 'send_warning' in actions
                stats['approval_required'] += 'require_approval' in actions
                stats['spam_detected'] += any('spam' in flag for flag in flags)
                stats['duplicates_found'] += any('duplicate' in flag for flag in flags)
            return stats

        return await self._safe_execute(_get_stats) or {}

    async def get_report_statistics(self, since: datetime) -> Dict[str, Any]:
        def _get_stats():
            reports = UserReport.query.filter(UserReport.created_at >= since).all()

            by_status, by_type, by_priority = {}, {}, {}
            resolution_times = []
            for report in reports:
                by_status[report.status] = by_status.get(report.status, 0) + 1
                by_type[report.report_type] = by_type.get(report.report_type, 0) + 1
                by_priority[report.priority] = by_priority.get(report.priority, 0) + 1
                if report.resolved_at:
                    resolution_times.append((report.resolved_at - report.created_at).total_seconds())

            return {
                'total_reports': len(reports),
                'by_status': by_status,
                'by_type': by_type,
                'by_priority': by_priority,
                'avg_resolution_seconds': (
                    sum(resolution_times) / len(resolution_times) if resolution_times else 0.0)
            }

        return await self._safe_execute(_get_stats) or {}

    async def get_queue_statistics(self, since: datetime) -> Dict[str, Any]:
        def _get_stats():
            now = datetime.utcnow()
            items = ModerationQueueItem.query.filter(ModerationQueueItem.created_at >= since).all()

            by_status, by_priority, by_severity = {}, {}, {}
            wait_times, review_times = [], []
            for item in items:
                by_status[item.status] = by_status.get(item.status, 0) + 1
                by_priority[item.priority] = by_priority.get(item.priority, 0) + 1
                by_severity[item.severity] = by_severity.get(item.severity, 0) + 1
                wait_times.append(((item.reviewed_at or now) - item.created_at).total_seconds())
                if item.reviewed_at and item.assigned_at:
                    review_times.append((item.reviewed_at - item.assigned_at).total_seconds())

            workload = dict(
                db.session.query(ModerationQueueItem.assigned_to, func.count(ModerationQueueItem.id))
                .filter(ModerationQueueItem.status == 'in_review',
                        ModerationQueueItem.assigned_to.isnot(None))
                .group_by(ModerationQueueItem.assigned_to)
                .all()
            )

            return {
                'total_items': len(items),
                'by_status': by_status,
                'by_priority': by_priority,
                'by_severity': by_severity,
                'avg_wait_seconds': sum(wait_times) / len(wait_times) if wait_times else 0.0,
                'avg_review_seconds': sum(review_times) / len(review_times) if review_times else 0.0,
                'reviewer_workload': workload
            }

        return await self._safe_execute(_get_stats) or {}


# Global async database service instance
db_service = DatabaseService()
