import logging
import threading

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from app.services.error_tracker import error_tracker

logger = logging.getLogger(__name__)


class NotificationService:
    """Persists user notifications and pushes them over Socket.IO in the background"""

    def create_notification(self, user_id, type, title, message, priority='normal', data=None):
        """Fire-and-forget; failures are logged, never raised"""
        if not has_app_context():
            logger.error(f"Cannot notify user {user_id} outside an app context")
            return

        payload = {
            'user_id': user_id,
            'type': type,
            'title': title,
            'message': message,
            'priority': priority,
            'data': data or {}
        }

        try:
            app = current_app._get_current_object()
            threading.Thread(
                target=self._deliver,
                args=(app, payload),
                daemon=True
            ).start()
        except RuntimeError as e:
            logger.error(f"Failed to start notification thread: {str(e)}")
            error_tracker.track_error('notification', str(e), details={'user_id': user_id})

    def _deliver(self, app, payload):
        """Store the notification and emit it to the user's room"""
        with app.app_context():
            from app import db, socketio
            from app.models.notification import Notification

            try:
                notification = Notification(**payload)
                db.session.add(notification)
                db.session.commit()
                event = notification.to_dict()
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f"Failed to store notification for {payload['user_id']}: {str(e)}")
                error_tracker.track_error('notification', str(e), details={'user_id': payload['user_id']})
                return

            try:
                socketio.emit('notification', event, room=f"user_{payload['user_id']}")
            except Exception as e:
                logger.error(f"Notification emit error: {str(e)}")
                error_tracker.track_error('notification', str(e), details={'user_id': payload['user_id']})


notification_service = NotificationService()
