from .appeal import ModerationAppeal
from .content import Content
from .moderation_result import ModerationResultRecord
from .notification import Notification
from .queue_item import ModerationQueueItem
from .user import User
from .user_report import UserReport

__all__ = ['User', 'Content', 'ModerationResultRecord', 'ModerationQueueItem',
           'UserReport', 'ModerationAppeal', 'Notification']
