"""
Pytest configuration and fixtures for the moderation pipeline tests.
"""
import pytest

from app import create_app, db
from app.models.queue_item import OPEN_QUEUE_STATUSES, ModerationQueueItem
from app.models.user import User
from app.services.error_tracker import error_tracker
from app.services.moderation.rule_engine import rule_registry
from app.services.notifications.notification_service import notification_service

CLEAN_TEXT = "Tried a Padron cigar tonight, rich aroma and smooth draw with great flavor."
VIOLENT_TEXT = "I will kill you and murder your whole family with a gun"


class RecordingNotifier:
    """Captures notifications instead of writing them from a background thread"""

    def __init__(self):
        self.sent = []

    def create_notification(self, user_id, type, title, message, priority='normal', data=None):
        self.sent.append({
            'user_id': user_id,
            'type': type,
            'title': title,
            'message': message,
            'priority': priority,
            'data': data or {}
        })

    def titles_for(self, user_id):
        return [n['title'] for n in self.sent if n['user_id'] == user_id]


@pytest.fixture
def notifier(monkeypatch):
    recorder = RecordingNotifier()
    monkeypatch.setattr(notification_service, 'create_notification', recorder.create_notification)
    return recorder


@pytest.fixture(autouse=True)
def reset_shared_state(notifier):
    error_tracker.reset()
    for rule in rule_registry.get_rules():
        rule_registry.set_status(rule['id'], True)
    yield
    for rule in rule_registry.get_rules():
        rule_registry.set_status(rule['id'], True)


@pytest.fixture
def app(tmp_path):
    app = create_app('testing', test_config={
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'moderation.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'check_same_thread': False}},
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def app_ctx(app):
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def users(app):
    """member, moderator and admin accounts keyed by role"""
    with app.app_context():
        accounts = {
            'member': User(username='member', email='member@example.com'),
            'moderator': User(username='moderator', email='mod@example.com', is_moderator=True),
            'admin': User(username='admin', email='admin@example.com', is_admin=True, is_moderator=True),
        }
        db.session.add_all(accounts.values())
        db.session.commit()
        seeded = {role: {'id': user.id, 'api_key': user.api_key} for role, user in accounts.items()}
        db.session.remove()
    return seeded


def fetch(model, *key):
    """Fresh read of a row, bypassing anything cached in the session"""
    db.session.expire_all()
    return db.session.get(model, key[0] if len(key) == 1 else key)


def count_open_items(content_id, content_type):
    return ModerationQueueItem.query.filter(
        ModerationQueueItem.content_id == content_id,
        ModerationQueueItem.content_type == content_type,
        ModerationQueueItem.status.in_(OPEN_QUEUE_STATUSES)
    ).count()
