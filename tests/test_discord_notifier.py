"""Tests for Discord queue alerts."""
from unittest.mock import Mock

import requests

from app.services.notifications.discord_notifier import DiscordNotifier

WEBHOOK = "https://discord.com/api/webhooks/1/token"


def queue_item(**overrides):
    item = {
        'id': 'q1',
        'content_id': 'p1',
        'content_type': 'post',
        'user_id': 'u1',
        'priority': 'urgent',
        'severity': 'critical',
        'confidence': 0.9,
        'flags': ['violence'],
        'reasons': ['Content contains violent language'],
    }
    item.update(overrides)
    return item


class TestDiscordNotifier:

    def test_unconfigured_sends_nothing(self):
        session = Mock()
        notifier = DiscordNotifier(None, session=session)

        assert notifier.is_configured() is False
        assert notifier.send_queue_alert(queue_item()) is False
        session.post.assert_not_called()

    def test_urgent_alert_embed(self):
        session = Mock()
        notifier = DiscordNotifier(WEBHOOK, session=session)

        assert notifier.send_queue_alert(queue_item()) is True

        url = session.post.call_args.args[0]
        embed = session.post.call_args.kwargs['json']['embeds'][0]
        assert url == WEBHOOK
        assert embed['color'] == DiscordNotifier.COLOR_URGENT
        assert embed['title'].endswith('Urgent Priority Review Needed')
        assert embed['description'] == 'Content contains violent language'
        assert {'name': 'Flags', 'value': 'violence', 'inline': False} in embed['fields']
        assert embed['footer'] == {'text': 'Queue item q1'}

    def test_high_priority_colour(self):
        session = Mock()
        DiscordNotifier(WEBHOOK, session=session).send_queue_alert(queue_item(priority='high', flags=[]))

        embed = session.post.call_args.kwargs['json']['embeds'][0]
        assert embed['color'] == DiscordNotifier.COLOR_HIGH
        assert all(field['name'] != 'Flags' for field in embed['fields'])

    def test_http_failure_returns_false(self):
        session = Mock()
        session.post.return_value.raise_for_status.side_effect = requests.exceptions.HTTPError("500")

        assert DiscordNotifier(WEBHOOK, session=session).send_queue_alert(queue_item()) is False

    def test_connection_failure_returns_false(self):
        session = Mock()
        session.post.side_effect = requests.exceptions.ConnectionError("refused")

        assert DiscordNotifier(WEBHOOK, session=session).send_queue_alert(queue_item()) is False
