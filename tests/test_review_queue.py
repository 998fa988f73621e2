"""Tests for the human review queue."""
import asyncio

import pytest

from app.models.content import Content
from app.services.database_service import db_service
from app.services.moderation.errors import NotFoundError, PipelineError
from app.services.moderation.results import Severity
from app.services.review_queue import ReviewQueue, priority_for_severity
from conftest import CLEAN_TEXT, count_open_items, fetch


class FakeDiscord:

    def __init__(self):
        self.alerts = []

    def is_configured(self):
        return True

    def send_queue_alert(self, item):
        self.alerts.append(item)
        return True


class TestPriorityForSeverity:

    @pytest.mark.parametrize("severity,priority", [
        (Severity.CRITICAL, 'urgent'),
        ('high', 'high'),
        ('medium', 'medium'),
        (Severity.LOW, 'low'),
    ])
    def test_mapping(self, severity, priority):
        assert priority_for_severity(severity) == priority


class TestReviewQueue:

    @pytest.fixture
    def discord(self):
        return FakeDiscord()

    @pytest.fixture
    def queue(self, app_ctx, discord):
        return ReviewQueue(discord=discord)

    @pytest.mark.asyncio
    async def test_add_without_assignment_stays_pending(self, queue, users, app_ctx):
        item = await queue.add_to_queue('p1', 'post', users['member']['id'],
                                        flags=['spam'], reasons=['Spam'], severity='medium',
                                        auto_assign=False)

        assert item['status'] == 'pending'
        assert item['priority'] == 'medium'
        assert item['flags'] == ['spam']

    @pytest.mark.asyncio
    async def test_open_item_is_returned_unchanged(self, queue, users, discord, app_ctx):
        member = users['member']['id']
        first = await queue.add_to_queue('p1', 'post', member, severity='low', auto_assign=False)
        second = await queue.add_to_queue('p1', 'post', member, severity='critical', auto_assign=False)

        assert second['id'] == first['id']
        assert second['priority'] == 'low'
        assert discord.alerts == []
        assert count_open_items('p1', 'post') == 1

    @pytest.mark.asyncio
    async def test_concurrent_adds_create_one_open_item(self, queue, users, app_ctx):
        member = users['member']['id']

        items = await asyncio.gather(*(
            queue.add_to_queue('p1', 'post', member, severity='medium', auto_assign=False)
            for _ in range(8)
        ))

        assert len({item['id'] for item in items}) == 1
        assert count_open_items('p1', 'post') == 1

    @pytest.mark.asyncio
    async def test_high_priority_alerts_moderators(self, queue, users, notifier, discord, app_ctx):
        item = await queue.add_to_queue('p1', 'post', users['member']['id'],
                                        severity=Severity.HIGH, auto_assign=False)

        for role in ('moderator', 'admin'):
            assert 'HIGH Priority Review' in notifier.titles_for(users[role]['id'])
        assert [alert['id'] for alert in discord.alerts] == [item['id']]

    @pytest.mark.asyncio
    async def test_database_failure_raises(self, users, app_ctx):
        class BrokenDatabase:
            async def create_queue_item(self, **data):
                return None

        with pytest.raises(PipelineError):
            await ReviewQueue(database=BrokenDatabase()).add_to_queue('p1', 'post', users['member']['id'])

    @pytest.mark.asyncio
    async def test_auto_assign_prefers_the_least_busy_moderator(self, queue, users, app_ctx):
        member = users['member']['id']
        moderator = users['moderator']['id']
        busy = await queue.add_to_queue('p1', 'post', member, auto_assign=False)
        await queue.assign_to_reviewer(busy['id'], moderator)

        item = await queue.add_to_queue('p2', 'post', member)

        assert item['status'] == 'in_review'
        assert item['assigned_to'] == users['admin']['id']

    @pytest.mark.asyncio
    async def test_auto_assign_without_moderators(self, app_ctx):
        queue = ReviewQueue(discord=FakeDiscord())
        item = await queue.add_to_queue('p1', 'post', 'someone')

        assert item['status'] == 'pending'
        assert await queue.auto_assign(item['id']) is None

    @pytest.mark.asyncio
    async def test_assign_notifies_reviewer(self, queue, users, notifier, app_ctx):
        moderator = users['moderator']['id']
        item = await queue.add_to_queue('p1', 'post', users['member']['id'], auto_assign=False)

        assigned = await queue.assign_to_reviewer(item['id'], moderator)

        assert assigned['status'] == 'in_review'
        assert assigned['assigned_to'] == moderator
        assert notifier.titles_for(moderator) == ['Moderation Review Assigned']

    @pytest.mark.asyncio
    async def test_unknown_item(self, queue, users, app_ctx):
        with pytest.raises(NotFoundError):
            await queue.assign_to_reviewer('missing', users['moderator']['id'])
        with pytest.raises(NotFoundError):
            await queue.complete_review('missing', users['moderator']['id'], 'approved')

    @pytest.mark.asyncio
    async def test_invalid_decision(self, queue, users, app_ctx):
        with pytest.raises(ValueError):
            await queue.complete_review('any', users['moderator']['id'], 'maybe')

    @pytest.mark.asyncio
    async def test_approval_publishes_content(self, queue, users, app_ctx):
        member = users['member']['id']
        moderator = users['moderator']['id']
        await db_service.register_content('p1', 'post', member, body=CLEAN_TEXT)
        item = await queue.add_to_queue('p1', 'post', member, auto_assign=False)

        done = await queue.complete_review(item['id'], moderator, 'approved', review_notes='fine')

        assert done['status'] == 'approved'
        assert done['reviewed_by'] == moderator
        content = fetch(Content, 'p1', 'post')
        assert content.is_approved is True
        assert content.approved_by == moderator

    @pytest.mark.asyncio
    async def test_rejection_hides_content_and_tells_the_owner(self, queue, users, notifier, app_ctx):
        member = users['member']['id']
        await db_service.register_content('p1', 'post', member, body=CLEAN_TEXT)
        item = await queue.add_to_queue('p1', 'post', member, auto_assign=False)

        await queue.complete_review(item['id'], users['moderator']['id'], 'rejected')

        content = fetch(Content, 'p1', 'post')
        assert content.is_approved is False
        assert content.is_hidden is True
        assert 'Content Removed' in notifier.titles_for(member)

    @pytest.mark.asyncio
    async def test_closed_items_cannot_be_reopened(self, queue, users, app_ctx):
        moderator = users['moderator']['id']
        item = await queue.add_to_queue('p1', 'post', users['member']['id'], auto_assign=False)
        await queue.complete_review(item['id'], moderator, 'escalated', escalation_reason='legal')

        assert await queue.assign_to_reviewer(item['id'], moderator) is False
        assert await queue.complete_review(item['id'], moderator, 'approved') is False

    @pytest.mark.asyncio
    async def test_closed_item_frees_the_content_for_a_new_item(self, queue, users, app_ctx):
        member = users['member']['id']
        first = await queue.add_to_queue('p1', 'post', member, auto_assign=False)
        await queue.complete_review(first['id'], users['moderator']['id'], 'approved')

        second = await queue.add_to_queue('p1', 'post', member, auto_assign=False)

        assert second['id'] != first['id']

    @pytest.mark.asyncio
    async def test_listing_and_statistics(self, queue, users, app_ctx):
        member = users['member']['id']
        await db_service.register_content('p1', 'post', member, body="x" * 150)
        await queue.add_to_queue('p1', 'post', member, severity='low', auto_assign=False)
        await queue.add_to_queue('p2', 'post', member, severity='critical', auto_assign=False)

        listing = await queue.get_queue_items()

        assert listing['total_count'] == 2
        assert [item['priority'] for item in listing['items']] == ['urgent', 'low']
        assert listing['items'][0]['content_preview'] == ''
        assert listing['items'][1]['content_preview'] == "x" * 100 + '...'
        assert listing['items'][1]['wait_time'] == 'Just now'

        stats = await queue.get_queue_statistics()
        assert stats['total_items'] == 2
        assert stats['by_priority'] == {'low': 1, 'urgent': 1}
