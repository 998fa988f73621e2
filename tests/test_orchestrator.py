"""Tests for the moderation orchestrator, run against a real SQLite database."""
import threading
from unittest.mock import Mock

import pytest

from app.models.content import Content
from app.models.queue_item import ModerationQueueItem
from app.models.user import User
from app.services.database_service import DatabaseService, db_service
from app.services.error_tracker import error_tracker
from app.services.moderation.errors import ClassifierError
from app.services.moderation.results import ModerationResult, Severity
from app.services.moderation_orchestrator import (PIPELINE_ERROR_FLAG,
                                                  PIPELINE_ERROR_REASON,
                                                  ModerationOrchestrator,
                                                  apply_final_decision,
                                                  get_orchestrator,
                                                  user_risk_score)
from conftest import CLEAN_TEXT, VIOLENT_TEXT, count_open_items, fetch


def post(content_id, user_id, text=CLEAN_TEXT, **extra):
    return {
        'content_id': content_id,
        'content_type': 'post',
        'user_id': user_id,
        'content': text,
        **extra
    }


class FailingResultStore(DatabaseService):
    """Database whose result writes always fail"""

    async def insert_moderation_result(self, *args, **kwargs):
        return None


class BlockingClassifier:
    """Text classifier that blocks until released"""

    def __init__(self):
        self.release = threading.Event()

    def classify(self, text):
        self.release.wait(5)
        return None


class TestFinalDecision:

    def test_critical_is_always_rejected_and_reviewed(self):
        result = apply_final_decision(ModerationResult(severity=Severity.CRITICAL, confidence=0.99))
        assert result.is_approved is False
        assert result.requires_human_review is True

    def test_uncertain_high_severity_is_rejected(self):
        result = apply_final_decision(ModerationResult(severity=Severity.HIGH, confidence=0.6))
        assert result.is_approved is False
        assert result.requires_human_review is True

    def test_confident_high_severity_is_left_alone(self):
        result = apply_final_decision(ModerationResult(severity=Severity.HIGH, confidence=0.7))
        assert result.is_approved is True
        assert result.requires_human_review is False

    def test_uncertain_medium_severity_needs_review(self):
        result = apply_final_decision(ModerationResult(severity=Severity.MEDIUM, confidence=0.75))
        assert result.is_approved is True
        assert result.requires_human_review is True

    def test_low_severity_is_untouched(self):
        original = ModerationResult(severity=Severity.LOW, confidence=0.1)
        assert apply_final_decision(original) == original


class TestUserRiskScore:

    def test_new_user(self):
        assert user_risk_score({'total_content': 0, 'rejected_count': 0, 'severe_violations': 0}) == 0.1

    def test_weighted_rates(self):
        history = {'total_content': 10, 'rejected_count': 5, 'severe_violations': 2}
        assert user_risk_score(history) == pytest.approx(0.5 * 0.6 + 0.2 * 0.4)


class TestModerateContent:

    @pytest.fixture
    def orchestrator(self, app_ctx):
        return ModerationOrchestrator.from_config(app_ctx.config)

    @pytest.mark.asyncio
    async def test_clean_post_is_approved(self, orchestrator, users, app_ctx):
        member = users['member']['id']

        result = await orchestrator.moderate_content(post('p1', member))

        assert result.is_approved is True
        assert result.severity == Severity.LOW
        assert result.requires_human_review is False
        assert result.flags == []
        assert result.metadata['user_risk_score'] == 0.1
        assert 'quality' in result.metadata

        status = await orchestrator.get_moderation_status('p1', 'post')
        assert status['is_approved'] is True
        assert count_open_items('p1', 'post') == 0

    @pytest.mark.asyncio
    async def test_violent_post_is_rejected_and_queued(self, orchestrator, users, notifier, app_ctx):
        member = users['member']['id']
        moderators = {users['moderator']['id'], users['admin']['id']}

        result = await orchestrator.moderate_content(post('p2', member, VIOLENT_TEXT))

        assert result.is_approved is False
        assert result.severity == Severity.CRITICAL
        assert result.requires_human_review is True
        assert 'violence' in result.flags

        content = fetch(Content, 'p2', 'post')
        assert content.is_hidden is True

        user = fetch(User, member)
        assert user.moderation_flags == 1
        assert user.warning_count == 1
        assert 'Community Guidelines Warning' in notifier.titles_for(member)

        items = ModerationQueueItem.query.filter_by(content_id='p2').all()
        assert len(items) == 1
        assert items[0].priority == 'urgent'
        assert items[0].status == 'in_review'
        assert items[0].assigned_to in moderators
        for moderator_id in moderators:
            assert 'URGENT Priority Review' in notifier.titles_for(moderator_id)

    @pytest.mark.asyncio
    async def test_remoderation_reuses_the_open_queue_item(self, orchestrator, users, app_ctx):
        member = users['member']['id']

        await orchestrator.moderate_content(post('p3', member, VIOLENT_TEXT))
        await orchestrator.moderate_content(post('p3', member, VIOLENT_TEXT))

        assert count_open_items('p3', 'post') == 1

    @pytest.mark.asyncio
    async def test_invalid_image_url(self, orchestrator, users, app_ctx):
        result = await orchestrator.moderate_content({
            'content_id': 'i1',
            'content_type': 'image',
            'user_id': users['member']['id'],
            'image_urls': ['ftp://cdn.example.com/a.jpg'],
        })

        assert result.is_approved is False
        assert 'invalid_image' in result.flags
        assert result.metadata['quality'] == {
            'skipped': 'no_text',
            'behavior': result.metadata['quality']['behavior']
        }

    @pytest.mark.asyncio
    async def test_high_risk_user_is_reviewed(self, orchestrator, users, app_ctx):
        member = users['member']['id']
        rejected = ModerationResult(is_approved=False, severity=Severity.HIGH).to_dict()
        for index in range(3):
            await db_service.insert_moderation_result(f"old{index}", 'post', member, rejected)

        result = await orchestrator.moderate_content(post('p4', member))

        assert result.is_approved is True
        assert result.requires_human_review is True
        assert 'High-risk user profile' in result.reasons
        assert result.metadata['user_risk_score'] == 1.0

        items = ModerationQueueItem.query.filter_by(content_id='p4').all()
        assert [item.priority for item in items] == ['low']

    @pytest.mark.asyncio
    async def test_failed_persistence_fails_closed_without_side_effects(self, users, notifier, app_ctx):
        member = users['member']['id']
        orchestrator = ModerationOrchestrator.from_config(app_ctx.config, database=FailingResultStore())

        result = await orchestrator.moderate_content(post('p5', member, VIOLENT_TEXT))

        assert result.is_approved is False
        assert result.flags == [PIPELINE_ERROR_FLAG]
        assert result.reasons == [PIPELINE_ERROR_REASON]
        assert result.severity == Severity.HIGH
        assert result.requires_human_review is True

        assert fetch(Content, 'p5', 'post').is_hidden is False
        assert fetch(User, member).warning_count == 0
        assert count_open_items('p5', 'post') == 0
        assert notifier.sent == []
        assert error_tracker.get_error_stats()['error_counts']['pipeline'] == 1

    @pytest.mark.asyncio
    async def test_classifier_error_uses_fallback(self, users, app_ctx):
        text_classifier = Mock()
        text_classifier.classify.side_effect = ClassifierError('text', 'boom')
        orchestrator = ModerationOrchestrator.from_config(app_ctx.config, text_classifier=text_classifier)

        result = await orchestrator.moderate_content(post('p6', users['member']['id']))

        assert 'text_analysis_error' in result.flags
        assert result.is_approved is False
        assert result.requires_human_review is True
        assert error_tracker.get_error_stats()['error_counts']['classifier'] == 1

    @pytest.mark.asyncio
    async def test_classifier_timeout_uses_fallback(self, users, app_ctx):
        blocking = BlockingClassifier()
        orchestrator = ModerationOrchestrator.from_config(
            app_ctx.config, text_classifier=blocking, classifier_timeout=0.5)

        try:
            result = await orchestrator.moderate_content(post('p7', users['member']['id']))
        finally:
            blocking.release.set()

        assert 'text_analysis_error' in result.flags
        assert result.is_approved is False

    @pytest.mark.asyncio
    async def test_bulk_moderation_isolates_failures(self, users, app_ctx):
        member = users['member']['id']
        orchestrator = ModerationOrchestrator.from_config(app_ctx.config, batch_size=2, batch_delay=0)

        original = orchestrator._apply_user_risk

        async def flaky_user_risk(user_id, result):
            if user_id == 'broken-user':
                raise RuntimeError("history exploded")
            return await original(user_id, result)

        orchestrator._apply_user_risk = flaky_user_risk

        results = await orchestrator.bulk_moderate_content([
            post('b1', member),
            post('b2', 'broken-user', "Another smooth smoke tonight with a fine maduro wrapper."),
            post('b3', member),
        ])

        assert [entry['content_id'] for entry in results] == ['b1', 'b2', 'b3']
        assert results[0]['result'].is_approved is True
        assert results[1]['result'].flags == ['batch_error']
        assert results[2]['result'].is_approved is True

    @pytest.mark.asyncio
    async def test_appeal(self, orchestrator, users, app_ctx):
        member = users['member']['id']
        appeal = await orchestrator.appeal_moderation_decision('p1', 'post', member, 'It was a joke')
        assert appeal['status'] == 'pending'
        assert appeal['appeal_reason'] == 'It was a joke'

    @pytest.mark.asyncio
    async def test_statistics(self, orchestrator, users, app_ctx):
        await orchestrator.moderate_content(post('s1', users['member']['id']))

        stats = await orchestrator.get_moderation_statistics('bogus')

        assert stats['time_range'] == '24h'
        assert stats['moderation']['total_moderated'] == 1
        assert stats['moderation']['approved_count'] == 1
        assert stats['auto_moderation']['active_rules'] == 6

    def test_get_orchestrator_is_cached_per_app(self, app_ctx):
        assert get_orchestrator() is get_orchestrator()
