"""Tests for the OpenAI moderation scorer."""
from types import SimpleNamespace
from unittest.mock import MagicMock, Mock, patch

import httpx
import openai
import pytest

from app.services.ai.moderation_scorer import (ModerationScorer,
                                               split_text_into_chunks)
from app.services.ai.result_cache import ResultCache


def moderation_response(**scores):
    category_scores = SimpleNamespace(**scores)
    return SimpleNamespace(results=[SimpleNamespace(category_scores=category_scores)])


@pytest.fixture(autouse=True)
def empty_cache():
    ResultCache().invalidate_cache()
    yield
    ResultCache().invalidate_cache()


def make_client_manager(response=None, side_effect=None):
    client = MagicMock()
    client.moderations.create.return_value = response
    if side_effect is not None:
        client.moderations.create.side_effect = side_effect

    manager = Mock()
    manager.is_configured.return_value = True
    manager.get_client.return_value = client
    return manager, client


class TestSplitText:

    def test_short_text_is_one_chunk(self):
        assert split_text_into_chunks("hello", 100) == ["hello"]

    def test_splits_on_paragraphs(self):
        text = "a" * 60 + "\n\n" + "b" * 60
        assert split_text_into_chunks(text, 100) == ["a" * 60, "b" * 60]

    def test_hard_splits_long_paragraphs(self):
        chunks = split_text_into_chunks("c" * 250, 100)
        assert all(len(chunk) <= 100 for chunk in chunks)
        assert "".join(chunks) == "c" * 250


class TestModerationScorer:

    def test_unconfigured_client_scores_nothing(self):
        manager = Mock()
        manager.is_configured.return_value = False
        scorer = ModerationScorer(client_manager=manager, model='omni-moderation-latest')

        assert scorer.score("some text") is None
        manager.get_client.assert_not_called()

    def test_maps_categories_to_maximum(self):
        manager, client = make_client_manager(moderation_response(
            hate=0.1, hate_threatening=0.4, harassment=0.2, violence=0.7, sexual=0.0))
        scorer = ModerationScorer(client_manager=manager, cache=ResultCache(), model='omni-moderation-latest')

        scores = scorer.score("some text")

        assert scores == {'hate': 0.4, 'harassment': 0.2, 'violence': 0.7, 'sexual': 0.0}
        client.moderations.create.assert_called_once_with(model='omni-moderation-latest', input="some text")

    def test_results_are_cached(self):
        manager, client = make_client_manager(moderation_response(violence=0.5))
        scorer = ModerationScorer(client_manager=manager, cache=ResultCache(), model='m')

        first = scorer.score("same text")
        second = scorer.score("same text")

        assert first == second
        assert client.moderations.create.call_count == 1

    @patch('app.services.ai.moderation_scorer.time.sleep')
    def test_connection_errors_are_retried_then_give_up(self, mock_sleep):
        error = openai.APIConnectionError(request=httpx.Request('POST', 'https://api.openai.com/v1/moderations'))
        manager, client = make_client_manager(side_effect=error)
        scorer = ModerationScorer(client_manager=manager, cache=ResultCache(), model='m')

        assert scorer.score("text") is None
        assert client.moderations.create.call_count == 3
        assert mock_sleep.call_count == 2

    def test_malformed_response(self):
        manager, _ = make_client_manager(SimpleNamespace(results=[]))
        scorer = ModerationScorer(client_manager=manager, cache=ResultCache(), model='m')
        assert scorer.score("text") is None


class TestResultCache:

    def test_expired_entries_are_dropped(self):
        cache = ResultCache(cache_ttl=0)
        key = cache.generate_cache_key("text", "m")
        cache.cache_result(key, {'violence': 0.1})
        assert cache.get_cached_result(key) is None

    def test_keys_depend_on_model(self):
        cache = ResultCache()
        assert cache.generate_cache_key("text", "a") != cache.generate_cache_key("text", "b")
