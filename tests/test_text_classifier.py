"""Tests for the pattern-based text classifier."""
from unittest.mock import Mock

import pytest

from app.services.moderation.errors import ClassifierError
from app.services.moderation.results import Severity
from app.services.moderation.text_classifier import (TextClassifier,
                                                     analyze_text,
                                                     calculate_risk_score,
                                                     fallback_result,
                                                     score_spam)
from conftest import CLEAN_TEXT, VIOLENT_TEXT

SPAM_TEXT = ("Click here now http://a.example/1 http://b.example/2 "
             "http://c.example/3 aaaaaaaaaaaaaaa")


class TestScoring:

    def test_clean_text_scores_zero(self):
        scores = analyze_text(CLEAN_TEXT)
        assert all(value == 0 for value in scores.to_dict().values())
        assert calculate_risk_score(scores) == 0

    def test_spam_signals_add_up(self):
        # phrase + three URLs + character run
        assert score_spam(SPAM_TEXT) == pytest.approx(0.6)

    def test_shouting_counts_as_spam(self):
        assert score_spam("THIS IS AMAZING STUFF") == pytest.approx(0.3)

    def test_risk_score_is_normalized(self):
        scores = analyze_text("kill murder gun bomb nazi hitler fuck shit damn porn sex")
        assert 0 < calculate_risk_score(scores) <= 1


class TestTextClassifier:

    def test_empty_text_is_approved(self):
        result = TextClassifier().classify("   ")
        assert result.is_approved is True
        assert result.confidence == 1.0
        assert result.severity == Severity.LOW
        assert result.flags == []

    def test_clean_text(self):
        result = TextClassifier().classify(CLEAN_TEXT)
        assert result.is_approved is True
        assert result.confidence == 0.9
        assert result.severity == Severity.LOW
        assert result.requires_human_review is False
        assert result.auto_actions == []
        assert result.flags == []

    def test_spam_is_flagged(self):
        result = TextClassifier().classify(SPAM_TEXT)
        assert 'spam' in result.flags
        assert 'Content appears to be spam' in result.reasons

    def test_violent_threat_is_critical(self):
        result = TextClassifier().classify(VIOLENT_TEXT)
        assert result.severity == Severity.CRITICAL
        assert result.is_approved is False
        assert result.requires_human_review is True
        assert 'violence' in result.flags
        assert result.auto_actions == ['hide_content', 'flag_user', 'send_warning']

    def test_personal_information_is_high_severity(self):
        result = TextClassifier().classify("Call me any time at 555-123-4567")
        assert 'personal_info' in result.flags
        assert result.severity == Severity.HIGH
        assert result.auto_actions == ['hide_content', 'send_warning']

    def test_metadata_carries_scores(self):
        result = TextClassifier().classify(CLEAN_TEXT)
        assert result.metadata['text_length'] == len(CLEAN_TEXT)
        assert set(result.metadata['text_analysis']) >= {'toxicity', 'spam', 'violence'}

    def test_ai_scores_only_raise_categories(self):
        scorer = Mock()
        scorer.score.return_value = {'violence': 0.9, 'hate': 0.0}
        result = TextClassifier(ai_scorer=scorer).classify(CLEAN_TEXT)

        assert result.metadata['text_analysis']['violence'] == 0.9
        assert result.metadata['ai_scores'] == {'violence': 0.9, 'hate': 0.0}
        assert result.severity == Severity.CRITICAL

    def test_unavailable_ai_scorer_is_ignored(self):
        scorer = Mock()
        scorer.score.return_value = None
        result = TextClassifier(ai_scorer=scorer).classify(CLEAN_TEXT)
        assert result.is_approved is True
        assert 'ai_scores' not in result.metadata

    def test_internal_errors_become_classifier_errors(self):
        scorer = Mock()
        scorer.score.side_effect = ValueError("bad payload")
        with pytest.raises(ClassifierError):
            TextClassifier(ai_scorer=scorer).classify(CLEAN_TEXT)

    def test_fallback_fails_closed(self):
        result = fallback_result(ClassifierError("text", "bad payload"))
        assert result.is_approved is False
        assert result.flags == ['text_analysis_error']
        assert result.severity == Severity.HIGH
        assert result.requires_human_review is True
