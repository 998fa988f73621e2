"""Tests for the image classifier and its heuristic backend."""
import pytest

from app.services.moderation.errors import ClassifierError
from app.services.moderation.image_classifier import (HeuristicVisionBackend,
                                                      ImageAnalysis,
                                                      ImageClassifier,
                                                      calculate_risk_score,
                                                      fallback_result,
                                                      is_valid_image_url)
from app.services.moderation.results import Severity

CLEAN_URL = "https://cdn.example.com/lounge/cigar/bar.jpg"
WEAPON_URL = "https://cdn.example.com/uploads/weapon/blood.png"


class FailingBackend:

    def __init__(self, failing_urls):
        self.failing_urls = set(failing_urls)
        self.fallback = HeuristicVisionBackend()

    def analyze(self, image_url):
        if image_url in self.failing_urls:
            raise ConnectionError("vision service unavailable")
        return self.fallback.analyze(image_url)


class TestImageUrlValidation:

    @pytest.mark.parametrize("url", [
        "https://cdn.example.com/a.jpg",
        "http://cdn.example.com/a/b.webp",
    ])
    def test_valid(self, url):
        assert is_valid_image_url(url)

    @pytest.mark.parametrize("url", [
        None,
        "",
        "ftp://cdn.example.com/a.jpg",
        "https://cdn.example.com/a.txt",
        "not a url",
    ])
    def test_invalid(self, url):
        assert not is_valid_image_url(url)


class TestRiskScore:

    def test_risk_labels_raise_the_score(self):
        plain = ImageAnalysis(labels=['food'])
        risky = ImageAnalysis(labels=['inappropriate'])
        assert calculate_risk_score(risky) == pytest.approx(calculate_risk_score(plain) + 0.3)

    def test_score_is_capped(self):
        analysis = ImageAnalysis(adult=1, violence=1, racy=1, medical=1, spoof=1,
                                 labels=['weapon'], quality=0.1, text='buy now')
        assert calculate_risk_score(analysis) == 1.0


class TestImageClassifier:

    def test_invalid_url(self):
        result = ImageClassifier().classify("ftp://cdn.example.com/a.jpg")
        assert result.is_approved is False
        assert result.flags == ['invalid_image']
        assert result.severity == Severity.MEDIUM

    def test_clean_image(self):
        result = ImageClassifier().classify(CLEAN_URL)
        assert result.is_approved is True
        assert result.severity == Severity.LOW
        assert result.flags == []
        assert result.metadata['images'][CLEAN_URL]['analysis']['labels'] == ['bar', 'cigar']

    def test_violent_image(self):
        result = ImageClassifier().classify(WEAPON_URL)
        assert 'violent_content' in result.flags
        assert 'suspicious_content' in result.flags
        assert result.severity == Severity.HIGH
        assert result.auto_actions == ['hide_content', 'send_warning', 'violence_violation']

    def test_backend_failure_raises_classifier_error(self):
        classifier = ImageClassifier(backend=FailingBackend([CLEAN_URL]))
        with pytest.raises(ClassifierError):
            classifier.classify(CLEAN_URL)

    def test_fallback_fails_closed(self):
        result = fallback_result(CLEAN_URL, ClassifierError("image", "backend down"))
        assert result.flags == ['image_analysis_error']
        assert result.is_approved is False
        assert result.requires_human_review is True

    @pytest.mark.asyncio
    async def test_bulk_isolates_failures(self):
        urls = [CLEAN_URL, WEAPON_URL, "https://cdn.example.com/x/food.jpg"]
        classifier = ImageClassifier(backend=FailingBackend([WEAPON_URL]), batch_size=2, batch_delay=0)

        results = await classifier.bulk_moderate_images(urls)

        assert list(results) == urls
        assert results[WEAPON_URL].flags == ['batch_error']
        assert results[CLEAN_URL].is_approved is True
        assert results[urls[2]].is_approved is True
