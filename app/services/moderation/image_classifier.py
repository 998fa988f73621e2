import asyncio
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import List, Optional
from urllib.parse import urlparse

from .errors import ClassifierError
from .results import PartialResult, Severity

logger = logging.getLogger(__name__)

VALID_SCHEMES = ('http', 'https')
VALID_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.webp')

WEIGHTS = {
    'adult': 0.4,
    'violence': 0.3,
    'racy': 0.2,
    'medical': 0.1,
    'spoof': 0.1,
}

# Labels that raise the risk score
RISK_LABELS = {'weapon', 'blood', 'explicit', 'nudity', 'inappropriate'}
# Labels reported back as suspicious elements
SUSPICIOUS_LABELS = {'weapon', 'blood', 'explicit', 'nudity'}

RISKY_TEXT_PATTERNS = [
    re.compile(r'buy now|click here|limited time', re.IGNORECASE),
    re.compile(r'explicit|inappropriate|adult', re.IGNORECASE),
]
INAPPROPRIATE_TEXT_PATTERNS = RISKY_TEXT_PATTERNS + [
    re.compile(r'fuck|shit|damn', re.IGNORECASE),
]

KNOWN_LABELS = {
    'person', 'food', 'drink', 'cigar', 'tobacco', 'alcohol', 'wine', 'beer',
    'restaurant', 'bar', 'outdoor', 'indoor', 'table', 'glass', 'bottle',
    'hand', 'face', 'smile', 'celebration', 'party', 'social', 'friends',
    'weapon', 'blood', 'violence', 'explicit', 'nudity', 'inappropriate'
}


@dataclass
class ImageAnalysis:
    adult: float = 0.0
    violence: float = 0.0
    racy: float = 0.0
    medical: float = 0.0
    spoof: float = 0.0
    labels: List[str] = field(default_factory=list)
    faces: int = 0
    text: Optional[str] = None
    quality: float = 1.0

    def to_dict(self):
        return asdict(self)


class HeuristicVisionBackend:
    """Derives labels from the URL path; stands in for a real vision API"""

    def analyze(self, image_url):
        path = urlparse(image_url).path.lower()
        tokens = set(re.split(r'[^a-z]+', path))
        labels = sorted(tokens & KNOWN_LABELS)

        analysis = ImageAnalysis(
            adult=0.05,
            violence=0.05,
            racy=0.05,
            labels=labels,
            faces=1 if {'person', 'face'} & set(labels) else 0,
            quality=0.85,
        )

        if 'alcohol' in labels or 'tobacco' in labels:
            analysis.adult = max(analysis.adult, 0.4)
        if 'weapon' in labels or 'blood' in labels or 'violence' in labels:
            analysis.violence = max(analysis.violence, 0.6)
        if 'explicit' in labels or 'nudity' in labels:
            analysis.adult = max(analysis.adult, 0.6)
            analysis.racy = max(analysis.racy, 0.6)

        return analysis


def is_valid_image_url(url):
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return (parsed.scheme in VALID_SCHEMES and bool(parsed.netloc)
            and parsed.path.lower().endswith(VALID_EXTENSIONS))


def calculate_risk_score(analysis):
    weighted = sum(getattr(analysis, key) * weight for key, weight in WEIGHTS.items())
    score = weighted / sum(WEIGHTS.values())

    if analysis.quality < 0.3:
        score += 0.2
    if any(label.lower() in RISK_LABELS for label in analysis.labels):
        score += 0.3
    if analysis.text and any(p.search(analysis.text) for p in RISKY_TEXT_PATTERNS):
        score += 0.2

    return min(score, 1.0)


def flags_and_reasons(analysis):
    flags = []
    reasons = []

    if analysis.adult > 0.5:
        flags.append('adult_content')
        reasons.append('Image contains adult content')
    if analysis.violence > 0.4:
        flags.append('violent_content')
        reasons.append('Image contains violent content')
    if analysis.racy > 0.6:
        flags.append('racy_content')
        reasons.append('Image contains racy or suggestive content')
    if analysis.medical > 0.7:
        flags.append('medical_content')
        reasons.append('Image contains medical content')
    if analysis.spoof > 0.5:
        flags.append('spoof_content')
        reasons.append('Image appears to be spoofed or manipulated')
    if analysis.quality < 0.3:
        flags.append('low_quality')
        reasons.append('Image quality is too low')

    suspicious = [label for label in analysis.labels if label.lower() in SUSPICIOUS_LABELS]
    if suspicious:
        flags.append('suspicious_content')
        reasons.append(f"Image contains suspicious elements: {', '.join(suspicious)}")

    if analysis.text and any(p.search(analysis.text) for p in INAPPROPRIATE_TEXT_PATTERNS):
        flags.append('inappropriate_text')
        reasons.append('Image contains inappropriate text')

    return flags, reasons


def determine_severity(risk_score, analysis):
    if analysis.adult > 0.8 or analysis.violence > 0.7:
        return Severity.CRITICAL
    if risk_score > 0.6 or analysis.adult > 0.5 or analysis.violence > 0.4:
        return Severity.HIGH
    if risk_score > 0.3 or analysis.racy > 0.5:
        return Severity.MEDIUM
    return Severity.LOW


def is_approved(risk_score, severity, analysis):
    if severity == Severity.CRITICAL:
        return False
    if analysis.adult > 0.7 or analysis.violence > 0.6:
        return False
    return risk_score <= 0.7


def calculate_confidence(risk_score, analysis):
    if risk_score > 0.8 or risk_score < 0.1:
        return 0.9

    agreeing = sum([analysis.adult > 0.5, analysis.violence > 0.4, analysis.racy > 0.6])
    if agreeing >= 2:
        return 0.85

    if risk_score > 0.4 or risk_score < 0.3:
        return 0.7
    return 0.5


def requires_review(risk_score, confidence, severity):
    if severity == Severity.CRITICAL:
        return True
    if severity == Severity.HIGH and confidence < 0.8:
        return True
    return risk_score > 0.4 and confidence < 0.6


def auto_actions_for(severity, risk_score, analysis):
    actions = []
    if severity == Severity.CRITICAL:
        actions.extend(['hide_content', 'flag_user', 'send_warning'])
    elif severity == Severity.HIGH:
        actions.extend(['hide_content', 'send_warning'])
    elif severity == Severity.MEDIUM and risk_score > 0.5:
        actions.append('send_warning')

    if analysis.adult > 0.6:
        actions.append('adult_content_violation')
    if analysis.violence > 0.5:
        actions.append('violence_violation')

    return list(dict.fromkeys(actions))


def invalid_url_result(image_url):
    return PartialResult(
        is_approved=False,
        confidence=0.9,
        flags=['invalid_image'],
        reasons=['Invalid or inaccessible image URL'],
        severity=Severity.MEDIUM,
        metadata={'images': {str(image_url): {'valid': False}}},
    )


def fallback_result(image_url=None, error=None):
    """Fail-closed contribution used when image analysis breaks"""
    metadata = {}
    if image_url:
        metadata['images'] = {image_url: {'error': str(error) if error else 'analysis failed'}}
    return PartialResult(
        is_approved=False,
        confidence=0.0,
        flags=['image_analysis_error'],
        reasons=['Image analysis failed - requires manual review'],
        severity=Severity.HIGH,
        requires_human_review=True,
        metadata=metadata,
    )


def batch_error_result():
    return PartialResult(
        is_approved=False,
        confidence=0.0,
        flags=['batch_error'],
        reasons=['Batch processing error'],
        severity=Severity.HIGH,
        requires_human_review=True,
    )


class ImageClassifier:
    """Scores image URLs through a pluggable vision backend"""

    def __init__(self, backend=None, batch_size=5, batch_delay=0.2):
        self.backend = backend or HeuristicVisionBackend()
        self.batch_size = batch_size
        self.batch_delay = batch_delay

    def classify(self, image_url):
        """Analyze one image URL. Raises ClassifierError when the backend fails."""
        if not is_valid_image_url(image_url):
            return invalid_url_result(image_url)

        try:
            analysis = self.backend.analyze(image_url)
        except Exception as e:
            raise ClassifierError('image', f"{image_url}: {str(e)}") from e

        risk_score = calculate_risk_score(analysis)
        severity = determine_severity(risk_score, analysis)
        confidence = calculate_confidence(risk_score, analysis)
        flags, reasons = flags_and_reasons(analysis)

        return PartialResult(
            is_approved=is_approved(risk_score, severity, analysis),
            confidence=confidence,
            flags=flags,
            reasons=reasons,
            severity=severity,
            requires_human_review=requires_review(risk_score, confidence, severity),
            auto_actions=auto_actions_for(severity, risk_score, analysis),
            metadata={'images': {image_url: {
                'analysis': analysis.to_dict(),
                'risk_score': risk_score,
            }}},
        )

    async def bulk_moderate_images(self, image_urls):
        """Moderate URLs in fixed-size batches; one failure never aborts a batch"""
        loop = asyncio.get_running_loop()
        results = {}

        for start in range(0, len(image_urls), self.batch_size):
            batch = image_urls[start:start + self.batch_size]
            outcomes = await asyncio.gather(
                *(loop.run_in_executor(None, self.classify, url) for url in batch),
                return_exceptions=True
            )

            for url, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    logger.error(f"Batch image moderation error for {url}: {str(outcome)}")
                    results[url] = batch_error_result()
                else:
                    results[url] = outcome

            if start + self.batch_size < len(image_urls) and self.batch_delay:
                await asyncio.sleep(self.batch_delay)

        return results
