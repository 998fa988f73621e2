import logging
import re

from .errors import ClassifierError
from .results import PartialResult, Severity

logger = logging.getLogger(__name__)

SENTENCE_SPLIT = re.compile(r'[.!?]+')
PARAGRAPH_SPLIT = re.compile(r'\n\s*\n')

# Platform vocabulary: cigars, beer, wine and review language
RELEVANT_KEYWORDS = [
    'cigar', 'tobacco', 'smoke', 'flavor', 'aroma', 'wrapper', 'filler', 'binder',
    'humidor', 'cutter', 'lighter', 'ash', 'draw', 'burn', 'ring gauge',
    'beer', 'brew', 'hops', 'malt', 'yeast', 'ale', 'lager', 'stout', 'ipa',
    'brewery', 'craft', 'bottle', 'draft', 'foam', 'bitter', 'sweet',
    'wine', 'grape', 'vintage', 'tannin', 'bouquet', 'cork', 'cellar',
    'red', 'white', 'rosé', 'champagne', 'vineyard', 'sommelier',
    'taste', 'review', 'rating', 'recommend', 'experience', 'quality',
    'enjoy', 'share', 'collection', 'pairing', 'occasion',
]

PRODUCT_KEYWORDS = [
    'cigar', 'tobacco', 'beer', 'wine', 'whiskey', 'bourbon',
    'brand', 'vintage', 'brewery', 'distillery', 'vineyard'
]

PERSONAL_INDICATORS = [
    'i tried', 'i tasted', 'my experience', 'i enjoyed',
    'i recommend', 'i think', 'in my opinion'
]

COMMERCIAL_KEYWORDS = [
    'buy', 'sell', 'price', 'discount', 'sale', 'offer',
    'deal', 'cheap', 'expensive', 'cost', 'purchase'
]

BOILERPLATE_PHRASES = [
    'copy and paste', 'lorem ipsum', 'click here', 'buy now', 'limited time', 'act now',
]

SPAM_PHRASES = [
    'click here', 'buy now', 'limited time', 'act now',
    'free money', 'guaranteed', 'no risk', 'amazing deal'
]

CTA_WORDS = ['what', 'how', 'why', 'share', 'think', 'opinion', 'recommend']
PERSONAL_PRONOUNS = ['i', 'my', 'me', 'we', 'our', 'us']

SCORE_WEIGHTS = {
    'readability': 0.15,
    'coherence': 0.15,
    'relevance': 0.20,
    'originality': 0.20,
    'engagement': 0.10,
    'length': 0.10,
    'structure': 0.10,
}


def _sentences(text):
    return [s for s in SENTENCE_SPLIT.split(text) if s.strip()]


def count_syllables(word):
    word = word.lower()
    if len(word) <= 3:
        return 1

    count = 0
    previous_was_vowel = False
    for char in word:
        is_vowel = char in 'aeiouy'
        if is_vowel and not previous_was_vowel:
            count += 1
        previous_was_vowel = is_vowel

    # Silent trailing 'e'
    if word.endswith('e'):
        count -= 1
    return max(1, count)


def readability(text):
    """Flesch reading ease scaled to [0, 1]"""
    sentences = _sentences(text)
    words = text.split()
    if not sentences or not words:
        return 0.0

    syllables = sum(count_syllables(word) for word in words)
    flesch = 206.835 - 1.015 * (len(words) / len(sentences)) - 84.6 * (syllables / len(words))
    return max(0.0, min(1.0, flesch / 100))


def coherence(text):
    sentences = _sentences(text)
    if not sentences:
        return 0.0
    if len(sentences) < 2:
        return 1.0

    frequencies = {}
    for word in text.lower().split():
        frequencies[word] = frequencies.get(word, 0) + 1
    repeated_terms = sum(1 for word, freq in frequencies.items() if freq > 1 and len(word) > 3)
    return min(1.0, repeated_terms / (len(sentences) * 0.5))


def relevance(text):
    words = text.lower().split()
    matching = sum(1 for word in words if any(keyword in word for keyword in RELEVANT_KEYWORDS))
    return min(1.0, matching / max(1, len(words) * 0.1))


def originality(text):
    if len(text) < 10:
        return 1.0

    lowered = text.lower()
    if any(phrase in lowered for phrase in BOILERPLATE_PHRASES):
        return 0.2

    words = text.split()
    unique_ratio = len({word.lower() for word in words}) / len(words)
    return max(0.3, unique_ratio)


def engagement(text):
    lowered = text.lower()
    words = lowered.split()

    score = min(0.3, text.count('?') * 0.1)
    score += min(0.2, text.count('!') * 0.05)
    score += min(0.3, sum(1 for word in CTA_WORDS if word in lowered) * 0.05)
    score += min(0.2, sum(1 for pronoun in PERSONAL_PRONOUNS if pronoun in words) * 0.03)
    return min(1.0, score)


def length_score(text):
    length = len(text)
    if length < 10:
        return 0.2
    if length < 50:
        return 0.6
    if length <= 500:
        return 1.0
    if length <= 1000:
        return 0.8
    if length <= 2000:
        return 0.6
    return 0.3


def structure(text):
    score = 0.0

    sentences = _sentences(text)
    if sentences:
        capitalized = sum(1 for s in sentences if s.strip()[:1].isupper())
        score += (capitalized / len(sentences)) * 0.3

    if len(text) > 200:
        paragraphs = [p for p in PARAGRAPH_SPLIT.split(text) if p.strip()]
        if len(paragraphs) > 1:
            score += 0.2

    if re.search(r'[.!?]', text):
        score += 0.3

    if sum(1 for c in text if c.isupper()) / len(text) < 0.5:
        score += 0.2

    return min(1.0, score)


def quality_metrics(text):
    return {
        'readability': readability(text),
        'coherence': coherence(text),
        'relevance': relevance(text),
        'originality': originality(text),
        'engagement': engagement(text),
        'length': length_score(text),
        'structure': structure(text),
    }


def context_analysis(text, metrics):
    lowered = text.lower()
    return {
        'is_on_topic': metrics['relevance'] > 0.3,
        'has_product_mention': any(keyword in lowered for keyword in PRODUCT_KEYWORDS),
        'is_personal_experience': any(indicator in lowered for indicator in PERSONAL_INDICATORS),
        'is_commercial': sum(1 for keyword in COMMERCIAL_KEYWORDS if keyword in lowered) >= 2,
    }


def originality_check(text, metrics):
    lowered = text.lower()
    return {
        'is_original': metrics['originality'] > 0.7,
        'duplicate_score': 1 - metrics['originality'],
        'has_common_phrases': any(phrase in lowered for phrase in SPAM_PHRASES),
    }


def content_score(metrics, context, originality_result):
    score = sum(metrics[name] * weight for name, weight in SCORE_WEIGHTS.items())
    if not context['is_on_topic']:
        score *= 0.7
    if context['is_commercial']:
        score *= 0.8
    if not originality_result['is_original']:
        score *= 0.5
    return max(0.0, min(1.0, score))


def determine_severity(score, metrics):
    if score < 0.2 or metrics['originality'] < 0.3:
        return Severity.HIGH
    if score < 0.4 or metrics['relevance'] < 0.2:
        return Severity.MEDIUM
    return Severity.LOW


def calculate_confidence(metrics):
    average = sum(metrics.values()) / len(metrics)
    if average > 0.8 or average < 0.2:
        return 0.9
    if average > 0.6 or average < 0.4:
        return 0.7
    return 0.5


def auto_actions_for(score, originality_result):
    if score < 0.2:
        return ['hide_content', 'send_warning']
    if not originality_result['is_original']:
        return ['flag_duplicate']
    if score < 0.4:
        return ['reduce_visibility']
    return []


def fallback_result(error=None):
    """Quality is advisory, so a failure approves with reduced confidence"""
    return PartialResult(
        is_approved=True,
        confidence=0.5,
        flags=['analysis_error'],
        reasons=['Content analysis failed'],
        severity=Severity.LOW,
        metadata={'quality_error': str(error)} if error else {},
    )


DEFAULT_BEHAVIOR = {
    'is_frequent_poster': False,
    'avg_content_length': 0.0,
    'recent_activity': 0,
    'suspicious_activity': False,
}


class QualityAnalyzer:
    """Scores non-safety quality dimensions of text content"""

    def __init__(self, database=None):
        if database is None:
            from app.services.database_service import db_service
            database = db_service
        self.db = database

    def analyze(self, text):
        """Quality partial result for text. Raises ClassifierError."""
        if not text or not text.strip():
            # Image-only content has nothing to grade
            return PartialResult(is_approved=True, metadata={'quality': {'skipped': 'no_text'}})

        try:
            metrics = quality_metrics(text)
            context = context_analysis(text, metrics)
            originality_result = originality_check(text, metrics)
            score = content_score(metrics, context, originality_result)
            severity = determine_severity(score, metrics)

            flags = []
            reasons = []
            if metrics['readability'] < 0.3:
                flags.append('poor_readability')
                reasons.append('Content is difficult to read')
            if metrics['relevance'] < 0.2:
                flags.append('off_topic')
                reasons.append('Content is not relevant to the platform')
            if not originality_result['is_original']:
                flags.append('duplicate_content')
                reasons.append('Content appears to be copied or duplicated')
            if context['is_commercial']:
                flags.append('commercial_content')
                reasons.append('Content appears to be commercial or promotional')
            if metrics['length'] < 0.3:
                flags.append('low_quality')
                reasons.append('Content quality is below standards')

            return PartialResult(
                is_approved=severity not in (Severity.HIGH, Severity.CRITICAL) and score >= 0.3,
                confidence=calculate_confidence(metrics),
                flags=flags,
                reasons=reasons,
                severity=severity,
                requires_human_review=score < 0.3 or not originality_result['is_original'],
                auto_actions=auto_actions_for(score, originality_result),
                metadata={'quality': {
                    'metrics': metrics,
                    'context': context,
                    'originality': originality_result,
                    'content_score': score,
                }},
            )
        except (TypeError, ValueError, ZeroDivisionError, AttributeError) as e:
            raise ClassifierError('quality', str(e)) from e

    async def analyze_user_behavior(self, user_id):
        """Posting pattern over the last 24 hours"""
        activity = await self.db.get_user_activity(user_id)
        if activity is None:
            logger.error(f"User behavior unavailable for {user_id}, using defaults")
            return dict(DEFAULT_BEHAVIOR)

        return {
            'is_frequent_poster': activity['posts_last_24h'] > 10,
            'avg_content_length': activity['avg_content_length_24h'],
            'recent_activity': activity['posts_last_hour'],
            'suspicious_activity': activity['posts_last_hour'] > 5,
        }

    async def analyze_content(self, content):
        """Quality result for a ContentToModerate with behavior context attached"""
        partial = self.analyze(content.content)
        behavior = await self.analyze_user_behavior(content.user_id)
        partial.metadata.setdefault('quality', {})['behavior'] = behavior
        return partial
