import logging
import re
from dataclasses import asdict, dataclass

from .errors import ClassifierError
from .results import PartialResult, Severity

logger = logging.getLogger(__name__)


PROFANITY_PATTERNS = [
    re.compile(r'\b(fuck|shit|damn|bitch|asshole|bastard)\b'),
    re.compile(r'\b(cunt|whore|slut|faggot|nigger|retard)\b'),
]

SPAM_PHRASE_PATTERNS = [
    re.compile(r'\b(buy now|click here|limited time|act now|free money)\b'),
    re.compile(r'\b(viagra|cialis|casino|lottery|winner)\b'),
]

URL_PATTERN = re.compile(r'https?://[^\s]+')
REPEATED_CHAR_PATTERN = re.compile(r'(.)\1{10,}')
PUNCTUATION_RUN_PATTERN = re.compile(r'[!?]{2,}')

PERSONAL_INFO_PATTERNS = [
    re.compile(r'\b\d{3}-\d{2}-\d{4}\b'),                              # SSN
    re.compile(r'\b\d{3}-\d{3}-\d{4}\b'),                              # phone
    re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'),  # email
    re.compile(r'\b\d{4}\s?\d{4}\s?\d{4}\s?\d{4}\b'),                  # card number
]

HATE_PATTERNS = [
    re.compile(r'\b(kill yourself|kys|die|suicide)\b'),
    re.compile(r'\b(terrorist|nazi|hitler|genocide)\b'),
]

VIOLENCE_PATTERNS = [
    re.compile(r'\b(murder|kill|bomb|shoot|stab|attack)\b'),
    re.compile(r'\b(weapon|gun|knife|explosive|violence)\b'),
]

SEXUAL_PATTERNS = [
    re.compile(r'\b(porn|sex|nude|naked|explicit)\b'),
]

DRUG_PATTERNS = [
    re.compile(r'\b(cocaine|heroin|meth|weed|marijuana|drugs)\b'),
    re.compile(r'\b(dealer|selling|buying|high|stoned)\b'),
]

GAMBLING_PATTERNS = [
    re.compile(r'\b(bet|gambling|casino|poker|lottery)\b'),
    re.compile(r'\b(odds|wager|jackpot|slots)\b'),
]

TOXIC_WORDS = {'hate', 'stupid', 'idiot', 'moron', 'loser'}
HARASSMENT_PHRASES = ['threaten', 'harass', 'stalk', 'follow', 'find you']
PERSONAL_ATTACKS = ['you are', "you're", 'your']
NEGATIVE_WORDS = ['stupid', 'ugly', 'worthless', 'pathetic']

WEIGHTS = {
    'toxicity': 0.20,
    'profanity': 0.15,
    'spam': 0.10,
    'hate': 0.25,
    'harassment': 0.20,
    'violence': 0.30,
    'sexual': 0.15,
    'drugs': 0.10,
    'gambling': 0.05,
    'personal_info': 0.20,
}

# category -> (threshold, flag, reason)
FLAG_RULES = [
    ('toxicity', 0.3, 'toxic_content', 'Content contains toxic language'),
    ('profanity', 0.2, 'profanity', 'Content contains profanity'),
    ('spam', 0.4, 'spam', 'Content appears to be spam'),
    ('hate', 0.2, 'hate_speech', 'Content contains hate speech'),
    ('harassment', 0.3, 'harassment', 'Content contains harassment'),
    ('violence', 0.3, 'violence', 'Content contains violent language'),
    ('sexual', 0.3, 'sexual_content', 'Content contains sexual material'),
    ('drugs', 0.4, 'drug_content', 'Content references illegal drugs'),
    ('gambling', 0.5, 'gambling', 'Content promotes gambling'),
    ('personal_info', 0.1, 'personal_info', 'Content contains personal information'),
]

# Categories an AI scorer may raise
AI_CATEGORIES = ('hate', 'harassment', 'violence', 'sexual')


@dataclass
class TextScores:
    toxicity: float = 0.0
    profanity: float = 0.0
    spam: float = 0.0
    hate: float = 0.0
    harassment: float = 0.0
    violence: float = 0.0
    sexual: float = 0.0
    drugs: float = 0.0
    gambling: float = 0.0
    personal_info: float = 0.0

    def to_dict(self):
        return asdict(self)


def _pattern_score(patterns, text, per_match):
    matches = sum(len(pattern.findall(text)) for pattern in patterns)
    return min(matches * per_match, 1.0)


def score_toxicity(text):
    words = text.lower().split()
    if not words:
        return 0.0
    toxic_count = sum(1 for word in words if word in TOXIC_WORDS)
    return min(toxic_count / len(words) * 5, 1.0)


def score_spam(text):
    """Spam phrases, URL floods, character runs, shouting and punctuation runs"""
    normalized = text.lower()
    score = 0.0

    for pattern in SPAM_PHRASE_PATTERNS:
        score += len(pattern.findall(normalized)) * 0.2

    if len(URL_PATTERN.findall(normalized)) >= 3:
        score += 0.2

    score += len(REPEATED_CHAR_PATTERN.findall(normalized)) * 0.2

    letters = [c for c in text if c.isalpha()]
    if letters and sum(1 for c in letters if c.isupper()) / len(letters) > 0.5:
        score += 0.3

    if len(PUNCTUATION_RUN_PATTERN.findall(text)) > 2:
        score += 0.2

    return min(score, 1.0)


def score_harassment(text):
    normalized = text.lower()
    score = 0.0

    for phrase in HARASSMENT_PHRASES:
        if phrase in normalized:
            score += 0.3

    for attack in PERSONAL_ATTACKS:
        for negative in NEGATIVE_WORDS:
            if attack in normalized and negative in normalized:
                score += 0.2

    return min(score, 1.0)


def analyze_text(text):
    normalized = text.lower()
    return TextScores(
        toxicity=score_toxicity(text),
        profanity=_pattern_score(PROFANITY_PATTERNS, normalized, 0.3),
        spam=score_spam(text),
        hate=_pattern_score(HATE_PATTERNS, normalized, 0.5),
        harassment=score_harassment(text),
        violence=_pattern_score(VIOLENCE_PATTERNS, normalized, 0.4),
        sexual=_pattern_score(SEXUAL_PATTERNS, normalized, 0.3),
        drugs=_pattern_score(DRUG_PATTERNS, normalized, 0.3),
        gambling=_pattern_score(GAMBLING_PATTERNS, normalized, 0.2),
        # PII patterns need the original case
        personal_info=_pattern_score(PERSONAL_INFO_PATTERNS, text, 0.5),
    )


def calculate_risk_score(scores):
    """Weighted mean of the category scores, in [0, 1]"""
    values = scores.to_dict()
    weighted = sum(values[category] * weight for category, weight in WEIGHTS.items())
    return weighted / sum(WEIGHTS.values())


def determine_severity(risk_score, scores):
    if scores.violence > 0.5 or scores.hate > 0.4 or scores.harassment > 0.5:
        return Severity.CRITICAL
    if risk_score > 0.6 or scores.personal_info > 0.3:
        return Severity.HIGH
    if risk_score > 0.3:
        return Severity.MEDIUM
    return Severity.LOW


def is_approved(risk_score, severity):
    if severity == Severity.CRITICAL:
        return False
    if severity == Severity.HIGH and risk_score > 0.7:
        return False
    return risk_score <= 0.8


def calculate_confidence(risk_score):
    if risk_score > 0.8 or risk_score < 0.1:
        return 0.9
    if risk_score > 0.5 or risk_score < 0.3:
        return 0.7
    return 0.5


def requires_review(risk_score, confidence, severity):
    if severity == Severity.CRITICAL:
        return True
    if severity == Severity.HIGH and confidence < 0.8:
        return True
    return risk_score > 0.4 and confidence < 0.6


def auto_actions_for(severity, risk_score):
    if severity == Severity.CRITICAL:
        return ['hide_content', 'flag_user', 'send_warning']
    if severity == Severity.HIGH:
        return ['hide_content', 'send_warning']
    if severity == Severity.MEDIUM and risk_score > 0.5:
        return ['send_warning']
    return []


def fallback_result(error=None):
    """Fail-closed contribution used when text analysis breaks"""
    return PartialResult(
        is_approved=False,
        confidence=0.0,
        flags=['text_analysis_error'],
        reasons=['Text analysis failed - requires manual review'],
        severity=Severity.HIGH,
        requires_human_review=True,
        metadata={'text_error': str(error)} if error else {},
    )


class TextClassifier:
    """Pattern-based text classifier with an optional AI scorer"""

    def __init__(self, ai_scorer=None):
        self.ai_scorer = ai_scorer

    def classify(self, text):
        """Score text and build its partial result. Raises ClassifierError."""
        if not text or not text.strip():
            return PartialResult(is_approved=True, confidence=1.0, severity=Severity.LOW)

        try:
            scores = analyze_text(text)
            ai_scores = self._apply_ai_scores(text, scores)

            risk_score = calculate_risk_score(scores)
            severity = determine_severity(risk_score, scores)
            confidence = calculate_confidence(risk_score)

            values = scores.to_dict()
            flags = []
            reasons = []
            for category, threshold, flag, reason in FLAG_RULES:
                if values[category] > threshold:
                    flags.append(flag)
                    reasons.append(reason)

            metadata = {
                'text_analysis': values,
                'risk_score': risk_score,
                'text_length': len(text),
            }
            if ai_scores:
                metadata['ai_scores'] = ai_scores

            return PartialResult(
                is_approved=is_approved(risk_score, severity),
                confidence=confidence,
                flags=flags,
                reasons=reasons,
                severity=severity,
                requires_human_review=requires_review(risk_score, confidence, severity),
                auto_actions=auto_actions_for(severity, risk_score),
                metadata=metadata,
            )
        except (re.error, TypeError, ValueError, AttributeError, KeyError) as e:
            raise ClassifierError('text', str(e)) from e

    def _apply_ai_scores(self, text, scores):
        if self.ai_scorer is None:
            return None

        ai_scores = self.ai_scorer.score(text)
        if not ai_scores:
            return None

        for category in AI_CATEGORIES:
            value = ai_scores.get(category)
            if value is not None and value > getattr(scores, category):
                setattr(scores, category, min(float(value), 1.0))
        return ai_scores
