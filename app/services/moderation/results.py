"""
Moderation result types and the merge semantics shared by every component.

A run starts from an approving identity result and folds in one partial
result per analyzer. Merging takes the maximum severity, the minimum
confidence, ANDs approval (an absent opinion never vetoes), ORs the review
flag and unions flags, reasons and auto-actions in first-seen order.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class Severity(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    CRITICAL = 'critical'

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class ContentType(str, Enum):
    POST = 'post'
    COMMENT = 'comment'
    IMAGE = 'image'
    PROFILE = 'profile'
    MESSAGE = 'message'


def max_severity(*severities: Optional[Severity]) -> Severity:
    """Highest severity in the lattice low < medium < high < critical"""
    highest = Severity.LOW
    for severity in severities:
        if severity is None:
            continue
        severity = Severity(severity)
        if severity.rank > highest.rank:
            highest = severity
    return highest


def _union(current: Iterable[str], additional: Optional[Iterable[str]]) -> List[str]:
    merged = list(dict.fromkeys(current))
    for item in additional or []:
        if item not in merged:
            merged.append(item)
    return merged


def _merge_metadata(current: Dict[str, Any], additional: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    merged = dict(current)
    for key, value in (additional or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


@dataclass(frozen=True)
class ContentToModerate:
    """Immutable input to a moderation run"""
    id: str
    type: ContentType
    user_id: str
    content: Optional[str] = None
    image_urls: tuple = ()
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ContentToModerate':
        return cls(
            id=str(data['content_id']),
            type=ContentType(data['content_type']),
            user_id=str(data['user_id']),
            content=data.get('content'),
            image_urls=tuple(data.get('image_urls') or ()),
            metadata=dict(data.get('metadata') or {}),
        )


@dataclass
class PartialResult:
    """One component's opinion. None means the component has no opinion."""
    is_approved: Optional[bool] = None
    confidence: Optional[float] = None
    flags: List[str] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)
    severity: Optional[Severity] = None
    requires_human_review: Optional[bool] = None
    auto_actions: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_approved': self.is_approved,
            'confidence': self.confidence,
            'flags': list(self.flags),
            'reasons': list(self.reasons),
            'severity': self.severity.value if self.severity else None,
            'requires_human_review': self.requires_human_review,
            'auto_actions': list(self.auto_actions),
            'metadata': self.metadata,
        }


@dataclass
class ModerationResult:
    is_approved: bool = True
    confidence: float = 1.0
    flags: List[str] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)
    severity: Severity = Severity.LOW
    requires_human_review: bool = False
    auto_actions: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def identity(cls) -> 'ModerationResult':
        return cls()

    @classmethod
    def fail_closed(cls, flag: str, reason: str, error: Optional[str] = None) -> 'ModerationResult':
        return cls(
            is_approved=False,
            confidence=0.0,
            flags=[flag],
            reasons=[reason],
            severity=Severity.HIGH,
            requires_human_review=True,
            metadata={'error': error} if error else {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_approved': self.is_approved,
            'confidence': self.confidence,
            'flags': list(self.flags),
            'reasons': list(self.reasons),
            'severity': self.severity.value,
            'requires_human_review': self.requires_human_review,
            'auto_actions': list(self.auto_actions),
            'metadata': self.metadata,
        }


def combine(current: ModerationResult, additional: PartialResult) -> ModerationResult:
    """Fold one partial result into the running result. Neither input is mutated."""
    confidence = current.confidence
    if additional.confidence is not None:
        confidence = min(confidence, additional.confidence)

    return ModerationResult(
        is_approved=current.is_approved and additional.is_approved is not False,
        confidence=confidence,
        flags=_union(current.flags, additional.flags),
        reasons=_union(current.reasons, additional.reasons),
        severity=max_severity(current.severity, additional.severity),
        requires_human_review=bool(current.requires_human_review or additional.requires_human_review),
        auto_actions=_union(current.auto_actions, additional.auto_actions),
        metadata=_merge_metadata(current.metadata, additional.metadata),
    )


def combine_all(partials: Iterable[PartialResult]) -> ModerationResult:
    result = ModerationResult.identity()
    for partial in partials:
        result = combine(result, partial)
    return result
