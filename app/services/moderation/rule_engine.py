"""
Rule-based auto-moderation.

Rules come from an immutable catalog (config/default_rules.py). The only
mutable state is the per-rule active flag held by the registry, and each
evaluation pass works on a snapshot of the active rules taken under the
registry lock. Conditions are a closed set of predicate kinds; every kind has
exactly one evaluator.
"""
import asyncio
import logging
import re
import threading
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Optional

from config.default_rules import DEFAULT_AUTO_MODERATION_RULES

from app.services.error_tracker import error_tracker
from app.utils.time_utils import resolve_time_range

from .errors import ClassifierError, RuleEvaluationError
from .results import PartialResult, Severity, max_severity

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r'https?://[^\s]+', re.IGNORECASE)
EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b')

SPAM_PATTERNS = [
    re.compile(r'(.)\1{10,}'),
    re.compile(r'\b(buy now|click here|limited time|act now|free money|guaranteed|no risk)\b', re.IGNORECASE),
    re.compile(r'[A-Z]{20,}'),
    re.compile(r'[!?]{5,}'),
    re.compile(r'\b\d{3}-\d{3}-\d{4}\b'),
    EMAIL_PATTERN,
]

SUSPICIOUS_LINK_PATTERNS = [
    re.compile(r'bit\.ly|tinyurl|t\.co|goo\.gl|ow\.ly|short\.link', re.IGNORECASE),
    re.compile(r'\b(\.tk|\.ml|\.ga|\.cf)\b', re.IGNORECASE),
    re.compile(r'https?://\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}', re.IGNORECASE),
    re.compile(r'redirect|forward|proxy', re.IGNORECASE),
]

# Actions that keep content from publishing until a human approves it
BLOCKING_ACTIONS = ('hide_content', 'require_approval')


class RuleType(str, Enum):
    CONTENT = 'content'
    USER = 'user'
    BEHAVIOR = 'behavior'


class ConditionKind(str, Enum):
    CONTAINS_SPAM_PATTERNS = 'contains_spam_patterns'
    POSTS_PER_HOUR_ABOVE = 'posts_per_hour_above'
    NEW_ACCOUNT_POSTS_ABOVE = 'new_account_posts_above'
    REPORTS_AT_LEAST = 'reports_at_least'
    CONTAINS_SUSPICIOUS_LINKS = 'contains_suspicious_links'
    EXACT_DUPLICATE = 'exact_duplicate'


@dataclass(frozen=True)
class Condition:
    kind: ConditionKind
    threshold: Optional[float] = None
    window_hours: Optional[float] = None

    @classmethod
    def from_dict(cls, data):
        return cls(
            kind=ConditionKind(data['kind']),
            threshold=data.get('threshold'),
            window_hours=data.get('window_hours'),
        )

    def to_dict(self):
        return {'kind': self.kind.value, 'threshold': self.threshold, 'window_hours': self.window_hours}


@dataclass(frozen=True)
class ModerationRule:
    id: str
    name: str
    type: RuleType
    condition: Condition
    action: str
    severity: Severity
    default_active: bool = True

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            name=data['name'],
            type=RuleType(data['type']),
            condition=Condition.from_dict(data['condition']),
            action=data['action'],
            severity=Severity(data['severity']),
            default_active=data.get('is_active', True),
        )

    def to_dict(self, is_active):
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type.value,
            'condition': self.condition.to_dict(),
            'action': self.action,
            'severity': self.severity.value,
            'is_active': is_active,
        }


@dataclass(frozen=True)
class UserBehaviorMetrics:
    """Snapshot of a user's recent behavior, computed fresh for every run"""
    posts_last_hour: int = 0
    posts_last_24h: int = 0
    comments_last_24h: int = 0
    reports_received: int = 0
    account_age_hours: float = 0.0
    followers_count: int = 0
    engagement_rate: float = 0.0
    suspicious_activity: bool = False

    @classmethod
    def from_activity(cls, activity: Dict[str, Any]) -> 'UserBehaviorMetrics':
        account_age_hours = activity['account_age_hours'] if activity['user_exists'] else 0.0
        posts = activity['posts_last_24h']
        comments = activity['comments_last_24h']
        reports = activity['reports_received']

        suspicious = (
            (account_age_hours < 24 and posts + comments > 20)
            or reports > 5
            or posts > 50
            or comments > 100
        )

        return cls(
            posts_last_hour=activity['posts_last_hour'],
            posts_last_24h=posts,
            comments_last_24h=comments,
            reports_received=reports,
            account_age_hours=account_age_hours,
            followers_count=activity['followers_count'],
            engagement_rate=activity['engagement_rate'],
            suspicious_activity=suspicious,
        )

    def to_dict(self):
        return {
            'posts_last_hour': self.posts_last_hour,
            'posts_last_24h': self.posts_last_24h,
            'comments_last_24h': self.comments_last_24h,
            'reports_received': self.reports_received,
            'account_age_hours': self.account_age_hours,
            'followers_count': self.followers_count,
            'engagement_rate': self.engagement_rate,
            'suspicious_activity': self.suspicious_activity,
        }


class RuleRegistry:
    """Immutable rule catalog plus a lock-guarded active/inactive map"""

    def __init__(self, rules):
        self._rules = MappingProxyType({rule.id: rule for rule in rules})
        self._active = {rule.id: rule.default_active for rule in rules}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, rule_dicts=None):
        return cls([ModerationRule.from_dict(data)
                    for data in (rule_dicts if rule_dicts is not None else DEFAULT_AUTO_MODERATION_RULES)])

    def snapshot_active(self) -> List[ModerationRule]:
        """Active rules at this instant; later toggles do not affect the returned list"""
        with self._lock:
            return [self._rules[rule_id] for rule_id, active in self._active.items() if active]

    def set_status(self, rule_id: str, is_active: bool) -> bool:
        """Activate or deactivate a rule. False for an unknown rule id."""
        if rule_id not in self._rules:
            return False
        with self._lock:
            self._active[rule_id] = bool(is_active)
        logger.info(f"Rule {rule_id} {'activated' if is_active else 'deactivated'}")
        return True

    def get_rules(self) -> List[Dict[str, Any]]:
        with self._lock:
            status = dict(self._active)
        return [rule.to_dict(status[rule_id]) for rule_id, rule in self._rules.items()]

    def get_active_rules(self) -> List[Dict[str, Any]]:
        return [rule.to_dict(True) for rule in self.snapshot_active()]


def spam_pattern_score(text):
    """Count spam signals; two or more means the content looks like spam"""
    score = 0

    if len(URL_PATTERN.findall(text)) >= 3:
        score += 1

    for pattern in SPAM_PATTERNS:
        score += len(pattern.findall(text))

    words = text.lower().split()
    if len(words) >= 5:
        most_common = Counter(words).most_common(1)[0][1]
        if most_common > len(words) * 0.3:
            score += 2

    return score


def has_suspicious_links(text):
    return any(pattern.search(text) for pattern in SUSPICIOUS_LINK_PATTERNS)


@dataclass(frozen=True)
class RuleContext:
    content: Any
    metrics: UserBehaviorMetrics


class RuleEngine:
    """Evaluates active auto-moderation rules against one piece of content"""

    def __init__(self, registry=None, database=None):
        if database is None:
            from app.services.database_service import db_service
            database = db_service
        self.db = database
        self.registry = registry or rule_registry

        self._evaluators = {
            ConditionKind.CONTAINS_SPAM_PATTERNS: self._check_spam_patterns,
            ConditionKind.POSTS_PER_HOUR_ABOVE: self._check_posts_per_hour,
            ConditionKind.NEW_ACCOUNT_POSTS_ABOVE: self._check_new_account_posts,
            ConditionKind.REPORTS_AT_LEAST: self._check_reports,
            ConditionKind.CONTAINS_SUSPICIOUS_LINKS: self._check_suspicious_links,
            ConditionKind.EXACT_DUPLICATE: self._check_exact_duplicate,
        }
        missing = set(ConditionKind) - set(self._evaluators)
        if missing:
            raise RuntimeError(f"No evaluator for condition kinds: {sorted(k.value for k in missing)}")

    # Condition evaluators
    async def _check_spam_patterns(self, condition, context):
        text = context.content.content or ''
        return spam_pattern_score(text) >= (condition.threshold or 2)

    async def _check_posts_per_hour(self, condition, context):
        return context.metrics.posts_last_hour > condition.threshold

    async def _check_new_account_posts(self, condition, context):
        return (context.metrics.account_age_hours < (condition.window_hours or 24)
                and context.metrics.posts_last_24h > condition.threshold)

    async def _check_reports(self, condition, context):
        count = await self.db.count_recent_content_reports(
            context.content.id, context.content.type.value, hours=condition.window_hours or 24)
        if count is None:
            raise RuleEvaluationError('reports_at_least', 'report count unavailable')
        return count >= condition.threshold

    async def _check_suspicious_links(self, condition, context):
        return has_suspicious_links(context.content.content or '')

    async def _check_exact_duplicate(self, condition, context):
        text = context.content.content or ''
        if len(text) < (condition.threshold or 50):
            return False
        count = await self.db.count_exact_duplicates(
            text, context.content.user_id, days=(condition.window_hours or 168) / 24)
        if count is None:
            raise RuleEvaluationError('exact_duplicate', 'duplicate count unavailable')
        return count > 0

    async def _evaluate_rule(self, rule, context):
        try:
            return await self._evaluators[rule.condition.kind](rule.condition, context)
        except RuleEvaluationError as e:
            raise RuleEvaluationError(rule.id, e.message) from e
        except Exception as e:
            raise RuleEvaluationError(rule.id, str(e)) from e

    async def get_user_behavior_metrics(self, user_id) -> UserBehaviorMetrics:
        activity = await self.db.get_user_activity(user_id)
        if activity is None:
            raise ClassifierError('rules', f"behavior metrics unavailable for user {user_id}")
        return UserBehaviorMetrics.from_activity(activity)

    async def apply_rules(self, content) -> PartialResult:
        """Evaluate every active rule in parallel.

        A failing rule is logged and counts as not triggered. Raises
        ClassifierError when the shared behavior context cannot be built.
        """
        rules = self.registry.snapshot_active()
        if not rules:
            return PartialResult()

        context = RuleContext(content=content, metrics=await self.get_user_behavior_metrics(content.user_id))

        outcomes = await asyncio.gather(
            *(self._evaluate_rule(rule, context) for rule in rules),
            return_exceptions=True
        )

        triggered = []
        failed = []
        for rule, outcome in zip(rules, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Rule evaluation failed for {rule.id}: {str(outcome)}")
                error_tracker.track_error('rule', str(outcome), details={'rule_id': rule.id})
                failed.append(rule.id)
            elif outcome:
                triggered.append(rule)

        if not triggered:
            metadata = {'rule_errors': failed} if failed else {}
            return PartialResult(metadata=metadata)

        severity = max_severity(*(rule.severity for rule in triggered))
        metadata = {
            'triggered_rules': [rule.name for rule in triggered],
            'rule_count': len(triggered),
            'user_behavior': context.metrics.to_dict(),
        }
        if failed:
            metadata['rule_errors'] = failed

        return PartialResult(
            is_approved=not any(rule.action in BLOCKING_ACTIONS for rule in triggered),
            flags=[rule.id for rule in triggered],
            reasons=[f"Auto-moderation rule triggered: {rule.name}" for rule in triggered],
            severity=severity,
            requires_human_review=severity in (Severity.HIGH, Severity.CRITICAL),
            auto_actions=[rule.action for rule in triggered],
            metadata=metadata,
        )

    async def get_auto_moderation_stats(self, time_range='24h'):
        _, since = resolve_time_range(time_range)
        stats = await self.db.get_auto_moderation_statistics(since)
        return {**stats, 'active_rules': len(self.registry.snapshot_active())}


def fallback_result(error=None):
    return PartialResult(
        flags=['auto_moderation_error'],
        reasons=['Auto-moderation system error'],
        metadata={'rules_error': str(error)} if error else {},
    )


# Process-wide registry; toggles are the only mutation
rule_registry = RuleRegistry.from_config()
