"""
Default auto-moderation rules configuration
"""

DEFAULT_AUTO_MODERATION_RULES = [
    {
        "id": "spam_detection",
        "name": "Spam Detection",
        "type": "content",
        "condition": {"kind": "contains_spam_patterns", "threshold": 2},
        "action": "hide_content",
        "severity": "medium",
        "is_active": True,
    },
    {
        "id": "excessive_posting",
        "name": "Excessive Posting",
        "type": "behavior",
        "condition": {"kind": "posts_per_hour_above", "threshold": 10, "window_hours": 1},
        "action": "temporary_restriction",
        "severity": "medium",
        "is_active": True,
    },
    {
        "id": "new_user_restriction",
        "name": "New User Restrictions",
        "type": "user",
        "condition": {"kind": "new_account_posts_above", "threshold": 5, "window_hours": 24},
        "action": "require_approval",
        "severity": "low",
        "is_active": True,
    },
    {
        "id": "multiple_reports",
        "name": "Multiple Reports",
        "type": "content",
        "condition": {"kind": "reports_at_least", "threshold": 3, "window_hours": 24},
        "action": "hide_content",
        "severity": "high",
        "is_active": True,
    },
    {
        "id": "suspicious_links",
        "name": "Suspicious Links",
        "type": "content",
        "condition": {"kind": "contains_suspicious_links"},
        "action": "require_approval",
        "severity": "medium",
        "is_active": True,
    },
    {
        "id": "duplicate_content",
        "name": "Duplicate Content",
        "type": "content",
        "condition": {"kind": "exact_duplicate", "threshold": 50, "window_hours": 168},
        "action": "hide_content",
        "severity": "low",
        "is_active": True,
    },
]
