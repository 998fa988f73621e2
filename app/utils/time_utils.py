from datetime import datetime, timedelta

TIME_RANGES = {
    '24h': timedelta(hours=24),
    '7d': timedelta(days=7),
    '30d': timedelta(days=30),
}


def resolve_time_range(time_range, default='24h'):
    """Map a range label to (label, since). Unknown labels fall back to the default."""
    if time_range not in TIME_RANGES:
        time_range = default
    return time_range, datetime.utcnow() - TIME_RANGES[time_range]


def format_wait_time(seconds):
    """Compact age used in queue listings: 'Just now', '5m', '3h', '2d'"""
    minutes = int(seconds // 60)
    if minutes < 1:
        return 'Just now'
    if minutes < 60:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h"
    return f"{hours // 24}d"


def format_time_ago(seconds):
    wait = format_wait_time(seconds)
    return wait if wait == 'Just now' else f"{wait} ago"


def truncate(text, length=100):
    if not text:
        return ''
    return text if len(text) <= length else text[:length] + '...'
