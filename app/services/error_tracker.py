"""
In-memory tracking of isolated pipeline failures for /health
"""
import time
from collections import deque
from threading import Lock
from typing import Dict, List

ERROR_KINDS = ('classifier', 'rule', 'pipeline', 'database', 'notification', 'action', 'other')


class ErrorTracker:
    """Recent failures and per-kind counters, shared process-wide"""

    _recent_errors = deque(maxlen=100)
    _error_counts = {kind: 0 for kind in ERROR_KINDS}
    _lock = Lock()

    @classmethod
    def track_error(cls, error_type: str, message: str, content_id: str = None, details: Dict = None):
        """
        Record one failure.

        Args:
            error_type: one of ERROR_KINDS; anything else is counted as 'other'
            message: error message
            content_id: content being moderated when the failure happened
            details: extra context such as the classifier or rule id
        """
        if error_type not in cls._error_counts:
            error_type = 'other'

        with cls._lock:
            cls._recent_errors.append({
                'timestamp': time.time(),
                'type': error_type,
                'message': message,
                'content_id': content_id,
                'details': details or {}
            })
            cls._error_counts[error_type] += 1

    @classmethod
    def get_recent_errors(cls, limit: int = 50) -> List[Dict]:
        with cls._lock:
            errors = [dict(error) for error in list(cls._recent_errors)[-limit:]]

        now = time.time()
        for error in errors:
            seconds_ago = int(now - error['timestamp'])
            if seconds_ago < 60:
                error['time_ago'] = f"{seconds_ago}s ago"
            elif seconds_ago < 3600:
                error['time_ago'] = f"{seconds_ago // 60}m ago"
            else:
                error['time_ago'] = f"{seconds_ago // 3600}h ago"
        return errors

    @classmethod
    def get_error_stats(cls) -> Dict:
        with cls._lock:
            five_min_ago = time.time() - 300
            return {
                'total_errors': sum(cls._error_counts.values()),
                'recent_errors': len(cls._recent_errors),
                'errors_last_5min': sum(1 for e in cls._recent_errors if e['timestamp'] > five_min_ago),
                'error_counts': cls._error_counts.copy()
            }

    @classmethod
    def reset(cls):
        with cls._lock:
            cls._recent_errors.clear()
            for kind in cls._error_counts:
                cls._error_counts[kind] = 0


error_tracker = ErrorTracker()
