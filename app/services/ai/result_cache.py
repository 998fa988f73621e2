import hashlib
import logging
import time
from threading import RLock

logger = logging.getLogger(__name__)


class ResultCache:
    """Caches AI category scores by text hash, shared across instances"""

    _shared_cache = {}
    _cache_lock = RLock()
    _max_cache_size = 10000

    def __init__(self, cache_ttl=3600):
        self._cache_ttl = cache_ttl

    def generate_cache_key(self, text, model=None):
        """Hash of the text and the model that scored it"""
        combined = f"{model or 'default'}|{len(text)}|{text}"
        return hashlib.md5(combined.encode('utf-8'), usedforsecurity=False).hexdigest()

    def get_cached_result(self, cache_key):
        with ResultCache._cache_lock:
            cached = ResultCache._shared_cache.get(cache_key)
            if cached is None:
                return None

            if time.time() - cached['timestamp'] >= self._cache_ttl:
                ResultCache._shared_cache.pop(cache_key, None)
                return None

            return cached['result']

    def cache_result(self, cache_key, result):
        with ResultCache._cache_lock:
            if len(ResultCache._shared_cache) >= ResultCache._max_cache_size:
                self._cleanup_expired_entries()

            if len(ResultCache._shared_cache) >= ResultCache._max_cache_size:
                # Still full of live entries, drop the oldest one
                oldest_key = min(ResultCache._shared_cache,
                                 key=lambda k: ResultCache._shared_cache[k]['timestamp'])
                ResultCache._shared_cache.pop(oldest_key, None)

            ResultCache._shared_cache[cache_key] = {
                'result': result,
                'timestamp': time.time()
            }

    def invalidate_cache(self, cache_key=None):
        with ResultCache._cache_lock:
            if cache_key:
                ResultCache._shared_cache.pop(cache_key, None)
            else:
                ResultCache._shared_cache.clear()

    def _cleanup_expired_entries(self):
        current_time = time.time()
        expired_keys = [key for key, data in ResultCache._shared_cache.items()
                        if current_time - data['timestamp'] >= self._cache_ttl]

        for key in expired_keys:
            ResultCache._shared_cache.pop(key, None)

        if expired_keys:
            logger.info(f"Cleaned up {len(expired_keys)} expired cache entries")
