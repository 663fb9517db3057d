"""
Request deduplication for network call sites.

Usage:
    from netcache import RequestDeduplicationCache

    cache = RequestDeduplicationCache()
    data = cache.request(("ocr", digest), lambda: client.post(...), ttl_ms=60000)
"""

from .dedup import CacheEntry, RequestDeduplicationCache, cooldown_for, is_abort

__all__ = [
    'CacheEntry',
    'RequestDeduplicationCache',
    'cooldown_for',
    'is_abort',
]
