"""
Keyed cache for per-analysable data (log indexes, grade books).
One instance lives as long as the scorers that share it; entries never expire.
"""

import hashlib
import json
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

_MISSING = object()


class ScopeCache:
    """In-memory cache for data computed once per analysable unit."""

    def __init__(self):
        self._store: dict = {}

    def __len__(self) -> int:
        return len(self._store)

    @staticmethod
    def make_key(prefix: str, **kwargs) -> str:
        payload = json.dumps(kwargs, sort_keys=True, default=str)
        h = hashlib.md5(payload.encode()).hexdigest()[:8]
        return f"{prefix}:{h}"

    def cached(self, key: str, fn: Callable, *args, **kwargs) -> Any:
        """Get from cache or compute and store. Cached None/False values count as hits."""
        result = self._store.get(key, _MISSING)
        if result is not _MISSING:
            logger.debug(f"Cache hit: {key}")
            return result
        result = fn(*args, **kwargs)
        self._store[key] = result
        logger.debug(f"Cache set: {key}")
        return result
