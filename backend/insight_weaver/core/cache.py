"""
Content-addressed cache for finished analyses.

The pipeline never touches module-level storage: callers inject a CacheStore
and own its lifetime (the API keeps one per process).
"""
import hashlib
import json
import logging
import time
from typing import Optional, Dict, Any, Sequence, Protocol
from dataclasses import dataclass
from threading import RLock

logger = logging.getLogger(__name__)

CELL_SEPARATOR = "\u001f"
ROW_SEPARATOR = "\u001e"


class CacheStore(Protocol):
    """Minimal interface the analysis service needs from a cache."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ...

    def clear(self) -> None:
        ...


@dataclass
class CacheEntry:
    """Cache entry with expiration."""
    data: Any
    timestamp: float
    ttl: float  # Time to live in seconds


class SimpleCache:
    """Thread-safe in-memory cache with TTL."""

    def __init__(self, default_ttl: float = 3600):  # 1 hour default
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = RLock()
        self.default_ttl = default_ttl
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self.misses += 1
                return None

            if time.time() - entry.timestamp > entry.ttl:
                del self._cache[key]
                self.misses += 1
                logger.debug(f"Cache entry expired: {key[:40]}...")
                return None

            self.hits += 1
            logger.debug(f"Cache hit: {key[:40]}...")
            return entry.data

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Set value in cache with optional TTL."""
        with self._lock:
            self._cache[key] = CacheEntry(
                data=value,
                timestamp=time.time(),
                ttl=ttl or self.default_ttl
            )
            logger.debug(f"Cache set: {key[:40]}... (TTL: {ttl or self.default_ttl}s)")

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._cache.clear()
            self.hits = 0
            self.misses = 0
            logger.info("Cache cleared")

    def cleanup_expired(self) -> int:
        """Remove expired entries and return how many were dropped."""
        with self._lock:
            now = time.time()
            expired_keys = [
                key for key, entry in self._cache.items()
                if now - entry.timestamp > entry.ttl
            ]
            for key in expired_keys:
                del self._cache[key]

            if expired_keys:
                logger.debug(f"Cleaned up {len(expired_keys)} expired cache entries")
            return len(expired_keys)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            self.cleanup_expired()
            return {
                'size': len(self._cache),
                'default_ttl': self.default_ttl,
                'hits': self.hits,
                'misses': self.misses,
            }


def canonicalize_dataset(rows: Sequence[Sequence[Any]]) -> str:
    """Trim every cell and join with unit/record separators (order-sensitive)."""
    return ROW_SEPARATOR.join(
        CELL_SEPARATOR.join("" if cell is None else str(cell).strip() for cell in row)
        for row in rows
    )


def dataset_content_hash(rows: Sequence[Sequence[Any]]) -> str:
    return hashlib.sha256(canonicalize_dataset(rows).encode("utf-8")).hexdigest()


def response_fingerprint(response: Any) -> str:
    """SHA-256 of a generator response; dict keys are sorted so key order does not matter."""
    if isinstance(response, str):
        text = response.strip()
    else:
        text = json.dumps(response, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def generate_analysis_cache_key(
    rows: Sequence[Sequence[Any]],
    perspective: str,
    source_fingerprint: Optional[str] = None,
) -> str:
    """
    Cache key for an analysis of `rows` from the given perspective.

    Sources that know their response up front pass its fingerprint, so a
    different set of candidates never shares an entry.
    """
    key = f"analysis:{dataset_content_hash(rows)}:{perspective}"
    if source_fingerprint:
        key = f"{key}:{source_fingerprint}"
    return key
