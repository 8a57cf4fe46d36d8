import fnmatch
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class CacheKeys:
    FEE_CATEGORIES = "fees:categories"
    SUBJECTS = "subjects:list"
    CLASSES = "classes:list"
    ACADEMIC_YEARS = "academic-years:list"
    ASSESSMENT_TYPES = "assessment-types:list"
    TEACHER_WORKLOAD = "teachers:workload"


class CacheTTL:
    SHORT = 60
    MEDIUM = 300
    LONG = 1800


class CacheService:
    """In-process key/value cache with per-key TTL and glob-pattern invalidation.

    Every read path fails open: when the cache is disabled or raises, callers
    get a miss and fall through to the database.
    """

    def __init__(self, enabled: bool = True, default_ttl: int = CacheTTL.MEDIUM, max_entries: int = 1000):
        self.enabled = enabled
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._store: Dict[str, Tuple[float, str]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @staticmethod
    def generate_key(prefix: str, *parts: Any) -> str:
        return ":".join([prefix] + [str(p) for p in parts if p is not None and p != ""])

    def _expired(self, expires_at: float) -> bool:
        return expires_at <= time.monotonic()

    def _make_room(self) -> None:
        """Drop expired entries, then the soonest-expiring ones, until a new key fits. Caller holds the lock."""
        now = time.monotonic()
        for key in [k for k, (expires_at, _) in self._store.items() if expires_at <= now]:
            del self._store[key]
        overflow = len(self._store) - self.max_entries + 1
        if overflow > 0:
            for key in sorted(self._store, key=lambda k: self._store[k][0])[:overflow]:
                del self._store[key]
            self.evictions += overflow

    def get(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            with self._lock:
                entry = self._store.get(key)
                if entry is None or self._expired(entry[0]):
                    self._store.pop(key, None)
                    self.misses += 1
                    return None
                self.hits += 1
                payload = entry[1]
            return json.loads(payload)
        except Exception as e:
            logger.warning("Cache get error for key %s: %s", key, e)
            return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        if not self.enabled:
            return False
        try:
            payload = json.dumps(value, default=str)
            expires_at = time.monotonic() + (ttl_seconds or self.default_ttl)
            with self._lock:
                if key not in self._store and len(self._store) >= self.max_entries:
                    self._make_room()
                self._store[key] = (expires_at, payload)
            return True
        except Exception as e:
            logger.warning("Cache set error for key %s: %s", key, e)
            return False

    def delete_pattern(self, pattern: str) -> int:
        if not self.enabled:
            return 0
        with self._lock:
            keys = [k for k in self._store if fnmatch.fnmatchcase(k, pattern)]
            for key in keys:
                del self._store[key]
        if keys:
            logger.debug("Invalidated %d cache keys for %s", len(keys), pattern)
        return len(keys)

    def get_or_set(self, key: str, compute: Callable[[], Any], ttl_seconds: Optional[int] = None) -> Any:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = compute()
        self.set(key, value, ttl_seconds)
        return value

    def flush(self) -> bool:
        with self._lock:
            self._store.clear()
        return True

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            live = sum(1 for expires_at, _ in self._store.values() if not self._expired(expires_at))
        lookups = self.hits + self.misses
        return {
            "enabled": self.enabled,
            "keys": live,
            "hits": self.hits,
            "misses": self.misses,
            "hitRate": round(self.hits / lookups * 100, 2) if lookups else 0.0,
            "defaultTtl": self.default_ttl,
            "maxEntries": self.max_entries,
            "evictions": self.evictions,
        }

    def close(self) -> None:
        self.flush()
        logger.info("Cache closed")
