"""
In-memory TTL store backing the API response cache.
"""

import asyncio
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Pattern, Set, Union

from shared.logging import get_logger
from .tags import CacheTag


DEFAULT_TTL_SECONDS = 300


class _Missing:
    """Sentinel returned by :meth:`TTLStore.get` for absent keys."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


@dataclass
class CacheEntry:
    """A stored value with its expiry deadline and invalidation tags."""

    key: str
    value: Any
    expires_at: float
    tags: FrozenSet[CacheTag] = field(default_factory=frozenset)


class TTLStore:
    """
    Key-value store with a per-key time-to-live.

    Every entry carries a monotonic deadline that is checked on each read, so
    an expired entry is never returned. When an event loop is running, ``set``
    also schedules a one-shot deletion with ``loop.call_later``; the handle is
    owned by the store and cancelled whenever the key is overwritten, deleted
    or cleared.

    Hit and miss counters live here but are driven by the caller through
    :meth:`record_hit` and :meth:`record_miss`; ``get`` never touches them.

    Example:
        >>> store = TTLStore()
        >>> store.set("api:GET:/api/products", {"success": True}, 300)
        >>> store.get("api:GET:/api/products")
        {'success': True}
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        max_entries: Optional[int] = None,
    ):
        self._clock = clock
        self.max_entries = max_entries
        self.logger = get_logger("storefront.ttl_store")

        self._entries: Dict[str, CacheEntry] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._tag_index: Dict[CacheTag, Set[str]] = {}

        self.hits = 0
        self.misses = 0

    def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        tags: Iterable[CacheTag] = (),
    ) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``, replacing any previous entry."""
        self._discard(key)

        if ttl_seconds <= 0:
            return

        if self.max_entries is not None and len(self._entries) >= self.max_entries:
            self._make_room()

        entry = CacheEntry(
            key=key,
            value=value,
            expires_at=self._clock() + ttl_seconds,
            tags=frozenset(CacheTag(tag) for tag in tags),
        )
        self._entries[key] = entry
        for tag in entry.tags:
            self._tag_index.setdefault(tag, set()).add(key)

        self._schedule_expiry(entry, ttl_seconds)

    def get(self, key: str, default: Any = MISSING) -> Any:
        """Return the live value for ``key`` or ``default``."""
        entry = self._live_entry(key)
        if entry is None:
            return default
        return entry.value

    def has(self, key: str) -> bool:
        """Presence check honouring the expiry deadline."""
        return self._live_entry(key) is not None

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns whether a live entry was removed."""
        existed = self._live_entry(key) is not None
        self._discard(key)
        return existed

    def clear(self) -> None:
        """Cancel every timer, drop every entry and reset the counters."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._entries.clear()
        self._tag_index.clear()
        self.hits = 0
        self.misses = 0

    def keys(self) -> List[str]:
        """Snapshot of the live keys."""
        self.prune_expired()
        return list(self._entries)

    def size(self) -> int:
        """Number of live entries."""
        self.prune_expired()
        return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def record_hit(self) -> None:
        self.hits += 1

    def record_miss(self) -> None:
        self.misses += 1

    def delete_matching(self, pattern: Union[str, Pattern[str]]) -> int:
        """
        Delete every key in which ``pattern`` finds a match.

        Raises:
            re.error: if ``pattern`` is not a valid regular expression.
        """
        regex = re.compile(pattern)
        matched = [key for key in self.keys() if regex.search(key)]
        for key in matched:
            self._discard(key)
        return len(matched)

    def delete_tagged(self, tags: Iterable[CacheTag]) -> int:
        """Delete every key stored under any of ``tags``."""
        matched: Set[str] = set()
        for tag in tags:
            matched.update(self._tag_index.get(CacheTag(tag), ()))

        deleted = 0
        for key in matched:
            if self.delete(key):
                deleted += 1
        return deleted

    def prune_expired(self) -> int:
        """Remove all entries whose deadline has passed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            self._discard(key)
        return len(expired)

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    def stats(self) -> Dict[str, Any]:
        """Entry count, hit/miss counters and the formatted hit rate."""
        return {
            "keys": self.size(),
            "hits": self.hits,
            "misses": self.misses,
            "hitRate": f"{self.hit_rate * 100:.2f}%" if self.hits else "0%",
        }

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            self._discard(key)
            return None
        return entry

    def _discard(self, key: str) -> None:
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()

        entry = self._entries.pop(key, None)
        if entry is None:
            return

        for tag in entry.tags:
            keys = self._tag_index.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._tag_index[tag]

    def _make_room(self) -> None:
        self.prune_expired()
        # Dicts keep insertion order; the first key is the oldest write
        while self._entries and len(self._entries) >= self.max_entries:
            oldest = next(iter(self._entries))
            self._discard(oldest)
            self.logger.debug("Evicted cache entry", key=oldest, max_entries=self.max_entries)

    def _schedule_expiry(self, entry: CacheEntry, ttl_seconds: float) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the deadline alone expires the entry
            return
        self._timers[entry.key] = loop.call_later(ttl_seconds, self._expire, entry)

    def _expire(self, entry: CacheEntry) -> None:
        if self._entries.get(entry.key) is entry:
            self._discard(entry.key)
