"""
Result cache - memoize reads to avoid redundant document-store round trips.

Entries are JSON strings of ``{"data", "timestamp", "expiresAt"}``. An entry
set with ttl T is served while ``now < expiresAt`` and treated as absent (and
dropped) from then on. Past ``max_entries`` the least recently read entries
go first.

Writes that change balances must call ``SettlementCacheHooks.on_write`` with
every affected user and trip before returning. A get_or_set producer whose
key or tags are invalidated while it runs returns its value uncached.
"""

import json
import logging
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set, Tuple

from tripsplit.core.config import settings

logger = logging.getLogger(__name__)

_MISSING = object()


class ResultCache:
    """Process-wide TTL + LRU cache keyed by string."""

    def __init__(
        self,
        max_entries: int = 50,
        default_ttl: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: "OrderedDict[str, str]" = OrderedDict()
        self._tags: Dict[str, Set[str]] = {}
        # ticket -> (key, tags) of producers still running
        self._producing: Dict[int, Tuple[str, Set[str]]] = {}
        self._superseded: Set[int] = set()
        self._next_ticket = 0

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._entries.get(key)
        if raw is None:
            self._misses += 1
            return default

        entry = json.loads(raw)
        if self._clock() >= entry["expiresAt"]:
            self._drop(key)
            self._misses += 1
            return default

        self._entries.move_to_end(key)
        self._hits += 1
        return entry["data"]

    def set(self, key: str, value: Any, ttl: Optional[float] = None, tags: Iterable[str] = ()) -> None:
        now = self._clock()
        ttl = self.default_ttl if ttl is None else ttl
        entry = {"data": value, "timestamp": now, "expiresAt": now + ttl}

        self._drop(key)
        self._entries[key] = json.dumps(entry)
        for tag in tags:
            self._tags.setdefault(tag, set()).add(key)

        while len(self._entries) > self.max_entries:
            oldest, _ = self._entries.popitem(last=False)
            self._forget_tags(oldest)
            self._evictions += 1
            logger.debug("Evicted cache entry %s", oldest)

    async def get_or_set(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
        tags: Iterable[str] = (),
    ) -> Any:
        """Return the cached value, computing and storing it on a miss.

        Producer failures propagate and nothing is stored. A result whose
        key or tags were invalidated during the await is returned but not
        stored.
        """
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        tags = set(tags)
        ticket = self._next_ticket
        self._next_ticket += 1
        self._producing[ticket] = (key, tags)
        try:
            value = await producer()
        finally:
            self._producing.pop(ticket, None)
            superseded = ticket in self._superseded
            self._superseded.discard(ticket)

        if superseded:
            logger.debug("Not caching %s, invalidated while it was computed", key)
            return value
        self.set(key, value, ttl=ttl, tags=tags)
        return value

    def invalidate(self, key: str) -> bool:
        self._supersede(lambda k, _: k == key)
        if key in self._entries:
            self._drop(key)
            return True
        return False

    def invalidate_tags(self, *tags: str) -> int:
        self._supersede(lambda _, producing_tags: not producing_tags.isdisjoint(tags))
        keys: Set[str] = set()
        for tag in tags:
            keys |= self._tags.get(tag, set())
        for key in keys:
            self._drop(key)
        if keys:
            logger.debug("Invalidated %d cache entries for %s", len(keys), ", ".join(tags))
        return len(keys)

    def clean_expired(self) -> int:
        now = self._clock()
        expired = [
            key for key, raw in self._entries.items()
            if now >= json.loads(raw)["expiresAt"]
        ]
        for key in expired:
            self._drop(key)
        return len(expired)

    def clear(self) -> None:
        self._supersede(lambda k, t: True)
        self._entries.clear()
        self._tags.clear()

    def stats(self) -> Dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "size_bytes": sum(len(raw) for raw in self._entries.values()),
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "hit_rate": self._hits / lookups if lookups else 0.0,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def _supersede(self, matches: Callable[[str, Set[str]], bool]) -> None:
        for ticket, (key, tags) in self._producing.items():
            if matches(key, tags):
                self._superseded.add(ticket)

    def _drop(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            self._forget_tags(key)

    def _forget_tags(self, key: str) -> None:
        for tag in list(self._tags):
            members = self._tags[tag]
            members.discard(key)
            if not members:
                del self._tags[tag]


def user_tag(user_id: str) -> str:
    return f"user:{user_id}"


def trip_tag(trip_id: str) -> str:
    return f"trip:{trip_id}"


class SettlementCacheHooks:
    """Single invalidation point for every balance-changing write."""

    def __init__(self, cache: ResultCache):
        self.cache = cache

    def on_write(self, user_ids: Iterable[Optional[str]] = (), trip_ids: Iterable[Optional[str]] = ()) -> int:
        tags = [user_tag(u) for u in user_ids if u]
        tags += [trip_tag(t) for t in trip_ids if t]
        if not tags:
            return 0
        return self.cache.invalidate_tags(*tags)


result_cache = ResultCache(
    max_entries=settings.CACHE_MAX_ENTRIES,
    default_ttl=settings.CACHE_DEFAULT_TTL,
)
cache_hooks = SettlementCacheHooks(result_cache)
