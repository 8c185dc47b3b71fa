"""In-process LRU + TTL cache for rendered block HTML.

Cache key structure::

    {block}:{sha256(canonical JSON of props)}

Entries are kept in recency order in an ``OrderedDict``: reads move an entry
to the most-recently-used end, writes insert there, and an overflowing write
evicts exactly one entry from the least-recently-used end.

The cache is an optimisation only. With the cache disabled (capacity 0 or the
feature flag off) the render engine simply receives ``None`` instead of a
cache and renders every request.
"""

from __future__ import annotations

import hashlib
import json
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


def canonical_json(value: Any) -> str:
    """Serialize *value* with sorted keys and no insignificant whitespace."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def make_cache_key(block: str, props: Any) -> str | None:
    """Deterministic cache key for ``(block, props)``.

    Returns ``None`` when *props* cannot be serialized; the caller then skips
    caching for that render.
    """
    try:
        payload = canonical_json(props)
    except (TypeError, ValueError):
        return None
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"{block}:{digest}"


@dataclass
class CacheEntry:
    """A cached HTML fragment. ``expires_at`` of 0 means no expiry."""

    value: str
    expires_at: float = 0.0


class RenderCache:
    """Bounded LRU cache with optional TTL.

    Args:
        max_entries: Capacity; must be positive
        ttl_seconds: Entry lifetime (0 disables expiry)
        clock: Monotonic time source in seconds
    """

    def __init__(
        self,
        max_entries: int,
        ttl_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive; disable the cache instead")
        self.max_entries = max_entries
        self.ttl_seconds = max(0.0, ttl_seconds)
        self.evictions = 0
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def get(self, key: str) -> str | None:
        """Return the cached HTML, or ``None`` on miss or expiry."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if entry.expires_at and entry.expires_at <= self._clock():
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return entry.value

    def set(self, key: str, value: str) -> None:
        """Insert or replace *key* at the most-recently-used position."""
        self._entries.pop(key, None)
        expires_at = self._clock() + self.ttl_seconds if self.ttl_seconds > 0 else 0.0
        self._entries[key] = CacheEntry(value=value, expires_at=expires_at)

        if len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            self.evictions += 1

    def clear(self) -> None:
        """Drop every entry. The eviction counter is not affected."""
        self._entries.clear()

    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
