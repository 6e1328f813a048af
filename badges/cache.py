"""
In-memory response cache shared by every API client.

Cached values are asyncio tasks rather than results, so simultaneous
requests for the same key wait on one network call instead of making
several. The task is registered before the caller's first ``await``, so
any request arriving later on the same loop finds it.

TTL policy
----------
- ``None``      → the cache's default TTL
- number > 0    → that TTL, in seconds
- ``0``         → don't cache at all
- callable      → cache with the default TTL, then call ``policy(value)``
                  once the task resolves. A number replaces the expiry
                  (``0`` evicts), ``None`` leaves it alone.

TTLs count from the moment the task settles. A pending entry is served to
every caller for as long as it is pending, however long that takes.

Rejected tasks remove themselves so errors don't linger. Both the TTL hook
and the rejection hook only touch the cache if the entry under the key is
still the one that produced the outcome.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from cachetools import TLRUCache

from badges.settings import settings

logger = logging.getLogger("badges.cache")

ONE_MINUTE = 60.0
ONE_HOUR = 60 * ONE_MINUTE
ONE_DAY = 24 * ONE_HOUR

TTLPolicy = Union[float, Callable[[Any], Union[float, None]], None]


@dataclass(eq=False)
class CacheEntry:
    """One fetch, pending or settled, and when it stops being served."""

    key: str
    task: asyncio.Future
    expires_at: float
    label: str = ""

    @property
    def state(self) -> str:
        if not self.task.done():
            return "pending"
        if self.task.cancelled() or self.task.exception() is not None:
            return "rejected"
        return "resolved"


class ResponseCache:
    """LRU-bounded cache of in-flight and completed fetches with per-entry TTL."""

    def __init__(
        self,
        max_entries: int | None = None,
        default_ttl: float | None = None,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = (
            max_entries if max_entries is not None else settings.cache_max_entries
        )
        self.default_ttl = (
            default_ttl if default_ttl is not None else settings.cache_default_ttl
        )
        self._timer = timer
        self._entries: TLRUCache[str, CacheEntry] = TLRUCache(
            maxsize=self.max_entries, ttu=self._expiry, timer=timer
        )

    @staticmethod
    def _expiry(_key: str, entry: CacheEntry, _now: float) -> float:
        return entry.expires_at

    @staticmethod
    def make_key(url: str, method: str = "GET", **options: Any) -> str:
        """Stable hash of a request: URL (query included), method and options."""
        payload = {"url": url, "method": method.upper(), **options}
        raw = json.dumps(payload, sort_keys=True, default=str)
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def __len__(self) -> int:
        return len(self._entries)

    def get_entry(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key``, or None if absent or expired."""
        return self._entries.get(key)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    async def fetch(
        self,
        key: str,
        operation: Callable[[], Awaitable[Any]],
        ttl: TTLPolicy = None,
        *,
        label: str = "",
    ) -> Any:
        """Return the result of ``operation()``, sharing it between callers of ``key``.

        The operation is only started when no pending or unexpired entry
        exists. Callers are shielded from each other: cancelling one waiter
        never cancels the shared fetch.
        """
        label = label or key
        entry = self._entries.get(key)
        if entry is not None:
            logger.info("Cache hit: %s", label, extra={"cache_key": key})
            return await asyncio.shield(entry.task)

        logger.info("Cache miss: %s", label, extra={"cache_key": key})
        task = asyncio.ensure_future(operation())
        # Pending entries never expire; the TTL starts once the task settles.
        entry = CacheEntry(key, task, math.inf, label)

        if ttl == 0:
            self._entries.pop(key, None)
        else:
            self._entries[key] = entry

        task.add_done_callback(lambda _task: self._settle(entry, ttl))
        return await asyncio.shield(task)

    def _is_current(self, entry: CacheEntry) -> bool:
        return self._entries.get(entry.key) is entry

    def _settle(self, entry: CacheEntry, ttl: TTLPolicy) -> None:
        task = entry.task
        if task.cancelled() or task.exception() is not None:
            if self._is_current(entry):
                logger.info(
                    "Rejected, removing from cache: %s",
                    entry.label,
                    extra={"cache_key": entry.key},
                )
                self._entries.pop(entry.key, None)
            return

        if not self._is_current(entry):
            return

        expires_in = self.default_ttl if ttl is None or callable(ttl) else ttl
        if callable(ttl):
            try:
                new_ttl = ttl(task.result())
            except Exception:
                logger.exception("TTL policy failed, keeping default: %s", entry.label)
                new_ttl = None
            if new_ttl is not None:
                logger.info(
                    "Cache TTL changed to %s: %s",
                    new_ttl,
                    entry.label,
                    extra={"cache_key": entry.key, "ttl": new_ttl},
                )
                expires_in = new_ttl

        if expires_in > 0:
            entry.expires_at = self._timer() + expires_in
            self._entries[entry.key] = entry
        else:
            self._entries.pop(entry.key, None)
