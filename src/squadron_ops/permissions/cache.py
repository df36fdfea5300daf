"""Per-user permission-set cache.

Sets are loaded from the grant source once and reused until they expire or
are invalidated (login, logout, role or rule change). An entry is always
replaced wholesale; a reader holds either the old ``PermissionSet`` or the new
one, never a mix.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable

from ..observability.logging import get_logger
from ..observability.metrics import PERMISSION_SET_LOAD_SECONDS, PERMISSION_SET_LOADS_TOTAL
from ..protocols import GrantSource
from .permission_set import PermissionSet

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 30 * 60
DEFAULT_MAX_ENTRIES = 10_000
DEFAULT_REFRESH_MARGIN_SECONDS = 5 * 60
_EVICT_FRACTION = 0.1


@dataclass(frozen=True, slots=True)
class CacheEntry:
    permission_set: PermissionSet
    loaded_at: float
    expires_at: float


class PermissionCache:
    """TTL cache of permission sets keyed by user id.

    Concurrent misses for the same user share one in-flight load. Errors
    from the grant source propagate to every waiter and nothing is cached.
    """

    def __init__(
        self,
        source: GrantSource,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError('ttl_seconds must be > 0')
        if max_entries < 1:
            raise ValueError('max_entries must be >= 1')
        self._source = source
        self._ttl = float(ttl_seconds)
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task[PermissionSet]] = {}
        # Bumped by invalidation so a load started earlier cannot repopulate.
        self._generation: dict[str, int] = {}
        self._global_generation = 0

    def __len__(self) -> int:
        return len(self._entries)

    def _fresh_entry(self, user_id: str) -> CacheEntry | None:
        entry = self._entries.get(user_id)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            self._entries.pop(user_id, None)
            return None
        return entry

    async def get(self, user_id: str) -> PermissionSet:
        entry = self._fresh_entry(user_id)
        if entry is not None:
            return entry.permission_set

        task = self._inflight.get(user_id)
        if task is None:
            task = self._start_load(user_id)
        # A caller giving up must not cancel the load other callers share.
        return await asyncio.shield(task)

    def _start_load(self, user_id: str) -> asyncio.Task[PermissionSet]:
        generation = (self._global_generation, self._generation.get(user_id, 0))
        task = asyncio.create_task(self._fetch(user_id, generation))
        self._inflight[user_id] = task

        def _done(finished: asyncio.Task[PermissionSet]) -> None:
            if self._inflight.get(user_id) is finished:
                del self._inflight[user_id]
            if not finished.cancelled():
                # Retrieve so an error nobody awaited does not warn.
                finished.exception()

        task.add_done_callback(_done)
        return task

    async def _fetch(self, user_id: str, generation: tuple[int, int]) -> PermissionSet:
        started = time.perf_counter()
        try:
            permission_set = await self._source.load_permission_set(user_id)
        except Exception:
            PERMISSION_SET_LOADS_TOTAL.labels(outcome='error').inc()
            raise
        finally:
            PERMISSION_SET_LOAD_SECONDS.observe(time.perf_counter() - started)

        PERMISSION_SET_LOADS_TOTAL.labels(outcome='ok').inc()
        if generation == (self._global_generation, self._generation.get(user_id, 0)):
            self._store(user_id, permission_set)
        return permission_set

    def _store(self, user_id: str, permission_set: PermissionSet) -> None:
        if user_id not in self._entries and len(self._entries) >= self._max_entries:
            self._evict()
        now = self._clock()
        self._entries[user_id] = CacheEntry(
            permission_set=permission_set,
            loaded_at=now,
            expires_at=now + self._ttl,
        )

    def _evict(self) -> None:
        now = self._clock()
        for user_id in [u for u, e in self._entries.items() if now >= e.expires_at]:
            del self._entries[user_id]
        if len(self._entries) < self._max_entries:
            return

        count = max(1, int(self._max_entries * _EVICT_FRACTION))
        oldest = sorted(self._entries.items(), key=lambda item: item[1].loaded_at)[:count]
        for user_id, _ in oldest:
            del self._entries[user_id]
        logger.info('permission_cache_evicted', evicted=len(oldest), remaining=len(self._entries))

    def invalidate(self, user_id: str) -> None:
        """Drop the user's set; the next ``get`` starts a new load.

        A load already running still answers the callers waiting on it but is
        neither stored nor shared with later callers.
        """
        self._entries.pop(user_id, None)
        self._inflight.pop(user_id, None)
        self._generation[user_id] = self._generation.get(user_id, 0) + 1

    def invalidate_all(self) -> None:
        self._entries.clear()
        self._inflight.clear()
        self._generation.clear()
        self._global_generation += 1

    async def refresh(self, user_id: str) -> PermissionSet:
        """Drop the cached set and load a new one."""
        self.invalidate(user_id)
        return await asyncio.shield(self._start_load(user_id))

    async def refresh_if_needed(
        self,
        user_id: str,
        safety_margin_seconds: float = DEFAULT_REFRESH_MARGIN_SECONDS,
    ) -> bool:
        """Reload when missing or expiring within the margin.

        Returns True if a reload happened.
        """
        remaining = self.expires_in(user_id)
        if remaining is not None and remaining > safety_margin_seconds:
            return False
        await self.refresh(user_id)
        return True

    def expires_in(self, user_id: str) -> float | None:
        """Seconds until the cached entry expires, or None if not cached."""
        entry = self._fresh_entry(user_id)
        if entry is None:
            return None
        return entry.expires_at - self._clock()

    def stats(self) -> dict[str, float | int]:
        return {
            'entries': len(self._entries),
            'inflight': len(self._inflight),
            'max_entries': self._max_entries,
            'ttl_seconds': self._ttl,
        }
