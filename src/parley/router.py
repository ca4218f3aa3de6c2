"""Provider router: get-or-create drivers with a TTL/least-used instance cache."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from dataclasses import dataclass, field
import logging
import time
from typing import TYPE_CHECKING, Callable

from parley.providers import create_driver

if TYPE_CHECKING:
    from parley.config import LLMConfig
    from parley.providers.base import Driver

logger = logging.getLogger(__name__)

DEFAULT_TTL_S = 30 * 60
DEFAULT_MAX_SIZE = 10
DEFAULT_SWEEP_INTERVAL_S = 5 * 60


@dataclass
class CacheEntry:
    """A cached driver and its usage bookkeeping."""

    driver: Driver
    fingerprint: str
    last_used_at: float
    use_count: int = 1


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of the driver cache."""

    size: int
    keys: tuple[str, ...]


@dataclass
class ProviderRouter:
    """Resolves configs to drivers, memoizing instances per provider endpoint.

    Entries are keyed by ``provider:protocol:base_url``. A fingerprint change
    (credentials, base URL, timeout, adapter config) rebuilds the driver on the
    next lookup.
    The periodic sweep drops entries idle longer than ``ttl`` and then the
    least-used entries until at most ``max_size`` remain.

    Every method that touches the map is synchronous, so lookups, inserts,
    and evictions never interleave under the event loop.
    """

    ttl: float = DEFAULT_TTL_S
    max_size: int = DEFAULT_MAX_SIZE
    sweep_interval: float = DEFAULT_SWEEP_INTERVAL_S
    clock: Callable[[], float] = time.monotonic
    factory: Callable[[LLMConfig], Driver] = create_driver
    _entries: dict[str, CacheEntry] = field(default_factory=dict)
    _task: asyncio.Task[None] | None = None

    def resolve(self, config: LLMConfig) -> Driver:
        """Return a driver for *config*, reusing a cached one when valid."""
        key = config.cache_key
        fingerprint = config.fingerprint
        now = self.clock()
        entry = self._entries.get(key)
        if entry is not None:
            if entry.fingerprint == fingerprint:
                entry.last_used_at = now
                entry.use_count += 1
                logger.debug("Driver cache hit for %s (uses=%d)", key, entry.use_count)
                return entry.driver
            logger.info("Configuration changed for %s; rebuilding driver", key)
            del self._entries[key]

        driver = self.factory(config)
        self._entries[key] = CacheEntry(
            driver=driver, fingerprint=fingerprint, last_used_at=now
        )
        logger.info("Created %s driver for %s", config.protocol.value, key)
        return driver

    def sweep(self, now: float | None = None) -> list[str]:
        """Evict expired, then least-used, entries. Returns evicted keys."""
        now = self.clock() if now is None else now
        evicted = [
            key
            for key, entry in self._entries.items()
            if now - entry.last_used_at > self.ttl
        ]
        for key in evicted:
            del self._entries[key]

        overflow = len(self._entries) - self.max_size
        if overflow > 0:
            by_use = sorted(
                self._entries.items(),
                key=lambda item: (item[1].use_count, item[1].last_used_at),
            )
            for key, _ in by_use[:overflow]:
                del self._entries[key]
                evicted.append(key)

        if evicted:
            logger.info("Evicted %d cached driver(s): %s", len(evicted), evicted)
        return evicted

    def invalidate(self, provider_id: str) -> list[str]:
        """Drop every entry whose provider or protocol segment is *provider_id*."""
        removed = [k for k in self._entries if provider_id in k.split(":", 2)[:2]]
        for key in removed:
            del self._entries[key]
        if removed:
            logger.info(
                "Invalidated %d cached driver(s) for %s", len(removed), provider_id
            )
        return removed

    def invalidate_all(self) -> None:
        """Drop every cached driver."""
        self._entries.clear()
        logger.info("Invalidated all cached drivers")

    def stats(self) -> CacheStats:
        """Return the current cache size and keys."""
        return CacheStats(size=len(self._entries), keys=tuple(self._entries))

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    # --- Lifecycle ---

    @property
    def running(self) -> bool:
        """Whether the periodic sweep task is active."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic sweep on the running event loop (idempotent).

        A task left behind on a different loop is replaced.
        """
        loop = asyncio.get_running_loop()
        task = self._task
        if task is not None and not task.done() and task.get_loop() is loop:
            return
        self._task = loop.create_task(self._sweep_forever())

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    async def stop(self) -> None:
        """Stop the periodic sweep."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    async def aclose(self) -> None:
        """Stop sweeping, clear the cache, and close every cached driver."""
        await self.stop()
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            await entry.driver.aclose()
