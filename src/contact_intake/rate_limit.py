# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Sliding-window rate limiter keyed by client identity.

This module implements per-identity rate limiting for the contact endpoint:
at most ``max_requests`` admissions inside any trailing window of
``window_seconds``. The decision logic lives behind the :class:`RateStore`
capability interface with two implementations:

- :class:`LocalRateStore`: in-process timestamps, guarded by sharded asyncio
  locks so that concurrent requests for one identity are serialized.
- :class:`RedisRateStore`: a Redis sorted set per identity, updated by a Lua
  script so that replicas sharing the store serialize on the same key.

:class:`RateLimiter` prefers the shared store when one is configured and
falls back to the local store whenever the shared store errors out or does
not answer within ``store_timeout``. The request pipeline never fails
because of the store.

Example:
    Using the rate limiter::

        limiter = RateLimiter(window_seconds=60, max_requests=3)
        await limiter.start()
        decision = await limiter.admit("203.0.113.7")
        if not decision.allowed:
            # Answer 429 with Retry-After: decision.retry_after_seconds
            ...
        await limiter.stop()
"""

from __future__ import annotations

import asyncio
import math
import time
import uuid
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from .logger import get_logger

if TYPE_CHECKING:
    from .prometheus import IntakeMetrics

logger = get_logger(__name__)

DEFAULT_WINDOW_SECONDS = 60
DEFAULT_MAX_REQUESTS = 3
DEFAULT_SWEEP_INTERVAL = 300
DEFAULT_STORE_TIMEOUT = 0.5


class RateStoreUnavailable(RuntimeError):
    """Raised when the shared rate store cannot answer."""


@dataclass(frozen=True)
class RateDecision:
    """Outcome of an admission check.

    Attributes:
        allowed: Whether the request may proceed.
        retry_after_seconds: Whole seconds until the oldest retained request
            leaves the window; set only when ``allowed`` is False.
    """

    allowed: bool
    retry_after_seconds: int | None = None


def retry_after(oldest: float, window_seconds: float, now: float) -> int:
    """Seconds until ``oldest`` exits the window, rounded up, at least 1."""
    return max(1, math.ceil(oldest + window_seconds - now))


class RateStore(Protocol):
    """Capability interface shared by the local and networked stores."""

    async def hit(self, identity: str, now: float) -> RateDecision:
        """Evict expired entries, then admit and record ``now`` or deny."""
        ...

    async def sweep(self, now: float) -> int:
        """Reclaim identities whose window is empty; return how many."""
        ...

    async def close(self) -> None:
        ...


class LocalRateStore:
    """In-process sliding windows for single-process deployments.

    Timestamps for each identity are kept in a deque ordered by arrival.
    A fixed set of asyncio locks is shared by hashing the identity, so two
    requests for the same identity never interleave while different
    identities rarely contend.

    Attributes:
        window_seconds: Length of the trailing window.
        max_requests: Admissions allowed per window.
    """

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        shards: int = 64,
    ):
        self.window_seconds = window_seconds
        self.max_requests = max(1, int(max_requests))
        self._windows: dict[str, deque[float]] = {}
        self._locks = [asyncio.Lock() for _ in range(max(1, shards))]

    def __len__(self) -> int:
        return len(self._windows)

    def __contains__(self, identity: object) -> bool:
        return identity in self._windows

    def _lock_for(self, identity: str) -> asyncio.Lock:
        return self._locks[hash(identity) % len(self._locks)]

    def _evict(self, window: deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()

    async def hit(self, identity: str, now: float) -> RateDecision:
        async with self._lock_for(identity):
            window = self._windows.setdefault(identity, deque())
            self._evict(window, now)
            if len(window) >= self.max_requests:
                return RateDecision(False, retry_after(window[0], self.window_seconds, now))
            window.append(now)
            return RateDecision(True)

    async def sweep(self, now: float) -> int:
        removed = 0
        for identity in list(self._windows):
            async with self._lock_for(identity):
                window = self._windows.get(identity)
                if window is None:
                    continue
                self._evict(window, now)
                if not window:
                    del self._windows[identity]
                    removed += 1
        return removed

    async def close(self) -> None:
        self._windows.clear()


# Evict, count and record in one round trip so that replicas cannot both
# observe the pre-increment count. Scores and window are milliseconds.
_SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)
if count >= limit then
  local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
  return {0, oldest[2]}
end
redis.call('ZADD', key, now, ARGV[4])
redis.call('PEXPIRE', key, window)
return {1, '0'}
"""


class RedisRateStore:
    """Sliding windows kept in Redis for multi-replica deployments.

    Each identity maps to a sorted set of request timestamps (milliseconds)
    that expires one window after its last admission, so stale identities
    are reclaimed by Redis itself.

    Attributes:
        window_seconds: Length of the trailing window.
        max_requests: Admissions allowed per window.
        key_prefix: Namespace for the sorted-set keys.
    """

    def __init__(
        self,
        client: aioredis.Redis,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        key_prefix: str = "contact-intake:rl:",
    ):
        self.window_seconds = window_seconds
        self.max_requests = max(1, int(max_requests))
        self.key_prefix = key_prefix
        self._client = client
        self._script = client.register_script(_SLIDING_WINDOW_SCRIPT)

    @classmethod
    def from_url(cls, url: str, password: str | None = None, **kwargs) -> RedisRateStore:
        """Build a store from a ``redis://`` connection URL."""
        client = aioredis.Redis.from_url(url, password=password, socket_connect_timeout=2.0)
        return cls(client, **kwargs)

    async def hit(self, identity: str, now: float) -> RateDecision:
        now_ms = int(now * 1000)
        window_ms = int(self.window_seconds * 1000)
        member = f"{now_ms}-{uuid.uuid4().hex}"
        try:
            allowed, oldest = await self._script(
                keys=[self.key_prefix + identity],
                args=[now_ms, window_ms, self.max_requests, member],
            )
        except RedisError as exc:
            raise RateStoreUnavailable(str(exc)) from exc
        if int(allowed):
            return RateDecision(True)
        return RateDecision(False, retry_after(float(oldest) / 1000, self.window_seconds, now))

    async def sweep(self, now: float) -> int:
        # Keys carry a PEXPIRE; Redis reclaims them.
        return 0

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except RedisError as exc:
            logger.warning("Error closing rate store connection: %s", exc)


class RateLimiter:
    """Per-identity admission control with shared-store fallback.

    Attributes:
        local: The in-process store, always present.
        shared: Optional networked store consulted first.
        store_timeout: Seconds to wait for the shared store before falling back.
        sweep_interval: Seconds between background sweeps of the local store.
    """

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        *,
        shared_store: RateStore | None = None,
        store_timeout: float = DEFAULT_STORE_TIMEOUT,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        metrics: IntakeMetrics | None = None,
    ):
        self.local = LocalRateStore(window_seconds, max_requests)
        self.shared = shared_store
        self.store_timeout = store_timeout
        self.sweep_interval = sweep_interval
        self.metrics = metrics
        self._stop = asyncio.Event()
        self._task_sweep: asyncio.Task | None = None

    async def admit(self, identity: str) -> RateDecision:
        """Decide whether ``identity`` may submit now.

        Args:
            identity: Client key as returned by ``client_identity()``.

        Returns:
            A :class:`RateDecision`. Denials carry ``retry_after_seconds``.
        """
        now = time.time()
        if self.shared is not None:
            try:
                return await asyncio.wait_for(self.shared.hit(identity, now), timeout=self.store_timeout)
            except (RateStoreUnavailable, asyncio.TimeoutError, ConnectionError, OSError) as exc:
                logger.warning(
                    "Shared rate store unavailable (%s), using local limiter for %s",
                    exc.__class__.__name__,
                    identity,
                )
                if self.metrics is not None:
                    self.metrics.inc_store_fallback()
        return await self.local.hit(identity, now)

    async def sweep(self) -> int:
        """Drop identities whose windows are empty. Returns the number removed."""
        now = time.time()
        removed = await self.local.sweep(now)
        if self.shared is not None:
            try:
                removed += await self.shared.sweep(now)
            except RateStoreUnavailable as exc:
                logger.warning("Shared rate store sweep failed: %s", exc)
        return removed

    # ----------------------------------------------------------------- lifecycle
    async def start(self) -> None:
        """Spawn the background sweep task."""
        self._stop.clear()
        if self._task_sweep is None:
            self._task_sweep = asyncio.create_task(self._sweep_loop(), name="rate-limit-sweep")

    async def stop(self) -> None:
        """Stop the sweep task and release the shared store connection."""
        self._stop.set()
        if self._task_sweep is not None:
            await asyncio.gather(self._task_sweep, return_exceptions=True)
            self._task_sweep = None
        if self.shared is not None:
            await self.shared.close()

    async def _sweep_loop(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.sweep_interval)
            except asyncio.TimeoutError:
                pass
            if self._stop.is_set():
                break
            removed = await self.sweep()
            if removed:
                logger.debug("Rate limiter sweep reclaimed %d identities", removed)
