"""
Rate Limiter — Fixed-Window Per-Service Throttle
===================================================

Protects a backend from exceeding an external provider's call budget.

Composes with admission control: the dispatcher bounds *parallelism*,
the rate limiter bounds *throughput over time*. Backends call
``acquire()`` at the start of ``process()``, so a rate-limited request
keeps its concurrency slot for the whole wait; the backlog is visible
upstream as queue depth.

Algorithm (per limiter):
  1. If ``now - window_start >= window_s``: reset count, window_start = now
  2. If ``count >= limit``: sleep for the rest of the window, then re-check
  3. Otherwise: count += 1, proceed immediately

Waiting is never an error.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from tripmeta.core.types import ServiceKind
from tripmeta.infra.telemetry import MetricsCollector, get_logger

logger = get_logger(__name__)

class FixedWindowRateLimiter:
    """
    Fixed-window counter.

    ``limit <= 0`` disables limiting. ``clock`` and ``sleep`` are injectable
    so tests can drive time explicitly.
    """

    def __init__(
        self,
        limit: int,
        window_s: float = 60.0,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        metrics: MetricsCollector | None = None,
    ) -> None:
        if window_s <= 0:
            raise ValueError(f"window_s must be positive, got {window_s}")
        self.limit = limit
        self.window_s = window_s
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._metrics = metrics
        self._lock = asyncio.Lock()
        self._window_start = clock()
        self._count = 0
        self._total_acquired = 0
        self._total_waits = 0
        self._total_wait_s = 0.0

    @property
    def enabled(self) -> bool:
        return self.limit > 0

    @property
    def count_in_window(self) -> int:
        return self._count

    @property
    def window_start(self) -> float:
        return self._window_start

    def _roll_window(self, now: float) -> None:
        if now - self._window_start >= self.window_s:
            self._count = 0
            self._window_start = now

    async def acquire(self) -> float:
        """
        Take one call from the current window, waiting if it is exhausted.

        Returns:
            Seconds spent waiting (0.0 when admitted immediately).
        """
        if not self.enabled:
            return 0.0

        waited = 0.0
        while True:
            async with self._lock:
                now = self._clock()
                self._roll_window(now)
                if self._count < self.limit:
                    self._count += 1
                    self._total_acquired += 1
                    break
                wait_s = self.window_s - (now - self._window_start)

            # Sleep outside the lock so other callers observe the same window.
            logger.info(
                "rate_limit_wait",
                limiter=self.name,
                wait_s=round(wait_s, 3),
                limit=self.limit,
            )
            await self._sleep(wait_s)
            waited += wait_s

        if waited > 0:
            self._total_waits += 1
            self._total_wait_s += waited
            if self._metrics is not None:
                self._metrics.record_rate_limit_wait(kind=self.name, wait_s=waited)
        return waited

    def get_stats(self) -> dict[str, Any]:
        return {
            "limit": self.limit,
            "window_s": self.window_s,
            "count_in_window": self._count,
            "total_acquired": self._total_acquired,
            "total_waits": self._total_waits,
            "total_wait_s": round(self._total_wait_s, 3),
        }

class RateLimiterRegistry:
    """
    One limiter per ServiceKind, kept for the orchestrator's lifetime.

    Limiters outlive backend instances: a restarted backend receives the
    same limiter, so a restart cannot reset the provider budget.
    """

    def __init__(self, metrics: MetricsCollector | None = None) -> None:
        self._limiters: dict[ServiceKind, FixedWindowRateLimiter] = {}
        self._metrics = metrics

    def get_or_create(self, kind: ServiceKind, limit: int, window_s: float = 60.0) -> FixedWindowRateLimiter:
        limiter = self._limiters.get(kind)
        if limiter is None:
            limiter = FixedWindowRateLimiter(
                limit, window_s, name=kind.value, metrics=self._metrics
            )
            self._limiters[kind] = limiter
        return limiter

    def get(self, kind: ServiceKind) -> FixedWindowRateLimiter | None:
        return self._limiters.get(kind)

    def get_stats(self) -> dict[str, Any]:
        return {kind.value: limiter.get_stats() for kind, limiter in self._limiters.items()}
