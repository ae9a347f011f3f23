"""
Admission Control — Global Concurrency Bound + FIFO Wait Queue
=================================================================

Bounds the number of requests in flight across all service kinds.

Semantics:
  - A request takes a slot immediately only when one is free AND nobody
    is already waiting; otherwise it joins the FIFO queue
  - Each waiter suspends on its own future. ``release()`` hands the slot
    directly to the queue head (the active count does not change), so
    exactly one waiter is admitted per release and arrival order is kept
  - A waiter leaves the queue exactly once: admitted, expired
    (``queue_timeout_s``) or abandoned (its caller was cancelled)

No ``await`` occurs between reading and updating ``_active`` /
``_waiters``, so every critical section runs atomically on the loop.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from tripmeta.core.exceptions import QueueTimeoutError
from tripmeta.infra.telemetry import MetricsCollector, get_logger

logger = get_logger(__name__)

@dataclass
class Waiter:
    """Queue entry for one suspended request."""

    request_id: str
    future: asyncio.Future[None]
    enqueued_at: float = field(default_factory=time.monotonic)

    @property
    def wait_time_s(self) -> float:
        return time.monotonic() - self.enqueued_at

class AdmissionController:
    """
    Counter plus FIFO wait queue.

    Usage:
        admission = AdmissionController(max_concurrent=5)
        await admission.acquire(request.id)
        try:
            ...
        finally:
            admission.release()
    """

    def __init__(
        self,
        max_concurrent: int = 5,
        *,
        queue_timeout_s: float | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        self.max_concurrent = max_concurrent
        self.queue_timeout_s = queue_timeout_s
        self._metrics = metrics
        self._active = 0
        self._waiters: deque[Waiter] = deque()
        self._total_admitted = 0
        self._total_queued = 0
        self._total_expired = 0
        self._total_abandoned = 0

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def queue_depth(self) -> int:
        return len(self._waiters)

    @property
    def saturated(self) -> bool:
        return self._active >= self.max_concurrent

    def queued_ids(self) -> list[str]:
        """Ids of waiting requests, head first."""
        return [w.request_id for w in self._waiters]

    def _publish_gauges(self) -> None:
        if self._metrics is not None:
            self._metrics.record_admission(active=self._active, queued=len(self._waiters))

    async def acquire(self, request_id: str, *, queue_timeout_s: float | None = None) -> float:
        """
        Take a concurrency slot, waiting in FIFO order if none is free.

        Args:
            request_id: Used for logging and queue inspection.
            queue_timeout_s: Overrides the controller default for this call.

        Returns:
            Seconds spent queued (0.0 on the fast path).

        Raises:
            QueueTimeoutError: The wait exceeded the queue timeout.
        """
        if self._active < self.max_concurrent and not self._waiters:
            self._active += 1
            self._total_admitted += 1
            self._publish_gauges()
            return 0.0

        timeout = queue_timeout_s if queue_timeout_s is not None else self.queue_timeout_s
        waiter = Waiter(request_id=request_id, future=asyncio.get_running_loop().create_future())
        self._waiters.append(waiter)
        self._total_queued += 1
        self._publish_gauges()
        logger.debug(
            "admission_queued",
            request_id=request_id,
            position=len(self._waiters),
            active=self._active,
        )

        try:
            if timeout is None:
                await waiter.future
            else:
                await asyncio.wait_for(asyncio.shield(waiter.future), timeout)
        except TimeoutError:
            # A slot handed over just as the timer fired is kept.
            if not self._granted(waiter):
                waited = waiter.wait_time_s
                self._withdraw(waiter)
                self._total_expired += 1
                if self._metrics is not None:
                    self._metrics.record_queue_expired()
                logger.warning("admission_expired", request_id=request_id, waited_s=round(waited, 3))
                raise QueueTimeoutError(request_id, waited) from None
        except asyncio.CancelledError:
            if self._granted(waiter):
                self.release()
            else:
                self._withdraw(waiter)
                self._total_abandoned += 1
            raise

        waited = waiter.wait_time_s
        self._total_admitted += 1
        if self._metrics is not None:
            self._metrics.record_queue_wait(waited)
        return waited

    @staticmethod
    def _granted(waiter: Waiter) -> bool:
        return waiter.future.done() and not waiter.future.cancelled()

    def _withdraw(self, waiter: Waiter) -> None:
        """Remove a waiter that gave up before being handed a slot."""
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass
        if not waiter.future.done():
            waiter.future.cancel()
        self._publish_gauges()

    def release(self) -> None:
        """Return a slot, handing it to the queue head when one is waiting."""
        while self._waiters:
            waiter = self._waiters.popleft()
            if waiter.future.done():
                continue
            waiter.future.set_result(None)
            self._publish_gauges()
            return
        if self._active <= 0:
            raise RuntimeError("release() called without a matching acquire()")
        self._active -= 1
        self._publish_gauges()

    def get_stats(self) -> dict[str, Any]:
        return {
            "active": self._active,
            "max_concurrent": self.max_concurrent,
            "queue_depth": len(self._waiters),
            "total_admitted": self._total_admitted,
            "total_queued": self._total_queued,
            "total_expired": self._total_expired,
            "total_abandoned": self._total_abandoned,
        }
