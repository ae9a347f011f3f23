"""
Event Bus — Observability Events for External Consumers
=========================================================

Typed events published by the registry and dispatcher:
  - ServiceStatusChanged(kind, ready)
  - ResponseReceived(kind, response)
  - ErrorOccurred(message, kind, request_id)

Subscribers are kept in an explicit list per event type. Delivery is
isolated per subscriber: a subscriber that raises is logged and counted
(and kept in ``recent_failures``) but never breaks the publishing call or
the other subscribers. Coroutine subscribers are scheduled as tasks on the
running loop and their failures are reported the same way.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from tripmeta.core.types import ServiceKind
from tripmeta.infra.telemetry.logger import get_logger

if TYPE_CHECKING:
    from tripmeta.infra.telemetry.metrics import MetricsCollector
    from tripmeta.services.models import AnyResponse

logger = get_logger(__name__)

@dataclass(frozen=True)
class Event:
    """Base class for all published events."""

    timestamp: float = field(default_factory=time.time, kw_only=True)

@dataclass(frozen=True)
class ServiceStatusChanged(Event):
    kind: ServiceKind
    ready: bool
    reason: str | None = None

@dataclass(frozen=True)
class ResponseReceived(Event):
    kind: ServiceKind
    response: AnyResponse

@dataclass(frozen=True)
class ErrorOccurred(Event):
    message: str
    kind: ServiceKind | None = None
    request_id: str | None = None

E = TypeVar("E", bound=Event)
Handler = Callable[[Any], Any]

@dataclass
class SubscriberFailure:
    event: str
    subscriber: str
    error: str
    timestamp: float = field(default_factory=time.time)

class EventBus:
    """
    Explicit subscriber list keyed by event type.

    Usage:
        bus = EventBus()
        unsubscribe = bus.subscribe(ServiceStatusChanged, on_status)
        bus.publish(ServiceStatusChanged(ServiceKind.VISION, True))
        unsubscribe()
    """

    def __init__(self, metrics: MetricsCollector | None = None, *, failure_log_size: int = 100) -> None:
        self._subscribers: dict[type[Event], list[Handler]] = {}
        self._metrics = metrics
        self._pending: set[asyncio.Task] = set()
        self.recent_failures: deque[SubscriberFailure] = deque(maxlen=failure_log_size)
        self._published = 0
        self._failures = 0

    def subscribe(self, event_type: type[E], handler: Callable[[E], Any]) -> Callable[[], None]:
        """Register ``handler`` for ``event_type`` (and its subclasses)."""
        self._subscribers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscribers(self, event_type: type[Event]) -> list[Handler]:
        """Handlers that receive ``event_type``, in subscription order."""
        matched: list[Handler] = []
        for registered, handlers in self._subscribers.items():
            if issubclass(event_type, registered):
                matched.extend(handlers)
        return matched

    def publish(self, event: Event) -> int:
        """Deliver ``event`` to every matching subscriber. Returns the count reached."""
        self._published += 1
        delivered = 0
        for handler in self.subscribers(type(event)):
            try:
                result = handler(event)
            except Exception as exc:
                self._record_failure(event, handler, exc)
                continue
            if inspect.isawaitable(result):
                self._schedule(event, handler, result)
            delivered += 1
        return delivered

    async def drain(self) -> None:
        """Wait for scheduled coroutine subscribers to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, event: Event, handler: Handler, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)

        def _done(t: asyncio.Task) -> None:
            self._pending.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                self._record_failure(event, handler, exc)

        task.add_done_callback(_done)

    def _record_failure(self, event: Event, handler: Handler, exc: BaseException) -> None:
        self._failures += 1
        event_name = type(event).__name__
        subscriber = getattr(handler, "__qualname__", repr(handler))
        self.recent_failures.append(
            SubscriberFailure(event=event_name, subscriber=subscriber, error=str(exc))
        )
        if self._metrics is not None:
            self._metrics.record_subscriber_failure(event=event_name)
        logger.error("event_subscriber_failed", exc=exc, event=event_name, subscriber=subscriber)

    def get_stats(self) -> dict[str, Any]:
        return {
            "published": self._published,
            "subscriber_failures": self._failures,
            "subscribers": {t.__name__: len(h) for t, h in self._subscribers.items()},
        }
