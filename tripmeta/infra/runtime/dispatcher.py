"""
Request Dispatcher — Admission, Routing and Deadline
======================================================

Single entry point for typed requests.

Flow per request:
  1. Fast-fail checks (never queued):
       - orchestrator not running      → NotInitializedError
       - orchestrator shutting down    → OrchestratorShutdownError
       - request variant ≠ kind        → InvalidRequestError
       - kind has no ready handle      → ServiceUnavailableError
  2. Admission: take a concurrency slot or wait in FIFO order
  3. Re-resolve the handle (a restart may have happened while queued)
  4. ``service.process(request)`` under the request deadline
  5. Release the slot (handed to the next waiter, if any)
  6. Publish ResponseReceived / ErrorOccurred, record metrics

Errored requests are never re-queued. ``priority`` is carried on the
request but does not affect ordering.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any

from tripmeta.core.exceptions import (
    InvalidRequestError,
    NotInitializedError,
    OrchestratorError,
    OrchestratorShutdownError,
    ProcessingError,
    QueueTimeoutError,
    RequestTimeoutError,
    ServiceUnavailableError,
)
from tripmeta.core.types import LifecyclePhase, ServiceKind
from tripmeta.infra.runtime.admission import AdmissionController
from tripmeta.infra.runtime.registry import ServiceHandle, ServiceRegistry
from tripmeta.infra.telemetry import (
    ErrorOccurred,
    EventBus,
    MetricsCollector,
    ResponseReceived,
    get_logger,
)
from tripmeta.infra.telemetry.logger import clear_request_context, set_request_context
from tripmeta.services.models import AnyResponse, ServiceRequest

logger = get_logger(__name__)

# Sentinel for "use the dispatcher default" where None means "no deadline".
USE_DEFAULT: Any = object()

class RequestDispatcher:
    """
    Routes requests to ready backends under a global concurrency bound.

    ``phase`` is a callable so the dispatcher always sees the owning
    orchestrator's current lifecycle phase.
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        admission: AdmissionController,
        *,
        phase: Callable[[], LifecyclePhase],
        request_timeout_s: float | None = 30.0,
        events: EventBus | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._registry = registry
        self._admission = admission
        self._phase = phase
        self.request_timeout_s = request_timeout_s
        self._events = events
        self._metrics = metrics
        self._in_flight: set[str] = set()
        self._completed = 0
        self._failed = 0

    @property
    def admission(self) -> AdmissionController:
        return self._admission

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def check_accepting(self) -> None:
        phase = self._phase()
        if phase in (LifecyclePhase.SHUTTING_DOWN, LifecyclePhase.STOPPED):
            raise OrchestratorShutdownError()
        if phase != LifecyclePhase.RUNNING:
            raise NotInitializedError()

    async def submit(
        self,
        kind: ServiceKind,
        request: ServiceRequest,
        *,
        timeout_s: float | None = USE_DEFAULT,
        queue_timeout_s: float | None = None,
    ) -> AnyResponse:
        """
        Dispatch ``request`` to the ``kind`` backend.

        Args:
            kind: Target service kind; must match the request variant.
            request: A ServiceRequest variant.
            timeout_s: Deadline for the backend call. Defaults to the
                kind's ``ServiceConfig.timeout_s``, then the dispatcher's
                ``request_timeout_s``; ``None`` disables it.
            queue_timeout_s: Overrides the admission queue timeout.

        Raises:
            NotInitializedError, OrchestratorShutdownError,
            InvalidRequestError, ServiceUnavailableError,
            QueueTimeoutError, ProcessingError, RequestTimeoutError
        """
        self.check_accepting()
        if request.service_kind != kind:
            raise InvalidRequestError(
                f"{type(request).__name__} targets {request.service_kind}, not {kind}"
            )
        self._registry.resolve(kind)

        set_request_context(request_id=request.id, service_kind=kind.value)
        try:
            start = time.monotonic()
            try:
                await self._admission.acquire(request.id, queue_timeout_s=queue_timeout_s)
            except QueueTimeoutError as exc:
                self._record_failure(kind, request, exc, start)
                raise
            try:
                return await self._run(kind, request, timeout_s)
            finally:
                self._admission.release()
        finally:
            clear_request_context()

    def _deadline_for(self, handle: ServiceHandle, timeout_s: float | None) -> float | None:
        if timeout_s is not USE_DEFAULT:
            return timeout_s
        if handle.config.timeout_s is not None:
            return handle.config.timeout_s
        return self.request_timeout_s

    async def _run(self, kind: ServiceKind, request: ServiceRequest, timeout_s: float | None) -> AnyResponse:
        start = time.monotonic()
        self._in_flight.add(request.id)
        try:
            # A restart may have replaced the handle while this request was queued.
            handle = self._registry.resolve(kind)
            service = handle.service
            if service is None:
                raise ServiceUnavailableError(kind.value, reason="no instance")
            deadline = self._deadline_for(handle, timeout_s)
            if deadline is None:
                response = await service.process(request)
            else:
                try:
                    response = await asyncio.wait_for(service.process(request), deadline)
                except TimeoutError:
                    raise RequestTimeoutError(kind.value, request.id, deadline) from None
        except OrchestratorError as exc:
            self._record_failure(kind, request, exc, start)
            raise
        except Exception as exc:
            error = ProcessingError(
                str(exc) or type(exc).__name__,
                service_kind=kind.value,
                request_id=request.id,
                original_error=exc,
            )
            self._record_failure(kind, request, error, start)
            raise error from exc
        finally:
            self._in_flight.discard(request.id)

        latency = time.monotonic() - start
        self._completed += 1
        status = "ok" if response.success else "failed"
        if self._metrics is not None:
            self._metrics.record_request(kind=kind.value, status=status, latency_s=latency)
        logger.info(
            "request_completed",
            kind=kind.value,
            request_id=request.id,
            success=response.success,
            latency_ms=round(latency * 1000, 2),
        )
        if self._events is not None:
            self._events.publish(ResponseReceived(kind, response))
        return response

    def _record_failure(
        self, kind: ServiceKind, request: ServiceRequest, error: OrchestratorError, start: float
    ) -> None:
        latency = time.monotonic() - start
        self._failed += 1
        if self._metrics is not None:
            self._metrics.record_request(kind=kind.value, status=error.error_code.lower(), latency_s=latency)
        logger.warning(
            "request_failed",
            kind=kind.value,
            request_id=request.id,
            error_code=error.error_code,
            error=error.detail,
        )
        if self._events is not None:
            self._events.publish(ErrorOccurred(error.detail, kind=kind, request_id=request.id))

    def get_stats(self) -> dict[str, Any]:
        return {
            "in_flight": len(self._in_flight),
            "completed": self._completed,
            "failed": self._failed,
            "request_timeout_s": self.request_timeout_s,
            "admission": self._admission.get_stats(),
        }
