"""
Orchestrator — Owner of the Runtime Layer
============================================

Constructs and wires every runtime component in dependency order and
tears them down in reverse:

    EventBus / MetricsCollector
      → RateLimiterRegistry, ConversationStore   (outlive backend restarts)
      → ServiceRegistry                          (handles + lifecycle)
      → AdmissionController → RequestDispatcher  (request path)

There is no module-level instance: build one ``Orchestrator`` per
process and pass it to whoever needs it (the HTTP layer keeps it on
``app.state``). Tests build as many as they like.

Usage:
    async with Orchestrator(OrchestratorConfig.from_env()) as orchestrator:
        response = await orchestrator.submit(
            ServiceKind.TEXT_GENERATION,
            TextGenerationRequest(prompt="Tell me about this temple"),
        )
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from tripmeta.core.config import OrchestratorConfig
from tripmeta.core.types import LifecyclePhase, ServiceKind
from tripmeta.infra.runtime.admission import AdmissionController
from tripmeta.infra.runtime.dispatcher import USE_DEFAULT, RequestDispatcher
from tripmeta.infra.runtime.rate_limiter import RateLimiterRegistry
from tripmeta.infra.runtime.registry import ServiceHandle, ServiceRegistry
from tripmeta.infra.telemetry import EventBus, MetricsCollector, get_logger
from tripmeta.memory.conversation import ConversationStore
from tripmeta.services.base import ServiceFactory
from tripmeta.services.mock import DEFAULT_FACTORIES
from tripmeta.services.models import AnyResponse, ServiceRequest

logger = get_logger(__name__)

class Orchestrator:
    """Front door for typed requests across all backend kinds."""

    def __init__(
        self,
        config: OrchestratorConfig | None = None,
        *,
        factories: Mapping[ServiceKind, ServiceFactory] | None = None,
        events: EventBus | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.config = config or OrchestratorConfig()
        self._phase = LifecyclePhase.CREATED

        self._metrics = metrics or MetricsCollector()
        self._events = events or EventBus(self._metrics)
        self._rate_limiters = RateLimiterRegistry(self._metrics)
        self._conversations = ConversationStore(self.config.max_conversation_length)
        self._registry = ServiceRegistry(
            factories if factories is not None else DEFAULT_FACTORIES,
            rate_limiters=self._rate_limiters,
            conversations=self._conversations,
            events=self._events,
            metrics=self._metrics,
        )
        self._admission = AdmissionController(
            self.config.max_concurrent,
            queue_timeout_s=self.config.queue_timeout_s,
            metrics=self._metrics,
        )
        self._dispatcher = RequestDispatcher(
            self._registry,
            self._admission,
            phase=lambda: self._phase,
            request_timeout_s=self.config.request_timeout_s,
            events=self._events,
            metrics=self._metrics,
        )

    # ── Components ───────────────────────────────────────────────

    @property
    def phase(self) -> LifecyclePhase:
        return self._phase

    @property
    def registry(self) -> ServiceRegistry:
        return self._registry

    @property
    def dispatcher(self) -> RequestDispatcher:
        return self._dispatcher

    @property
    def admission(self) -> AdmissionController:
        return self._admission

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def conversations(self) -> ConversationStore:
        return self._conversations

    @property
    def rate_limiters(self) -> RateLimiterRegistry:
        return self._rate_limiters

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Initialize every enabled backend, then prewarm the ready ones."""
        if self._phase != LifecyclePhase.CREATED:
            raise RuntimeError(f"Orchestrator cannot start from phase {self._phase}")
        self._phase = LifecyclePhase.STARTING
        logger.info(
            "orchestrator_starting",
            max_concurrent=self.config.max_concurrent,
            request_timeout_s=self.config.request_timeout_s,
            services=sorted(k.value for k in self.config.enabled_services()),
        )
        try:
            await self._registry.register_all(self.config.services)
            await self._registry.prewarm_all()
        except BaseException:
            self._phase = LifecyclePhase.STOPPED
            raise
        self._phase = LifecyclePhase.RUNNING
        ready = [k.value for k in self._registry.kinds() if self._registry.availability(k)]
        logger.info("orchestrator_started", ready=sorted(ready))

    async def shutdown(self) -> None:
        """Stop accepting requests and shut every backend down. Idempotent."""
        if self._phase in (LifecyclePhase.SHUTTING_DOWN, LifecyclePhase.STOPPED):
            return
        self._phase = LifecyclePhase.SHUTTING_DOWN
        logger.info("orchestrator_shutting_down", in_flight=self._dispatcher.in_flight)
        try:
            await self._registry.shutdown_all()
            await self._events.drain()
        finally:
            self._phase = LifecyclePhase.STOPPED
        logger.info("orchestrator_stopped")

    async def __aenter__(self) -> Orchestrator:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    # ── Operations ───────────────────────────────────────────────

    async def submit(
        self,
        kind: ServiceKind,
        request: ServiceRequest,
        *,
        timeout_s: float | None = USE_DEFAULT,
        queue_timeout_s: float | None = None,
    ) -> AnyResponse:
        return await self._dispatcher.submit(
            kind, request, timeout_s=timeout_s, queue_timeout_s=queue_timeout_s
        )

    async def restart(self, kind: ServiceKind) -> ServiceHandle:
        """Restart one kind. Only allowed while the orchestrator is running."""
        self._dispatcher.check_accepting()
        return await self._registry.restart(kind)

    def availability(self, kind: ServiceKind) -> bool:
        return self._registry.availability(kind)

    def get_stats(self) -> dict[str, Any]:
        return {
            "phase": self._phase.value,
            "services": {k.value: h.to_dict() for k, h in self._registry.statuses().items()},
            "dispatcher": self._dispatcher.get_stats(),
            "rate_limiters": self._rate_limiters.get_stats(),
            "conversations": len(self._conversations),
            "events": self._events.get_stats(),
            "metrics": self._metrics.get_summary(),
        }
