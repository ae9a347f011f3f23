"""
Service Registry — Per-Kind Handles and Lifecycle
===================================================

Owns one ``ServiceHandle`` per configured ServiceKind and drives each
backend through its state machine:

    uninitialized → initializing → {ready | failed}
    ready → shutting_down → shutdown
    {ready | failed} → restarting → initializing → ...

Isolation:
  - Kinds initialize concurrently; one kind failing never blocks or
    fails another
  - Lifecycle operations on one kind are serialized by that kind's lock
  - Handles are replaced whole (single dict assignment), so a reader sees
    either the old or the new handle, never a half-built one
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from tripmeta.core.config import ServiceConfig
from tripmeta.core.exceptions import (
    InitializationError,
    ServiceNotConfiguredError,
    ServiceUnavailableError,
)
from tripmeta.core.types import ServiceKind, ServiceState
from tripmeta.infra.runtime.rate_limiter import RateLimiterRegistry
from tripmeta.infra.telemetry import EventBus, MetricsCollector, ServiceStatusChanged, get_logger
from tripmeta.memory.conversation import ConversationStore
from tripmeta.services.base import AIService, ServiceContext, ServiceFactory

logger = get_logger(__name__)

@dataclass
class ServiceHandle:
    """Registry-owned view of one backend. Never mutated outside the registry."""

    kind: ServiceKind
    config: ServiceConfig
    service: AIService | None = None
    state: ServiceState = ServiceState.UNINITIALIZED
    last_error: str | None = None
    generation: int = 0
    initialized_at: float | None = None
    created_at: float = field(default_factory=time.time)

    @property
    def ready(self) -> bool:
        return (
            self.state == ServiceState.READY
            and self.service is not None
            and self.service.availability()
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "state": self.state.value,
            "ready": self.ready,
            "generation": self.generation,
            "last_error": self.last_error,
            "initialized_at": self.initialized_at,
        }

class ServiceRegistry:
    """
    Builds, initializes, restarts and shuts down backends.

    Usage:
        registry = ServiceRegistry(DEFAULT_FACTORIES, events=bus)
        await registry.register_all(config.enabled_services())
        await registry.prewarm_all()
        handle = registry.resolve(ServiceKind.VISION)
    """

    def __init__(
        self,
        factories: Mapping[ServiceKind, ServiceFactory],
        *,
        rate_limiters: RateLimiterRegistry | None = None,
        conversations: ConversationStore | None = None,
        events: EventBus | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._factories = dict(factories)
        self._rate_limiters = rate_limiters if rate_limiters is not None else RateLimiterRegistry(metrics)
        self._conversations = conversations if conversations is not None else ConversationStore()
        self._events = events
        self._metrics = metrics
        self._handles: dict[ServiceKind, ServiceHandle] = {}
        self._locks: dict[ServiceKind, asyncio.Lock] = {}

    # ── Queries ──────────────────────────────────────────────────

    def __contains__(self, kind: ServiceKind) -> bool:
        return kind in self._handles

    def kinds(self) -> list[ServiceKind]:
        return list(self._handles)

    def get(self, kind: ServiceKind) -> ServiceHandle | None:
        return self._handles.get(kind)

    def resolve(self, kind: ServiceKind) -> ServiceHandle:
        """Return the ready handle for ``kind`` or raise ``ServiceUnavailableError``."""
        handle = self._handles.get(kind)
        if handle is None:
            raise ServiceUnavailableError(kind.value, reason="not configured")
        if not handle.ready:
            raise ServiceUnavailableError(kind.value, reason=handle.state.value)
        return handle

    def availability(self, kind: ServiceKind) -> bool:
        handle = self._handles.get(kind)
        return handle is not None and handle.ready

    def statuses(self) -> dict[ServiceKind, ServiceHandle]:
        return dict(self._handles)

    async def is_healthy(self, kind: ServiceKind) -> bool:
        """Ask ``kind``'s backend for its health. Not ready or raising counts as unhealthy."""
        handle = self._handles.get(kind)
        if handle is None or not handle.ready or handle.service is None:
            return False
        try:
            return bool(await handle.service.check_health())
        except Exception as exc:
            logger.warning("service_health_check_failed", kind=kind.value, error=str(exc))
            return False

    # ── Lifecycle ────────────────────────────────────────────────

    def _lock_for(self, kind: ServiceKind) -> asyncio.Lock:
        lock = self._locks.get(kind)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[kind] = lock
        return lock

    def _context_for(self, kind: ServiceKind, config: ServiceConfig) -> ServiceContext:
        limiter = self._rate_limiters.get_or_create(
            kind, config.requests_per_minute, config.rate_window_s
        )
        return ServiceContext(kind=kind, rate_limiter=limiter, conversations=self._conversations)

    def _publish_status(self, handle: ServiceHandle, reason: str | None = None) -> None:
        ready = handle.ready
        if self._metrics is not None:
            self._metrics.record_service_ready(kind=handle.kind.value, ready=ready)
        if self._events is not None:
            self._events.publish(ServiceStatusChanged(handle.kind, ready, reason))

    async def _bring_up(self, kind: ServiceKind, config: ServiceConfig, generation: int) -> ServiceHandle:
        """Build and initialize a fresh handle. Failures land in the handle, not raised."""
        handle = ServiceHandle(
            kind=kind, config=config, state=ServiceState.INITIALIZING, generation=generation
        )
        self._handles[kind] = handle

        factory = self._factories.get(kind)
        try:
            if factory is None:
                raise InitializationError(f"No factory registered for {kind}", service_kind=kind.value)
            service = factory(config, self._context_for(kind, config))
            await service.initialize()
        except Exception as exc:
            error = exc if isinstance(exc, InitializationError) else InitializationError(
                str(exc), service_kind=kind.value, original_error=exc
            )
            failed = replace(handle, state=ServiceState.FAILED, last_error=error.detail)
            self._handles[kind] = failed
            logger.error("service_initialize_failed", exc=exc, kind=kind.value, generation=generation)
            self._publish_status(failed, reason=error.detail)
            return failed

        ready = replace(
            handle,
            service=service,
            state=ServiceState.READY,
            last_error=None,
            initialized_at=time.time(),
        )
        self._handles[kind] = ready
        logger.info("service_ready", kind=kind.value, generation=generation)
        self._publish_status(ready)
        return ready

    async def register(self, kind: ServiceKind, config: ServiceConfig) -> ServiceHandle:
        async with self._lock_for(kind):
            return await self._bring_up(kind, config, generation=0)

    async def register_all(self, configs: Mapping[ServiceKind, ServiceConfig]) -> dict[ServiceKind, ServiceHandle]:
        """
        Initialize every enabled kind concurrently.

        Never raises for a single kind's failure; inspect the returned
        handles (or ``statuses()``) for ``failed`` states.
        """
        enabled = {k: c for k, c in configs.items() if c.enabled}
        skipped = sorted(k.value for k, c in configs.items() if not c.enabled)
        if skipped:
            logger.info("services_disabled", kinds=skipped)

        handles = await asyncio.gather(
            *(self.register(kind, config) for kind, config in enabled.items())
        )
        ready = sum(1 for h in handles if h.ready)
        logger.info("services_registered", total=len(handles), ready=ready, failed=len(handles) - ready)
        return {h.kind: h for h in handles}

    async def prewarm_all(self) -> None:
        """Warm every ready backend concurrently. Failures are logged, never raised."""
        handles = [h for h in self._handles.values() if h.ready]
        results = await asyncio.gather(
            *(h.service.prewarm() for h in handles),  # type: ignore[union-attr]
            return_exceptions=True,
        )
        for handle, result in zip(handles, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("service_prewarm_failed", kind=handle.kind.value, error=str(result))
            else:
                logger.debug("service_prewarmed", kind=handle.kind.value)

    async def restart(self, kind: ServiceKind) -> ServiceHandle:
        """
        Replace ``kind``'s backend with a fresh instance built from the same config.

        While restarting, new submissions for ``kind`` fail fast. Other
        kinds keep serving.

        Raises:
            ServiceNotConfiguredError: ``kind`` was never registered.
            ServiceUnavailableError: ``kind`` has been shut down.
        """
        if kind not in self._handles:
            raise ServiceNotConfiguredError(kind.value)

        async with self._lock_for(kind):
            old = self._handles[kind]
            if old.state in (ServiceState.SHUTTING_DOWN, ServiceState.SHUTDOWN):
                raise ServiceUnavailableError(kind.value, reason=old.state.value)
            restarting = replace(old, state=ServiceState.RESTARTING)
            self._handles[kind] = restarting
            self._publish_status(restarting, reason="restarting")
            logger.info("service_restarting", kind=kind.value, generation=old.generation)

            if old.service is not None:
                await self._shutdown_service(kind, old.service)
            self._handles[kind] = replace(restarting, service=None)

            if self._metrics is not None:
                self._metrics.record_restart(kind=kind.value)
            return await self._bring_up(kind, old.config, generation=old.generation + 1)

    async def _shutdown_service(self, kind: ServiceKind, service: AIService) -> None:
        try:
            await service.shutdown()
        except Exception as exc:
            logger.error("service_shutdown_failed", exc=exc, kind=kind.value)

    async def _shutdown_one(self, kind: ServiceKind) -> None:
        async with self._lock_for(kind):
            handle = self._handles[kind]
            if handle.state in (ServiceState.SHUTDOWN, ServiceState.SHUTTING_DOWN):
                return
            self._handles[kind] = replace(handle, state=ServiceState.SHUTTING_DOWN)
            if handle.service is not None:
                await self._shutdown_service(kind, handle.service)
            closed = replace(handle, service=None, state=ServiceState.SHUTDOWN)
            self._handles[kind] = closed
            self._publish_status(closed, reason="shutdown")

    async def shutdown_all(self) -> None:
        """Shut every backend down concurrently. Errors are logged."""
        await asyncio.gather(*(self._shutdown_one(k) for k in list(self._handles)))
        logger.info("services_shutdown", total=len(self._handles))
