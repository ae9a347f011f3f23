"""
Health Checker — Readiness and Liveness Probes
=================================================

Structured health checks for load balancer and orchestration probes.

Checks:
  - One per registered service kind (backend ``check_health`` call)
  - Admission saturation (active slots and queue depth)

Aggregation: any UNHEALTHY → unhealthy, else any DEGRADED → degraded.
A service kind that is down only degrades the system while at least one
other kind is serving.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from tripmeta.core.types import ServiceKind, ServiceState
from tripmeta.infra.telemetry import get_logger

if TYPE_CHECKING:
    from tripmeta.infra.runtime.orchestrator import Orchestrator

logger = get_logger(__name__)

class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

@dataclass
class HealthCheck:
    """Result of a single health check."""

    name: str
    status: HealthStatus
    latency_ms: float = 0.0
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

@dataclass
class SystemHealth:
    """Aggregate system health."""

    status: HealthStatus
    checks: list[HealthCheck]
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp,
            "checks": [
                {
                    "name": c.name,
                    "status": c.status.value,
                    "latency_ms": round(c.latency_ms, 2),
                    "message": c.message,
                    "details": c.details,
                }
                for c in self.checks
            ],
        }

CheckFn = Callable[[], Awaitable[HealthCheck]]

class HealthChecker:
    """
    Aggregated health checker.

    Usage:
        checker = build_health_checker(orchestrator)
        health = await checker.check()
    """

    def __init__(self, *, cache_ttl_s: float = 5.0, check_timeout_s: float = 5.0) -> None:
        self._checks: dict[str, CheckFn] = {}
        self._cache_ttl_s = cache_ttl_s
        self._check_timeout_s = check_timeout_s
        self._cached: SystemHealth | None = None
        self._cached_at = 0.0
        self._lock = threading.Lock()

    def register(self, name: str, check_fn: CheckFn) -> None:
        """Register a health check function."""
        self._checks[name] = check_fn

    @property
    def names(self) -> list[str]:
        return list(self._checks)

    async def check(self, *, use_cache: bool = True) -> SystemHealth:
        """Run all health checks."""
        if (use_cache and self._cached
                and time.monotonic() - self._cached_at < self._cache_ttl_s):
            return self._cached

        results = list(await asyncio.gather(
            *(self._run_check(name, fn) for name, fn in self._checks.items()),
        ))

        statuses = [c.status for c in results]
        if HealthStatus.UNHEALTHY in statuses:
            overall = HealthStatus.UNHEALTHY
        elif HealthStatus.DEGRADED in statuses:
            overall = HealthStatus.DEGRADED
        else:
            overall = HealthStatus.HEALTHY

        health = SystemHealth(status=overall, checks=results)
        if overall != HealthStatus.HEALTHY:
            logger.warning(
                "health_degraded",
                status=overall.value,
                failing=[c.name for c in results if c.status != HealthStatus.HEALTHY],
            )

        with self._lock:
            self._cached = health
            self._cached_at = time.monotonic()

        return health

    async def liveness(self) -> bool:
        """Simple liveness check (is process alive?)."""
        return True

    async def readiness(self) -> bool:
        """Readiness check (can at least part of the system serve?)."""
        health = await self.check()
        return health.status != HealthStatus.UNHEALTHY

    async def _run_check(self, name: str, fn: CheckFn) -> HealthCheck:
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(fn(), timeout=self._check_timeout_s)
            result.latency_ms = (time.monotonic() - start) * 1000
            return result
        except TimeoutError:
            return HealthCheck(
                name=name,
                status=HealthStatus.UNHEALTHY,
                latency_ms=(time.monotonic() - start) * 1000,
                message="Health check timed out",
            )
        except Exception as exc:
            return HealthCheck(
                name=name,
                status=HealthStatus.UNHEALTHY,
                latency_ms=(time.monotonic() - start) * 1000,
                message=str(exc),
            )

# ── Orchestrator Checks ───────────────────────────────────────────

def service_check(orchestrator: Orchestrator, kind: ServiceKind) -> CheckFn:
    """Health of one backend kind, degraded-only while other kinds still serve."""

    async def _check() -> HealthCheck:
        registry = orchestrator.registry
        handle = registry.get(kind)
        name = f"service:{kind.value}"
        if handle is None:
            return HealthCheck(name=name, status=HealthStatus.UNHEALTHY, message="not registered")

        details = {"state": handle.state.value, "generation": handle.generation}
        if await registry.is_healthy(kind):
            return HealthCheck(name=name, status=HealthStatus.HEALTHY, details=details)

        others_ready = any(registry.availability(k) for k in registry.kinds() if k != kind)
        if handle.last_error:
            message = handle.last_error
        elif handle.state == ServiceState.RESTARTING:
            message = "restarting"
        else:
            message = "health check failed" if handle.ready else "not ready"
        return HealthCheck(
            name=name,
            status=HealthStatus.DEGRADED if others_ready else HealthStatus.UNHEALTHY,
            message=message,
            details=details,
        )

    return _check

def admission_check(orchestrator: Orchestrator, *, queue_warn_depth: int = 10) -> CheckFn:
    """Degraded while every slot is busy and requests are queueing."""

    async def _check() -> HealthCheck:
        admission = orchestrator.admission
        details = {
            "active": admission.active_count,
            "max_concurrent": admission.max_concurrent,
            "queue_depth": admission.queue_depth,
        }
        if admission.saturated and admission.queue_depth >= queue_warn_depth:
            return HealthCheck(
                name="admission",
                status=HealthStatus.DEGRADED,
                message=f"{admission.queue_depth} requests waiting for a slot",
                details=details,
            )
        return HealthCheck(name="admission", status=HealthStatus.HEALTHY, details=details)

    return _check

def build_health_checker(orchestrator: Orchestrator, **kwargs: Any) -> HealthChecker:
    """HealthChecker wired with one check per registered kind plus admission."""
    checker = HealthChecker(**kwargs)
    for kind in orchestrator.registry.kinds():
        checker.register(f"service:{kind.value}", service_check(orchestrator, kind))
    checker.register("admission", admission_check(orchestrator))
    return checker
