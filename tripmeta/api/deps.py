"""
Shared API Dependencies
========================

The orchestrator and health checker live on ``app.state``; routes reach
them through these dependencies instead of module-level singletons.
"""

from fastapi import Request

from tripmeta.infra.health import HealthChecker, build_health_checker
from tripmeta.infra.runtime.orchestrator import Orchestrator

__all__ = [
    "get_health_checker",
    "get_orchestrator",
]

def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator

def get_health_checker(request: Request) -> HealthChecker:
    """Built on first use, once the registry knows which kinds exist."""
    state = request.app.state
    checker = getattr(state, "health_checker", None)
    if checker is None:
        checker = build_health_checker(state.orchestrator)
        state.health_checker = checker
    return checker
