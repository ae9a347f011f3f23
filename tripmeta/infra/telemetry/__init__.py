"""
Telemetry Layer — Observability
================================

Lowest infrastructure layer. All other layers depend on this.

Provides:
  - Structured logging with request context
  - Prometheus metrics with per-orchestrator registries
  - Typed observability events with isolated subscriber delivery

Usage:
    from tripmeta.infra.telemetry import get_logger

    logger = get_logger(__name__)
    logger.info("request_completed", kind="vision", latency_ms=42.3)
"""

from tripmeta.infra.telemetry.events import (
    ErrorOccurred,
    Event,
    EventBus,
    ResponseReceived,
    ServiceStatusChanged,
)
from tripmeta.infra.telemetry.logger import StructuredLogger, get_logger, setup_logging
from tripmeta.infra.telemetry.metrics import MetricsCollector

__all__ = [
    "ErrorOccurred",
    "Event",
    "EventBus",
    "MetricsCollector",
    "ResponseReceived",
    "ServiceStatusChanged",
    "StructuredLogger",
    "get_logger",
    "setup_logging",
]
