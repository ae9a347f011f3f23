"""
Runtime Layer — Request Path and Lifecycle
============================================

Components:
  - AdmissionController: global concurrency bound + FIFO wait queue
  - FixedWindowRateLimiter / RateLimiterRegistry: per-kind throughput caps
  - ServiceRegistry: per-kind handles, initialize / prewarm / restart / shutdown
  - RequestDispatcher: fast-fail checks, admission, deadline, events
  - Orchestrator: builds and owns all of the above
"""

from tripmeta.infra.runtime.admission import AdmissionController
from tripmeta.infra.runtime.dispatcher import USE_DEFAULT, RequestDispatcher
from tripmeta.infra.runtime.orchestrator import Orchestrator
from tripmeta.infra.runtime.rate_limiter import FixedWindowRateLimiter, RateLimiterRegistry
from tripmeta.infra.runtime.registry import ServiceHandle, ServiceRegistry

__all__ = [
    "USE_DEFAULT",
    "AdmissionController",
    "FixedWindowRateLimiter",
    "Orchestrator",
    "RateLimiterRegistry",
    "RequestDispatcher",
    "ServiceHandle",
    "ServiceRegistry",
]
