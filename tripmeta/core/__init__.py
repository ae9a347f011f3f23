"""
Core Layer
==========

Shared enums, configuration records and the exception taxonomy.
Imported by every other layer; imports nothing above it.
"""

from tripmeta.core.config import OrchestratorConfig, ServiceConfig
from tripmeta.core.types import LifecyclePhase, ServiceKind, ServiceState

__all__ = [
    "LifecyclePhase",
    "OrchestratorConfig",
    "ServiceConfig",
    "ServiceKind",
    "ServiceState",
]
