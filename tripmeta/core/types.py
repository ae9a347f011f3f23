"""
Canonical Type Definitions
===========================

Single source of truth for shared enums used across the orchestrator.

This module defines:
- ServiceKind: Which backend capability a request targets
- ServiceState: Lifecycle state of a registered backend
- LifecyclePhase: Lifecycle state of the orchestrator itself
"""

from enum import StrEnum

__all__ = [
    "LifecyclePhase",
    "ServiceKind",
    "ServiceState",
]

class ServiceKind(StrEnum):
    """Backend capabilities the orchestrator can route to.

    Stable and finite: every request names exactly one kind, and the
    registry holds at most one handle per kind.
    """

    TEXT_GENERATION = "text_generation"
    SPEECH = "speech"
    VISION = "vision"
    RECOMMENDATION = "recommendation"
    TRANSLATION = "translation"
    SCENE_GENERATION = "scene_generation"

class ServiceState(StrEnum):
    """Per-handle lifecycle states.

    uninitialized → initializing → ready | failed
    ready → shutting_down → shutdown
    ready | failed → restarting → initializing → ...
    """

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"
    RESTARTING = "restarting"
    SHUTTING_DOWN = "shutting_down"
    SHUTDOWN = "shutdown"

class LifecyclePhase(StrEnum):
    """Orchestrator-wide lifecycle."""

    CREATED = "created"
    STARTING = "starting"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"
