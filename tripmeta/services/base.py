"""
Service Contract
================

Every backend capability implements ``AIService``. The registry owns
instances; the dispatcher only calls ``process`` on ready ones.

Backends are built by a factory ``(ServiceConfig, ServiceContext) -> AIService``.
The context carries the collaborators that must outlive any one instance
(the kind's rate limiter and the shared conversation store), so a
restarted backend picks up the same state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tripmeta.core.types import ServiceKind

if TYPE_CHECKING:
    from tripmeta.core.config import ServiceConfig
    from tripmeta.infra.runtime.rate_limiter import FixedWindowRateLimiter
    from tripmeta.memory.conversation import ConversationStore
    from tripmeta.services.models import AnyResponse, ServiceRequest

@dataclass
class ServiceContext:
    """Long-lived collaborators handed to each backend instance."""

    kind: ServiceKind
    rate_limiter: FixedWindowRateLimiter | None = None
    conversations: ConversationStore | None = None

class AIService(ABC):
    """
    Uniform backend contract.

    Lifecycle calls (``initialize``, ``prewarm``, ``shutdown``) are never
    made concurrently for one instance; ``process`` may be.
    """

    kind: ServiceKind

    @abstractmethod
    def availability(self) -> bool:
        """True once initialized and until shut down."""

    @abstractmethod
    async def initialize(self) -> None:
        """Bring the backend up. Raises ``InitializationError`` on failure."""

    @abstractmethod
    async def process(self, request: ServiceRequest) -> AnyResponse:
        """Handle one request. Raises ``ProcessingError`` or ``ServiceUnavailableError``."""

    async def prewarm(self) -> None:  # noqa: B027
        """Best-effort warmup; optional."""
        return None

    @abstractmethod
    async def shutdown(self) -> None:
        """Release resources. ``availability()`` is False afterwards."""

    async def check_health(self) -> bool:
        return self.availability()

ServiceFactory = Callable[["ServiceConfig", ServiceContext], AIService]
