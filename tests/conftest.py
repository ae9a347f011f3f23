"""
Shared fixtures: controllable stub backends and orchestrator builders.
"""

import asyncio
from collections.abc import Callable

import pytest

from tripmeta.core.config import OrchestratorConfig, ServiceConfig
from tripmeta.core.exceptions import InitializationError, ServiceUnavailableError
from tripmeta.core.types import ServiceKind
from tripmeta.infra.runtime.orchestrator import Orchestrator
from tripmeta.services.base import AIService, ServiceContext
from tripmeta.services.models import (
    ServiceRequest,
    TextGenerationResponse,
    TranslationResponse,
    VisionResponse,
)

class StubService(AIService):
    """
    Backend whose behaviour tests control directly.

    ``gate`` (when set) blocks every ``process`` call until opened, so tests
    can hold concurrency slots. ``started`` records request ids in the order
    processing began.
    """

    def __init__(
        self,
        config: ServiceConfig,
        context: ServiceContext,
        *,
        fail_initialize: bool = False,
        fail_prewarm: bool = False,
        process_error: Exception | None = None,
        delay_s: float = 0.0,
        gate: asyncio.Event | None = None,
        started: list[str] | None = None,
    ) -> None:
        self.kind = context.kind
        self.config = config
        self.context = context
        self.fail_initialize = fail_initialize
        self.fail_prewarm = fail_prewarm
        self.process_error = process_error
        self.delay_s = delay_s
        self.gate = gate
        self.started = started if started is not None else []
        self.initialized = False
        self.prewarmed = False
        self.shutdown_calls = 0
        self.cancelled = 0
        self.running = 0
        self.peak_running = 0

    def availability(self) -> bool:
        return self.initialized and self.shutdown_calls == 0

    async def initialize(self) -> None:
        if self.fail_initialize:
            raise InitializationError("stub refused to start", service_kind=self.kind.value)
        self.initialized = True

    async def prewarm(self) -> None:
        if self.fail_prewarm:
            raise RuntimeError("prewarm exploded")
        self.prewarmed = True

    async def shutdown(self) -> None:
        self.shutdown_calls += 1

    async def process(self, request: ServiceRequest):
        if not self.availability():
            raise ServiceUnavailableError(self.kind.value)
        self.started.append(request.id)
        self.running += 1
        self.peak_running = max(self.peak_running, self.running)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.running -= 1
        if self.process_error is not None:
            raise self.process_error
        match self.kind:
            case ServiceKind.VISION:
                return VisionResponse(id=request.id, description="stub")
            case ServiceKind.TRANSLATION:
                return TranslationResponse(id=request.id, translated_text="stub")
            case _:
                return TextGenerationResponse(id=request.id, text="stub")

class StubFactory:
    """Factory that remembers every instance it built."""

    def __init__(self, **options) -> None:
        self.options = options
        self.instances: list[StubService] = []

    def __call__(self, config: ServiceConfig, context: ServiceContext) -> StubService:
        service = StubService(config, context, **self.options)
        self.instances.append(service)
        return service

    @property
    def latest(self) -> StubService:
        return self.instances[-1]

@pytest.fixture
def service_config() -> ServiceConfig:
    return ServiceConfig(api_key="test-key", requests_per_minute=0)

@pytest.fixture
def build_orchestrator(service_config) -> Callable[..., Orchestrator]:
    """Build an orchestrator over stub backends: ``build(factories, **config)``."""

    def _build(factories: dict[ServiceKind, StubFactory], **config_kwargs) -> Orchestrator:
        config = OrchestratorConfig(
            services={kind: service_config for kind in factories},
            **config_kwargs,
        )
        return Orchestrator(config, factories=factories)

    return _build
