"""
TripMeta Application
=====================

Builds the FastAPI app around one explicitly constructed ``Orchestrator``.

Layers, initialized in dependency order during lifespan startup and torn
down in reverse during shutdown:
  Telemetry     (structured logging, metrics, events)
  Runtime       (registry, admission, dispatcher)
  API           (routes, exception handling)

Run with any ASGI server using the factory, e.g.:
    uvicorn tripmeta.api.main:create_app --factory
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tripmeta import __version__
from tripmeta.core.config import OrchestratorConfig
from tripmeta.core.exceptions import OrchestratorError
from tripmeta.core.types import LifecyclePhase
from tripmeta.infra.runtime.orchestrator import Orchestrator
from tripmeta.infra.telemetry import get_logger, setup_logging

from .routes import router

logger = get_logger(__name__)

async def orchestrator_exception_handler(request: Request, exc: OrchestratorError) -> JSONResponse:
    """Render orchestrator errors with their HTTP status and error code."""
    if exc.status_code >= 500:
        logger.warning(
            "api_request_failed",
            path=request.url.path,
            error_code=exc.error_code,
            status_code=exc.status_code,
        )
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)

def create_app(orchestrator: Orchestrator | None = None, *, env_file: str | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        orchestrator: Pre-built orchestrator (tests, embedding). When omitted
            one is built from the environment and logging is configured.
        env_file: Optional .env file read when building from the environment.
    """
    if orchestrator is None:
        config = OrchestratorConfig.from_env(env_file)
        setup_logging(level=config.log_level, log_dir=config.log_dir)
        orchestrator = Orchestrator(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if orchestrator.phase == LifecyclePhase.CREATED:
            await orchestrator.start()
        logger.info("api_started", version=__version__)
        try:
            yield
        finally:
            await orchestrator.shutdown()
            logger.info("api_stopped")

    app = FastAPI(
        title="TripMeta Orchestrator",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    app.add_exception_handler(OrchestratorError, orchestrator_exception_handler)  # type: ignore[arg-type]
    app.include_router(router)
    return app
