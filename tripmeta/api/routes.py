"""
API Routes
==========

HTTP surface over an explicitly constructed ``Orchestrator``:

  GET    /health                      aggregate health (503 when unhealthy)
  GET    /services                    per-kind handle status
  POST   /services/{kind}/restart     restart one backend
  POST   /requests                    submit a typed request
  GET    /conversations/{id}          conversation history
  DELETE /conversations/{id}          clear one conversation
  GET    /stats                       runtime statistics
  GET    /metrics                     Prometheus exposition

``OrchestratorError`` subclasses are rendered by the app-level handler in
``tripmeta.api.main``.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from tripmeta.core.types import ServiceKind
from tripmeta.infra.health import HealthChecker, HealthStatus
from tripmeta.infra.runtime.dispatcher import USE_DEFAULT
from tripmeta.infra.runtime.orchestrator import Orchestrator
from tripmeta.infra.telemetry import get_logger

from .deps import get_health_checker, get_orchestrator
from .schemas import SubmitRequest, SubmitResponse, response_to_dict

logger = get_logger(__name__)

router = APIRouter()

ERROR_CONVERSATION_NOT_FOUND = "Conversation not found"

# ==================== Health & Status ====================

@router.get("/health", tags=["health"])
async def health(checker: HealthChecker = Depends(get_health_checker)) -> JSONResponse:
    result = await checker.check()
    status_code = 503 if result.status == HealthStatus.UNHEALTHY else 200
    return JSONResponse(result.to_dict(), status_code=status_code)

@router.get("/services", tags=["services"])
async def list_services(orchestrator: Orchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
    return {
        "phase": orchestrator.phase.value,
        "services": [h.to_dict() for h in orchestrator.registry.statuses().values()],
    }

@router.post("/services/{kind}/restart", tags=["services"])
async def restart_service(
    kind: ServiceKind,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    logger.info("api_restart_requested", kind=kind.value)
    handle = await orchestrator.restart(kind)
    return handle.to_dict()

# ==================== Requests ====================

@router.post("/requests", tags=["requests"], response_model=SubmitResponse)
async def submit_request(
    body: SubmitRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> SubmitResponse:
    request = body.to_request()
    kind = request.service_kind
    response = await orchestrator.submit(
        kind,
        request,
        timeout_s=body.timeout_s if body.timeout_s is not None else USE_DEFAULT,
        queue_timeout_s=body.queue_timeout_s,
    )
    return SubmitResponse(kind=kind, type=request.request_type, response=response_to_dict(response))

# ==================== Conversations ====================

@router.get("/conversations/{conversation_id}", tags=["conversations"])
async def get_conversation(
    conversation_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    record = orchestrator.conversations.get(conversation_id)
    if record is None:
        raise HTTPException(status_code=404, detail=ERROR_CONVERSATION_NOT_FOUND)
    return {
        "id": record.id,
        "messages": [m.to_dict() for m in orchestrator.conversations.history(conversation_id)],
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }

@router.delete("/conversations/{conversation_id}", tags=["conversations"])
async def clear_conversation(
    conversation_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    if not orchestrator.conversations.clear(conversation_id):
        raise HTTPException(status_code=404, detail=ERROR_CONVERSATION_NOT_FOUND)
    return {"id": conversation_id, "cleared": True}

# ==================== Observability ====================

@router.get("/stats", tags=["observability"])
async def stats(orchestrator: Orchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
    return orchestrator.get_stats()

@router.get("/metrics", tags=["observability"], include_in_schema=False)
async def metrics(orchestrator: Orchestrator = Depends(get_orchestrator)) -> Response:
    return Response(content=orchestrator.metrics.export_prometheus(), media_type=CONTENT_TYPE_LATEST)
