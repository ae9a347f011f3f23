"""Custom exception classes for the TripMeta orchestrator.

Includes:
- Base exception carrying an HTTP status and a stable error code
- Lifecycle errors (initialization, not-initialized, shutdown)
- Routing errors (unavailable service, mismatched request)
- Processing errors raised by backends, including deadline expiry
"""

from datetime import UTC, datetime
from typing import Any


class OrchestratorError(Exception):
    """Base exception for all orchestrator errors."""

    def __init__(
        self, detail: str, status_code: int = 500, error_code: str = "INTERNAL_ERROR"
    ):
        self.detail = detail
        self.status_code = status_code
        self.error_code = error_code
        self.timestamp = datetime.now(UTC).isoformat()
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": self.error_code,
            "detail": self.detail,
            "status_code": self.status_code,
            "timestamp": self.timestamp,
        }


# =============================================================================
# LIFECYCLE EXCEPTIONS
# =============================================================================


class InitializationError(OrchestratorError):
    """A single backend failed to start. Isolated to that service kind."""

    def __init__(
        self,
        detail: str,
        service_kind: str | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(
            detail=detail, status_code=500, error_code="INITIALIZATION_FAILED"
        )
        self.service_kind = service_kind
        self.original_error = original_error

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["service_kind"] = self.service_kind
        return base


class NotInitializedError(OrchestratorError):
    """Raised when a request arrives before the orchestrator is running."""

    def __init__(self, detail: str = "Orchestrator is not initialized"):
        super().__init__(
            detail=detail, status_code=503, error_code="NOT_INITIALIZED"
        )


class OrchestratorShutdownError(NotInitializedError):
    """Raised for submissions after shutdown has begun."""

    def __init__(self, detail: str = "Orchestrator is shutting down"):
        super().__init__(detail=detail)
        self.error_code = "SHUTTING_DOWN"


class ServiceNotConfiguredError(OrchestratorError):
    """Raised when a lifecycle operation names a kind that was never registered."""

    def __init__(self, service_kind: str):
        super().__init__(
            detail=f"Service {service_kind} is not configured",
            status_code=404,
            error_code="SERVICE_NOT_CONFIGURED",
        )
        self.service_kind = service_kind


# =============================================================================
# ROUTING EXCEPTIONS
# =============================================================================


class ServiceUnavailableError(OrchestratorError):
    """Target kind has no ready handle. Fails fast, never queued."""

    def __init__(self, service_kind: str, reason: str = "not ready"):
        super().__init__(
            detail=f"Service {service_kind} is unavailable: {reason}",
            status_code=503,
            error_code="SERVICE_UNAVAILABLE",
        )
        self.service_kind = service_kind
        self.reason = reason


class InvalidRequestError(OrchestratorError):
    """Raised when a request cannot be routed as submitted."""

    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=422, error_code="INVALID_REQUEST")


class QueueTimeoutError(OrchestratorError):
    """A queued request expired before a concurrency slot was handed to it."""

    def __init__(self, request_id: str, waited_s: float):
        super().__init__(
            detail=f"Request {request_id} expired after waiting {waited_s:.2f}s for admission",
            status_code=503,
            error_code="QUEUE_TIMEOUT",
        )
        self.request_id = request_id
        self.waited_s = waited_s


# =============================================================================
# PROCESSING EXCEPTIONS
# =============================================================================


class ProcessingError(OrchestratorError):
    """Backend-reported failure during process()."""

    def __init__(
        self,
        detail: str,
        service_kind: str | None = None,
        request_id: str | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(
            detail=f"Processing failed: {detail}",
            status_code=502,
            error_code="PROCESSING_ERROR",
        )
        self.service_kind = service_kind
        self.request_id = request_id
        self.original_error = original_error

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update({"service_kind": self.service_kind, "request_id": self.request_id})
        return base


class RequestTimeoutError(ProcessingError):
    """Backend call exceeded the request deadline and was cancelled."""

    def __init__(self, service_kind: str, request_id: str, timeout_s: float):
        super().__init__(
            detail=f"no response within {timeout_s:.2f}s",
            service_kind=service_kind,
            request_id=request_id,
        )
        self.status_code = 504
        self.error_code = "REQUEST_TIMEOUT"
        self.timeout_s = timeout_s
