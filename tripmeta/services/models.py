"""
Request and Response Types
===========================

Typed records exchanged between callers, the dispatcher and backends.

Requests are frozen dataclasses: identity (``id``, ``created_at``) is
generated at creation and the payload never changes afterwards. Each
variant fixes its ``service_kind`` at class level.

Responses form a closed union (``AnyResponse``). Callers resolve them by
pattern matching instead of casting:

    match await orchestrator.submit(ServiceKind.TEXT_GENERATION, request):
        case TextGenerationResponse(success=True, text=text):
            ...
        case TextGenerationResponse(error_message=error):
            ...
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, ClassVar

from tripmeta.core.types import ServiceKind

def _new_id() -> str:
    return uuid.uuid4().hex

# =============================================================================
# REQUESTS
# =============================================================================

@dataclass(frozen=True, kw_only=True)
class ServiceRequest:
    """Base request. ``priority`` is carried for a future ordering policy."""

    service_kind: ClassVar[ServiceKind]
    request_type: ClassVar[str]

    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=time.time)
    priority: float = 1.0

@dataclass(frozen=True, kw_only=True)
class TextGenerationRequest(ServiceRequest):
    service_kind: ClassVar[ServiceKind] = ServiceKind.TEXT_GENERATION
    request_type: ClassVar[str] = "text_generation"

    prompt: str
    system_prompt: str | None = None
    max_tokens: int = 500
    conversation_id: str | None = None

@dataclass(frozen=True, kw_only=True)
class SpeechRecognitionRequest(ServiceRequest):
    service_kind: ClassVar[ServiceKind] = ServiceKind.SPEECH
    request_type: ClassVar[str] = "speech_recognition"

    audio: bytes
    language: str = "zh-CN"
    timeout_s: float = 10.0
    enable_punctuation: bool = True

@dataclass(frozen=True, kw_only=True)
class SpeechSynthesisRequest(ServiceRequest):
    service_kind: ClassVar[ServiceKind] = ServiceKind.SPEECH
    request_type: ClassVar[str] = "speech_synthesis"

    text: str
    voice_name: str | None = None

@dataclass(frozen=True, kw_only=True)
class VisionRequest(ServiceRequest):
    service_kind: ClassVar[ServiceKind] = ServiceKind.VISION
    request_type: ClassVar[str] = "vision"

    image: bytes
    features: tuple[str, ...] = ("description", "objects", "text")

@dataclass(frozen=True, kw_only=True)
class RecommendationRequest(ServiceRequest):
    service_kind: ClassVar[ServiceKind] = ServiceKind.RECOMMENDATION
    request_type: ClassVar[str] = "recommendation"

    user_id: str
    location_id: str | None = None
    preferences: tuple[str, ...] = ()
    count: int = 10

@dataclass(frozen=True, kw_only=True)
class TranslationRequest(ServiceRequest):
    service_kind: ClassVar[ServiceKind] = ServiceKind.TRANSLATION
    request_type: ClassVar[str] = "translation"

    text: str
    target_language: str
    source_language: str = "auto"

@dataclass(frozen=True, kw_only=True)
class SceneGenerationRequest(ServiceRequest):
    service_kind: ClassVar[ServiceKind] = ServiceKind.SCENE_GENERATION
    request_type: ClassVar[str] = "scene_generation"

    description: str
    style: str = "realistic"
    detail_level: int = 1
    tags: tuple[str, ...] = ()

AnyRequest = (
    TextGenerationRequest
    | SpeechRecognitionRequest
    | SpeechSynthesisRequest
    | VisionRequest
    | RecommendationRequest
    | TranslationRequest
    | SceneGenerationRequest
)

# =============================================================================
# RESPONSES
# =============================================================================

@dataclass(kw_only=True)
class ServiceResponse:
    """Base response. ``id`` echoes the originating request."""

    id: str
    success: bool = True
    error_message: str | None = None
    processing_time_ms: float = 0.0
    created_at: float = field(default_factory=time.time)

@dataclass(kw_only=True)
class TextGenerationResponse(ServiceResponse):
    text: str = ""
    tokens_used: int = 0
    conversation_id: str | None = None

@dataclass(kw_only=True)
class SpeechRecognitionResponse(ServiceResponse):
    text: str = ""
    confidence: float = 0.0
    detected_language: str | None = None

@dataclass(kw_only=True)
class SpeechSynthesisResponse(ServiceResponse):
    audio: bytes = b""
    duration_s: float = 0.0
    sample_rate: int = 16000

@dataclass
class DetectedObject:
    label: str
    confidence: float
    bounding_box: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)

@dataclass(kw_only=True)
class VisionResponse(ServiceResponse):
    description: str = ""
    tags: list[str] = field(default_factory=list)
    objects: list[DetectedObject] = field(default_factory=list)
    extracted_text: str = ""
    confidence: float = 0.0

@dataclass
class Recommendation:
    id: str
    title: str
    description: str = ""
    category: str = ""
    score: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

@dataclass(kw_only=True)
class RecommendationResponse(ServiceResponse):
    recommendations: list[Recommendation] = field(default_factory=list)

@dataclass(kw_only=True)
class TranslationResponse(ServiceResponse):
    translated_text: str = ""
    source_language: str = ""
    target_language: str = ""

@dataclass(kw_only=True)
class SceneGenerationResponse(ServiceResponse):
    scene_id: str = ""
    assets: list[str] = field(default_factory=list)
    style: str = ""

AnyResponse = (
    TextGenerationResponse
    | SpeechRecognitionResponse
    | SpeechSynthesisResponse
    | VisionResponse
    | RecommendationResponse
    | TranslationResponse
    | SceneGenerationResponse
)

REQUEST_TYPES: dict[str, type[ServiceRequest]] = {
    cls.request_type: cls
    for cls in (
        TextGenerationRequest,
        SpeechRecognitionRequest,
        SpeechSynthesisRequest,
        VisionRequest,
        RecommendationRequest,
        TranslationRequest,
        SceneGenerationRequest,
    )
}
