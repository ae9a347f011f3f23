"""
API Schemas
===========

Pydantic request bodies for ``POST /requests`` and JSON rendering of
typed responses.

Bodies form a discriminated union on ``type``; each converts to the
matching frozen ``ServiceRequest`` dataclass. Binary payloads (audio,
images) travel as base64 strings in both directions.
"""

from __future__ import annotations

import base64
import dataclasses
from typing import Annotated, Any, Literal

from pydantic import Base64Bytes, BaseModel, Field

from tripmeta.core.types import ServiceKind
from tripmeta.services.models import (
    AnyResponse,
    RecommendationRequest,
    SceneGenerationRequest,
    ServiceRequest,
    SpeechRecognitionRequest,
    SpeechSynthesisRequest,
    TextGenerationRequest,
    TranslationRequest,
    VisionRequest,
)

# ==================== Request Bodies ====================

class _RequestBody(BaseModel):
    priority: float = Field(default=1.0, ge=0.0)

class TextGenerationBody(_RequestBody):
    type: Literal["text_generation"]
    prompt: str = Field(..., min_length=1, max_length=8000)
    system_prompt: str | None = None
    max_tokens: int = Field(default=500, ge=1, le=8192)
    conversation_id: str | None = None

    def to_request(self) -> TextGenerationRequest:
        return TextGenerationRequest(
            prompt=self.prompt,
            system_prompt=self.system_prompt,
            max_tokens=self.max_tokens,
            conversation_id=self.conversation_id,
            priority=self.priority,
        )

class SpeechRecognitionBody(_RequestBody):
    type: Literal["speech_recognition"]
    audio: Base64Bytes
    language: str = "zh-CN"
    timeout_s: float = Field(default=10.0, gt=0)
    enable_punctuation: bool = True

    def to_request(self) -> SpeechRecognitionRequest:
        return SpeechRecognitionRequest(
            audio=self.audio,
            language=self.language,
            timeout_s=self.timeout_s,
            enable_punctuation=self.enable_punctuation,
            priority=self.priority,
        )

class SpeechSynthesisBody(_RequestBody):
    type: Literal["speech_synthesis"]
    text: str = Field(..., min_length=1, max_length=5000)
    voice_name: str | None = None

    def to_request(self) -> SpeechSynthesisRequest:
        return SpeechSynthesisRequest(text=self.text, voice_name=self.voice_name, priority=self.priority)

class VisionBody(_RequestBody):
    type: Literal["vision"]
    image: Base64Bytes
    features: list[str] = Field(default_factory=lambda: ["description", "objects", "text"])

    def to_request(self) -> VisionRequest:
        return VisionRequest(image=self.image, features=tuple(self.features), priority=self.priority)

class RecommendationBody(_RequestBody):
    type: Literal["recommendation"]
    user_id: str = Field(..., min_length=1)
    location_id: str | None = None
    preferences: list[str] = Field(default_factory=list)
    count: int = Field(default=10, ge=1, le=100)

    def to_request(self) -> RecommendationRequest:
        return RecommendationRequest(
            user_id=self.user_id,
            location_id=self.location_id,
            preferences=tuple(self.preferences),
            count=self.count,
            priority=self.priority,
        )

class TranslationBody(_RequestBody):
    type: Literal["translation"]
    text: str = Field(..., min_length=1, max_length=8000)
    target_language: str = Field(..., min_length=2)
    source_language: str = "auto"

    def to_request(self) -> TranslationRequest:
        return TranslationRequest(
            text=self.text,
            target_language=self.target_language,
            source_language=self.source_language,
            priority=self.priority,
        )

class SceneGenerationBody(_RequestBody):
    type: Literal["scene_generation"]
    description: str = Field(..., min_length=1)
    style: str = "realistic"
    detail_level: int = Field(default=1, ge=1, le=5)
    tags: list[str] = Field(default_factory=list)

    def to_request(self) -> SceneGenerationRequest:
        return SceneGenerationRequest(
            description=self.description,
            style=self.style,
            detail_level=self.detail_level,
            tags=tuple(self.tags),
            priority=self.priority,
        )

RequestBody = Annotated[
    TextGenerationBody
    | SpeechRecognitionBody
    | SpeechSynthesisBody
    | VisionBody
    | RecommendationBody
    | TranslationBody
    | SceneGenerationBody,
    Field(discriminator="type"),
]

class SubmitRequest(BaseModel):
    """Envelope for ``POST /requests``."""

    request: RequestBody
    timeout_s: float | None = Field(default=None, gt=0, description="Overrides the default request deadline")
    queue_timeout_s: float | None = Field(default=None, gt=0)

    def to_request(self) -> ServiceRequest:
        return self.request.to_request()

class SubmitResponse(BaseModel):
    kind: ServiceKind
    type: str
    response: dict[str, Any]

# ==================== Response Rendering ====================

def _jsonable(value: Any) -> Any:
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_jsonable(v) for v in value]
    return value

def response_to_dict(response: AnyResponse) -> dict[str, Any]:
    """Plain-JSON view of a response dataclass, bytes as base64."""
    return _jsonable(dataclasses.asdict(response))
