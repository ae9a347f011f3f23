"""
Simulated Backends
==================

One in-process backend per ServiceKind, returning canned results after a
configurable delay. They stand in for real providers in development,
demos and tests, and exercise the full contract:

  - ``initialize`` validates the configured credential (empty or
    placeholder keys fail with ``InitializationError``)
  - ``process`` takes a call from the kind's rate limiter first, then
    simulates latency
  - unexpected internal errors become failed responses (``success=False``)
  - request variants a backend does not handle raise ``ProcessingError``
"""

from __future__ import annotations

import asyncio
import time
import uuid
from abc import abstractmethod
from typing import Any

from tripmeta.core.config import ServiceConfig
from tripmeta.core.exceptions import (
    InitializationError,
    ProcessingError,
    ServiceUnavailableError,
)
from tripmeta.core.types import ServiceKind
from tripmeta.infra.telemetry import get_logger
from tripmeta.memory.conversation import ConversationStore, Message
from tripmeta.services.base import AIService, ServiceContext, ServiceFactory
from tripmeta.services.models import (
    AnyResponse,
    DetectedObject,
    Recommendation,
    RecommendationRequest,
    RecommendationResponse,
    SceneGenerationRequest,
    SceneGenerationResponse,
    ServiceRequest,
    SpeechRecognitionRequest,
    SpeechRecognitionResponse,
    SpeechSynthesisRequest,
    SpeechSynthesisResponse,
    TextGenerationRequest,
    TextGenerationResponse,
    TranslationRequest,
    TranslationResponse,
    VisionRequest,
    VisionResponse,
)

logger = get_logger(__name__)

class SimulatedService(AIService):
    """Shared lifecycle for the simulated backends."""

    kind: ServiceKind
    handles: tuple[type[ServiceRequest], ...] = ()

    def __init__(self, config: ServiceConfig, context: ServiceContext) -> None:
        self.config = config
        self.context = context
        self._initialized = False
        self._shutdown = False
        self._processed = 0

    def availability(self) -> bool:
        return self._initialized and not self._shutdown

    async def initialize(self) -> None:
        if not self.config.has_valid_credentials:
            raise InitializationError(
                f"{self.kind} requires a valid API key",
                service_kind=self.kind.value,
            )
        await asyncio.sleep(0)
        self._initialized = True
        self._shutdown = False
        logger.info("service_initialized", kind=self.kind.value, model=self.config.model or "simulated")

    async def shutdown(self) -> None:
        self._shutdown = True
        self._initialized = False
        logger.info("service_shutdown", kind=self.kind.value, processed=self._processed)

    async def process(self, request: ServiceRequest) -> AnyResponse:
        if not self.availability():
            raise ServiceUnavailableError(self.kind.value, reason="backend not initialized")
        if not isinstance(request, self.handles):
            raise ProcessingError(
                f"{type(request).__name__} is not supported by {self.kind}",
                service_kind=self.kind.value,
                request_id=request.id,
            )

        if self.context.rate_limiter is not None:
            await self.context.rate_limiter.acquire()

        start = time.monotonic()
        deadline = self._deadline_for(request)
        try:
            response = await asyncio.wait_for(self._simulate(request), deadline)
        except (ProcessingError, ServiceUnavailableError):
            raise
        except TimeoutError:
            message = "timed out" if deadline is None else f"no result within {deadline:.2f}s"
            logger.warning(
                "service_request_timed_out",
                kind=self.kind.value,
                request_id=request.id,
                deadline_s=deadline,
            )
            response = self._failed(request, message)
        except Exception as exc:
            logger.warning(
                "service_request_failed",
                kind=self.kind.value,
                request_id=request.id,
                error=str(exc),
            )
            response = self._failed(request, str(exc))

        response.processing_time_ms = (time.monotonic() - start) * 1000
        self._processed += 1
        return response

    async def _simulate(self, request: ServiceRequest) -> AnyResponse:
        if self.config.simulated_latency_s > 0:
            await asyncio.sleep(self.config.simulated_latency_s)
        return await self._handle(request)

    def _deadline_for(self, request: ServiceRequest) -> float | None:
        """Backend-side bound on one request, or None for no bound."""
        return None

    @abstractmethod
    async def _handle(self, request: Any) -> AnyResponse:
        """Produce the response for a supported request variant."""

    @abstractmethod
    def _failed(self, request: ServiceRequest, message: str) -> AnyResponse:
        """Build the failed response variant matching ``request``."""

# ── Text Generation ──────────────────────────────────────────────

_CANNED_REPLIES: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("hello", "你好"),
        "Hello! I'm your TripMeta tour guide. What would you like to explore today?",
    ),
    (
        ("new york", "纽约"),
        "New York is the largest city in the United States, home to the Statue of "
        "Liberty, the Empire State Building and Times Square. Which part interests you?",
    ),
    (
        ("recommend", "推荐"),
        "Based on your interests I'd suggest:\n1. Central Park\n"
        "2. The Metropolitan Museum of Art\n3. Brooklyn Bridge\nWhich one sounds best?",
    ),
)

_FALLBACK_REPLY = (
    "Thanks for asking! Tell me what you'd like to know about this place "
    "and I'll do my best to answer."
)

class SimulatedTextGenerationService(SimulatedService):
    """Canned tour-guide replies; keeps multi-turn history in the conversation store."""

    kind = ServiceKind.TEXT_GENERATION
    handles = (TextGenerationRequest,)

    def __init__(self, config: ServiceConfig, context: ServiceContext) -> None:
        super().__init__(config, context)
        if context.conversations is None:
            context.conversations = ConversationStore(config.max_conversation_length)
        self.conversations = context.conversations

    @staticmethod
    def _reply_for(prompt: str) -> str:
        lowered = prompt.lower()
        for keywords, reply in _CANNED_REPLIES:
            if any(k in lowered for k in keywords):
                return reply
        return _FALLBACK_REPLY

    async def _handle(self, request: TextGenerationRequest) -> TextGenerationResponse:
        if not request.prompt.strip():
            raise ValueError("prompt is empty")
        conversation_id = request.conversation_id
        if request.system_prompt and not self.conversations.history(conversation_id):
            self.conversations.add_message(conversation_id, "system", request.system_prompt)
        self.conversations.add_message(conversation_id, "user", request.prompt)
        text = self._reply_for(request.prompt)
        words = text.split()
        if len(words) > request.max_tokens:
            text = " ".join(words[: request.max_tokens])
        self.conversations.add_message(conversation_id, "assistant", text)
        return TextGenerationResponse(
            id=request.id,
            text=text,
            tokens_used=len(request.prompt.split()) + len(text.split()),
            conversation_id=self.conversations.get_or_create(conversation_id).id,
        )

    def _failed(self, request: ServiceRequest, message: str) -> TextGenerationResponse:
        return TextGenerationResponse(id=request.id, success=False, error_message=message)

    def conversation(self, conversation_id: str | None = None) -> list[Message]:
        return self.conversations.history(conversation_id)

    def clear_conversation(self, conversation_id: str | None = None) -> bool:
        return self.conversations.clear(conversation_id)

# ── Speech ───────────────────────────────────────────────────────

class SimulatedSpeechService(SimulatedService):
    """Recognition returns fixed text; synthesis returns silent 16-bit PCM."""

    kind = ServiceKind.SPEECH
    handles = (SpeechRecognitionRequest, SpeechSynthesisRequest)

    sample_rate = 16000
    seconds_per_char = 0.06

    def _deadline_for(self, request: ServiceRequest) -> float | None:
        if isinstance(request, SpeechRecognitionRequest):
            return request.timeout_s
        return None

    async def _handle(
        self, request: SpeechRecognitionRequest | SpeechSynthesisRequest
    ) -> SpeechRecognitionResponse | SpeechSynthesisResponse:
        match request:
            case SpeechRecognitionRequest(audio=audio, language=language):
                if not audio:
                    raise ValueError("audio payload is empty")
                text = "This is a simulated speech recognition result"
                if request.enable_punctuation:
                    text += "."
                return SpeechRecognitionResponse(
                    id=request.id,
                    text=text,
                    confidence=0.95,
                    detected_language=language,
                )
            case SpeechSynthesisRequest(text=text):
                if not text.strip():
                    raise ValueError("nothing to synthesize")
                duration = round(max(0.5, len(text) * self.seconds_per_char), 3)
                samples = int(duration * self.sample_rate)
                return SpeechSynthesisResponse(
                    id=request.id,
                    audio=bytes(samples * 2),
                    duration_s=duration,
                    sample_rate=self.sample_rate,
                )

    def _failed(self, request: ServiceRequest, message: str) -> AnyResponse:
        if isinstance(request, SpeechSynthesisRequest):
            return SpeechSynthesisResponse(id=request.id, success=False, error_message=message)
        return SpeechRecognitionResponse(id=request.id, success=False, error_message=message)

# ── Vision ───────────────────────────────────────────────────────

class SimulatedVisionService(SimulatedService):
    kind = ServiceKind.VISION
    handles = (VisionRequest,)

    async def _handle(self, request: VisionRequest) -> VisionResponse:
        if not request.image:
            raise ValueError("image payload is empty")
        features = set(request.features)
        response = VisionResponse(id=request.id, confidence=0.9)
        if "description" in features:
            response.description = "A historic landmark under a clear sky"
            response.tags = ["landmark", "architecture", "outdoor"]
        if "objects" in features:
            response.objects = [
                DetectedObject(label="building", confidence=0.92, bounding_box=(0.1, 0.1, 0.8, 0.7)),
                DetectedObject(label="person", confidence=0.81, bounding_box=(0.4, 0.6, 0.1, 0.3)),
            ]
        if "text" in features:
            response.extracted_text = "WELCOME"
        return response

    def _failed(self, request: ServiceRequest, message: str) -> VisionResponse:
        return VisionResponse(id=request.id, success=False, error_message=message)

# ── Recommendation ───────────────────────────────────────────────

_CATALOG = (
    Recommendation(id="rec1", title="Central Park", description="A vast park in the heart of the city", category="nature", score=0.95),
    Recommendation(id="rec2", title="The Metropolitan Museum of Art", description="One of the world's great museums", category="museum", score=0.9),
    Recommendation(id="rec3", title="Times Square", description="The crossroads of the world", category="landmark", score=0.85),
    Recommendation(id="rec4", title="Brooklyn Bridge", description="An iconic suspension bridge", category="landmark", score=0.8),
)

class SimulatedRecommendationService(SimulatedService):
    kind = ServiceKind.RECOMMENDATION
    handles = (RecommendationRequest,)

    async def _handle(self, request: RecommendationRequest) -> RecommendationResponse:
        preferred = {p.lower() for p in request.preferences}
        ranked = sorted(
            _CATALOG,
            key=lambda r: (r.category not in preferred, -r.score),
        )
        picks = [
            Recommendation(
                id=r.id,
                title=r.title,
                description=r.description,
                category=r.category,
                score=r.score,
                metadata={"location_id": request.location_id} if request.location_id else {},
            )
            for r in ranked[: max(request.count, 0)]
        ]
        return RecommendationResponse(id=request.id, recommendations=picks)

    def _failed(self, request: ServiceRequest, message: str) -> RecommendationResponse:
        return RecommendationResponse(id=request.id, success=False, error_message=message)

# ── Translation ──────────────────────────────────────────────────

class SimulatedTranslationService(SimulatedService):
    kind = ServiceKind.TRANSLATION
    handles = (TranslationRequest,)

    async def _handle(self, request: TranslationRequest) -> TranslationResponse:
        supported = self.config.options.get("supported_languages")
        if supported and request.target_language not in supported:
            raise ValueError(f"unsupported target language: {request.target_language}")
        source = request.source_language
        if source == "auto":
            source = "zh" if any("一" <= ch <= "鿿" for ch in request.text) else "en"
        return TranslationResponse(
            id=request.id,
            translated_text=f"[{request.target_language}] {request.text}",
            source_language=source,
            target_language=request.target_language,
        )

    def _failed(self, request: ServiceRequest, message: str) -> TranslationResponse:
        return TranslationResponse(id=request.id, success=False, error_message=message)

# ── Scene Generation ─────────────────────────────────────────────

class SimulatedSceneGenerationService(SimulatedService):
    kind = ServiceKind.SCENE_GENERATION
    handles = (SceneGenerationRequest,)

    async def _handle(self, request: SceneGenerationRequest) -> SceneGenerationResponse:
        if request.detail_level < 1:
            raise ValueError("detail_level must be >= 1")
        scene_id = uuid.uuid4().hex[:12]
        assets = [f"{scene_id}/terrain_lod{i}.glb" for i in range(request.detail_level)]
        assets.extend(f"{scene_id}/props/{tag}.glb" for tag in request.tags)
        return SceneGenerationResponse(
            id=request.id,
            scene_id=scene_id,
            assets=assets,
            style=request.style,
        )

    def _failed(self, request: ServiceRequest, message: str) -> SceneGenerationResponse:
        return SceneGenerationResponse(id=request.id, success=False, error_message=message)

DEFAULT_FACTORIES: dict[ServiceKind, ServiceFactory] = {
    ServiceKind.TEXT_GENERATION: SimulatedTextGenerationService,
    ServiceKind.SPEECH: SimulatedSpeechService,
    ServiceKind.VISION: SimulatedVisionService,
    ServiceKind.RECOMMENDATION: SimulatedRecommendationService,
    ServiceKind.TRANSLATION: SimulatedTranslationService,
    ServiceKind.SCENE_GENERATION: SimulatedSceneGenerationService,
}
