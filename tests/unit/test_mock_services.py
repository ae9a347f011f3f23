"""
Simulated Backends — Unit Tests
================================

Credential validation, rate limiting, failed-response conversion and
per-kind canned results, plus a full orchestrator run over the defaults.
"""

import pytest

from tripmeta.core.config import OrchestratorConfig, ServiceConfig
from tripmeta.core.exceptions import InitializationError, ProcessingError, ServiceUnavailableError
from tripmeta.core.types import ServiceKind
from tripmeta.infra.runtime.orchestrator import Orchestrator
from tripmeta.infra.runtime.rate_limiter import FixedWindowRateLimiter
from tripmeta.infra.telemetry import ServiceStatusChanged
from tripmeta.memory.conversation import ConversationStore
from tripmeta.services.base import ServiceContext
from tripmeta.services.mock import (
    DEFAULT_FACTORIES,
    SimulatedRecommendationService,
    SimulatedSceneGenerationService,
    SimulatedService,
    SimulatedSpeechService,
    SimulatedTextGenerationService,
    SimulatedTranslationService,
    SimulatedVisionService,
)
from tripmeta.services.models import (
    RecommendationRequest,
    RecommendationResponse,
    SceneGenerationRequest,
    SpeechRecognitionRequest,
    SpeechRecognitionResponse,
    SpeechSynthesisRequest,
    SpeechSynthesisResponse,
    TextGenerationRequest,
    TextGenerationResponse,
    TranslationRequest,
    TranslationResponse,
    VisionRequest,
)

def _service(cls, *, api_key: str = "test-key", limiter=None, conversations=None, **config):
    context = ServiceContext(kind=cls.kind, rate_limiter=limiter, conversations=conversations)
    return cls(ServiceConfig(api_key=api_key, **config), context)

async def _ready(cls, **kwargs):
    service = _service(cls, **kwargs)
    await service.initialize()
    return service

class TestLifecycle:
    def test_backend_hooks_are_abstract(self):
        with pytest.raises(TypeError):
            SimulatedService(ServiceConfig(api_key="test-key"), ServiceContext(kind=ServiceKind.VISION))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["", "your-openai-api-key"])
    async def test_invalid_credentials_fail_initialize(self, key):
        service = _service(SimulatedTextGenerationService, api_key=key)
        with pytest.raises(InitializationError):
            await service.initialize()
        assert service.availability() is False

    @pytest.mark.asyncio
    async def test_shutdown_makes_unavailable(self):
        service = await _ready(SimulatedVisionService)
        assert service.availability()
        assert await service.check_health()

        await service.shutdown()

        assert service.availability() is False
        with pytest.raises(ServiceUnavailableError):
            await service.process(VisionRequest(image=b"img"))

    @pytest.mark.asyncio
    async def test_unsupported_variant_raises(self):
        service = await _ready(SimulatedVisionService)
        with pytest.raises(ProcessingError):
            await service.process(TextGenerationRequest(prompt="hi"))

    @pytest.mark.asyncio
    async def test_rate_limiter_applied_before_processing(self):
        limiter = FixedWindowRateLimiter(10, 60.0)
        service = await _ready(SimulatedTranslationService, limiter=limiter)
        await service.process(TranslationRequest(text="hello", target_language="fr"))
        await service.process(TranslationRequest(text="hello", target_language="de"))
        assert limiter.count_in_window == 2

class TestTextGeneration:
    @pytest.mark.asyncio
    async def test_canned_reply_and_history(self):
        store = ConversationStore(max_length=20)
        service = await _ready(SimulatedTextGenerationService, conversations=store)

        response = await service.process(
            TextGenerationRequest(prompt="Hello there", conversation_id="trip-1")
        )

        assert isinstance(response, TextGenerationResponse)
        assert response.success
        assert "tour guide" in response.text
        assert response.conversation_id == "trip-1"
        assert response.tokens_used > 0
        history = service.conversation("trip-1")
        assert [m.role for m in history] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_default_conversation(self):
        service = await _ready(SimulatedTextGenerationService, conversations=ConversationStore())
        response = await service.process(TextGenerationRequest(prompt="recommend something"))
        assert response.conversation_id == "default"
        assert "Central Park" in response.text
        assert service.clear_conversation() is True
        assert service.conversation() == []

    @pytest.mark.asyncio
    async def test_system_prompt_opens_conversation(self):
        store = ConversationStore()
        service = await _ready(SimulatedTextGenerationService, conversations=store)

        await service.process(
            TextGenerationRequest(prompt="hello", system_prompt="You are a museum guide.", conversation_id="m1")
        )
        await service.process(
            TextGenerationRequest(prompt="recommend", system_prompt="You are a museum guide.", conversation_id="m1")
        )

        history = service.conversation("m1")
        assert [m.role for m in history] == ["system", "user", "assistant", "user", "assistant"]
        assert history[0].content == "You are a museum guide."

    @pytest.mark.asyncio
    async def test_empty_prompt_becomes_failed_response(self):
        service = await _ready(SimulatedTextGenerationService, conversations=ConversationStore())
        response = await service.process(TextGenerationRequest(prompt="   "))
        assert response.success is False
        assert response.error_message == "prompt is empty"
        assert service.conversation() == []

class TestOtherKinds:
    @pytest.mark.asyncio
    async def test_speech_recognition(self):
        service = await _ready(SimulatedSpeechService)
        response = await service.process(SpeechRecognitionRequest(audio=b"\x00\x01", language="en-US"))
        assert isinstance(response, SpeechRecognitionResponse)
        assert response.detected_language == "en-US"
        assert response.confidence > 0

    @pytest.mark.asyncio
    async def test_speech_recognition_honours_request_timeout(self):
        service = await _ready(SimulatedSpeechService, simulated_latency_s=0.3)
        response = await service.process(SpeechRecognitionRequest(audio=b"\x00\x01", timeout_s=0.01))
        assert isinstance(response, SpeechRecognitionResponse)
        assert response.success is False
        assert response.error_message == "no result within 0.01s"

    @pytest.mark.asyncio
    async def test_speech_synthesis(self):
        service = await _ready(SimulatedSpeechService)
        response = await service.process(SpeechSynthesisRequest(text="Welcome to the museum"))
        assert isinstance(response, SpeechSynthesisResponse)
        assert response.duration_s > 0
        assert len(response.audio) == int(response.duration_s * response.sample_rate) * 2

    @pytest.mark.asyncio
    async def test_empty_audio_is_failed_response(self):
        service = await _ready(SimulatedSpeechService)
        response = await service.process(SpeechRecognitionRequest(audio=b""))
        assert isinstance(response, SpeechRecognitionResponse)
        assert response.success is False

    @pytest.mark.asyncio
    async def test_vision_respects_features(self):
        service = await _ready(SimulatedVisionService)
        response = await service.process(VisionRequest(image=b"img", features=("objects",)))
        assert response.objects
        assert response.description == ""
        assert response.extracted_text == ""

    @pytest.mark.asyncio
    async def test_recommendations_prefer_categories(self):
        service = await _ready(SimulatedRecommendationService)
        response = await service.process(
            RecommendationRequest(user_id="u1", preferences=("museum",), count=2, location_id="nyc")
        )
        assert isinstance(response, RecommendationResponse)
        assert len(response.recommendations) == 2
        assert response.recommendations[0].category == "museum"
        assert response.recommendations[0].metadata == {"location_id": "nyc"}

    @pytest.mark.asyncio
    async def test_translation_detects_source(self):
        service = await _ready(SimulatedTranslationService)
        response = await service.process(TranslationRequest(text="你好", target_language="en"))
        assert response.source_language == "zh"
        assert response.translated_text == "[en] 你好"

    @pytest.mark.asyncio
    async def test_translation_unsupported_language(self):
        service = await _ready(SimulatedTranslationService, options={"supported_languages": ["en", "zh"]})
        response = await service.process(TranslationRequest(text="hello", target_language="xx"))
        assert response.success is False

    @pytest.mark.asyncio
    async def test_scene_generation_assets(self):
        service = await _ready(SimulatedSceneGenerationService)
        response = await service.process(
            SceneGenerationRequest(description="temple", detail_level=2, tags=("lantern",))
        )
        assert len(response.assets) == 3
        assert response.assets[-1].endswith("props/lantern.glb")

class TestDefaultFactories:
    def test_every_kind_has_a_backend(self):
        assert set(DEFAULT_FACTORIES) == set(ServiceKind)

    @pytest.mark.asyncio
    async def test_orchestrator_over_simulated_backends(self):
        config = OrchestratorConfig(
            services={kind: ServiceConfig(api_key="demo-key") for kind in ServiceKind}
        )
        async with Orchestrator(config) as orchestrator:
            assert all(orchestrator.availability(kind) for kind in ServiceKind)

            response = await orchestrator.submit(
                ServiceKind.TEXT_GENERATION,
                TextGenerationRequest(prompt="Tell me about New York", conversation_id="c1"),
            )
            match response:
                case TextGenerationResponse(success=True, text=text):
                    assert "New York" in text
                case _:
                    pytest.fail(f"unexpected response {response!r}")

            assert len(orchestrator.conversations.history("c1")) == 2

            # Restart keeps conversation history.
            await orchestrator.restart(ServiceKind.TEXT_GENERATION)
            assert len(orchestrator.conversations.history("c1")) == 2

    @pytest.mark.asyncio
    async def test_invalid_text_credential_leaves_other_kinds_serving(self):
        services = {kind: ServiceConfig(api_key="demo-key") for kind in ServiceKind}
        services[ServiceKind.TEXT_GENERATION] = ServiceConfig(api_key="your-openai-api-key")
        orchestrator = Orchestrator(OrchestratorConfig(services=services))
        seen: list[ServiceStatusChanged] = []
        orchestrator.events.subscribe(ServiceStatusChanged, seen.append)

        async with orchestrator:
            status = {event.kind: event.ready for event in seen}
            assert status[ServiceKind.TEXT_GENERATION] is False
            assert all(status[kind] for kind in ServiceKind if kind != ServiceKind.TEXT_GENERATION)
            assert not orchestrator.availability(ServiceKind.TEXT_GENERATION)

            response = await orchestrator.submit(
                ServiceKind.TRANSLATION, TranslationRequest(text="hello", target_language="fr")
            )
            assert isinstance(response, TranslationResponse)
            assert response.success
