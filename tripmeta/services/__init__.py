"""Backend contract, request/response types and simulated backends."""

from tripmeta.services.base import AIService, ServiceContext, ServiceFactory
from tripmeta.services.mock import DEFAULT_FACTORIES, SimulatedService
from tripmeta.services.models import (
    REQUEST_TYPES,
    AnyRequest,
    AnyResponse,
    RecommendationRequest,
    RecommendationResponse,
    SceneGenerationRequest,
    SceneGenerationResponse,
    ServiceRequest,
    ServiceResponse,
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

__all__ = [
    "DEFAULT_FACTORIES",
    "REQUEST_TYPES",
    "AIService",
    "AnyRequest",
    "AnyResponse",
    "RecommendationRequest",
    "RecommendationResponse",
    "SceneGenerationRequest",
    "SceneGenerationResponse",
    "ServiceContext",
    "ServiceFactory",
    "ServiceRequest",
    "ServiceResponse",
    "SimulatedService",
    "SpeechRecognitionRequest",
    "SpeechRecognitionResponse",
    "SpeechSynthesisRequest",
    "SpeechSynthesisResponse",
    "TextGenerationRequest",
    "TextGenerationResponse",
    "TranslationRequest",
    "TranslationResponse",
    "VisionRequest",
    "VisionResponse",
]
