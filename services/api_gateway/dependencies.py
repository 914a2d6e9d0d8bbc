from libs.core.application.contracts import VisionClassifier
from libs.infra.gemini.classifier import GeminiVisionClassifier
from services.api_gateway.infrastructure.session_store import SessionRegistry
from services.api_gateway.settings import get_settings


def build_classifier() -> VisionClassifier:
    settings = get_settings()
    return GeminiVisionClassifier(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
    )


session_registry = SessionRegistry(classifier_factory=build_classifier)


def get_session_registry() -> SessionRegistry:
    return session_registry


async def reset_state() -> None:
    await session_registry.close_all()
