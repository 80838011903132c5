"""Select the AI provider used by the chat endpoint."""

from typing import Optional

from bytegate.app.core.config import settings
from bytegate.app.core.http_client import get_http_client
from bytegate.app.core.logging import get_logger
from bytegate.app.providers.base import BaseProvider
from bytegate.app.providers.gemini import GeminiProvider
from bytegate.app.providers.mock import MockProvider

logger = get_logger(__name__)

_mock_provider: Optional[MockProvider] = None


def create_gemini_provider() -> GeminiProvider:
    try:
        http_client = get_http_client()
    except RuntimeError:
        # Outside the app lifespan; the provider opens a client per request
        http_client = None
    return GeminiProvider(
        base_url=settings.gemini_base_url,
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        http_client=http_client,
        timeout=settings.gemini_timeout,
    )


def get_chat_provider() -> Optional[BaseProvider]:
    """FastAPI dependency returning the configured provider.

    Returns:
        MockProvider when mock mode is enabled, GeminiProvider when an API
        key is configured, otherwise None
    """
    global _mock_provider

    if settings.mock_provider:
        if _mock_provider is None:
            _mock_provider = MockProvider()
        return _mock_provider

    if settings.gemini_api_key:
        return create_gemini_provider()

    logger.warning("No AI provider configured (set GEMINI_API_KEY or BYTEGATE_MOCK_PROVIDER)")
    return None
