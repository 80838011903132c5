"""AI providers package for the gateway.

This package provides:
- Base provider interface (BaseProvider)
- Google Gemini provider (GeminiProvider)
- Offline provider for development and tests (MockProvider)
- Provider selection dependency (get_chat_provider)
"""

from bytegate.app.providers.base import BaseProvider
from bytegate.app.providers.factory import get_chat_provider
from bytegate.app.providers.gemini import GeminiProvider
from bytegate.app.providers.mock import MockProvider

__all__ = [
    "BaseProvider",
    "GeminiProvider",
    "MockProvider",
    "get_chat_provider",
]
