"""Core utilities for the gateway application."""

from bytegate.app.core.config import Settings, settings
from bytegate.app.core.logging import get_log_context, get_logger, setup_logging
from bytegate.app.core.security import generate_api_key, hash_api_key

__all__ = [
    "Settings",
    "settings",
    "get_logger",
    "get_log_context",
    "setup_logging",
    "generate_api_key",
    "hash_api_key",
]
