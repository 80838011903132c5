"""API routers for the gateway."""

from bytegate.app.api.chat import router as chat_router

__all__ = ["chat_router"]
