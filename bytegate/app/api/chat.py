"""Chat API endpoints for the gateway."""

import json
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field, ValidationError

from bytegate.app.core.logging import get_log_context, get_logger
from bytegate.app.exceptions import (
    InvalidRequestError,
    ProviderResponseError,
    ProviderUnavailableError,
    RateLimitExceededError,
)
from bytegate.app.middleware.auth import AuthUser, require_user
from bytegate.app.middleware.rate_limit import (
    AdmissionController,
    Tier,
    get_admission_controller,
    rate_limit_headers,
)
from bytegate.app.middleware.request_id import get_request_id
from bytegate.app.providers import BaseProvider, get_chat_provider
from bytegate.app.services.tier_resolver import get_user_tier

SYSTEM_PROMPT = """
You are a helpful assistant for "BrainBytes", a gamified, interactive platform for learning Data Structures and Algorithms (DSA).
Your name is "ByteBot". You are friendly, encouraging, and helpful.
Your goal is to help users get started, understand the app's features, and answer their questions.

Here is a summary of BrainBytes' features:
- **Gamified Learning**: Users learn by completing lessons and earn points (XP), gems, and hearts.
- **Curriculum**: Learning is structured into Courses (like Python, JavaScript, C++, Java), which are split into Units, and then Lessons.
- **Quizzes**: Lessons have multiple-choice quizzes for instant feedback.
- **Shop**: Users can spend gems on items like "Refill Hearts" and "XP Bonus".
- **Leaderboard**: A global leaderboard ranks users by their XP.
- **Quests**: Daily, weekly, and milestone quests provide goals and rewards.
- **Premium**: Premium members get higher chat limits and extra features.

Keep your answers concise and directly related to the user's questions about the BrainBytes platform.
If you don't know the answer, say so. Do not make up features.
Always be cheerful and encouraging!


Here is the question below:
"""


class ChatPart(BaseModel):
    text: str = Field(..., min_length=1)


class ChatMessage(BaseModel):
    """Message in a chat conversation."""
    parts: list[ChatPart] = Field(..., min_length=1)


class ChatRequest(BaseModel):
    """Request body for the chat endpoint."""
    messages: list[ChatMessage] = Field(..., min_length=1)


def _format_validation_errors(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
        for err in error.errors()
    )


router = APIRouter(prefix="/api/chat", tags=["chat"])
logger = get_logger(__name__)


@router.post("", response_model=None)
async def chat(
    request: Request,
    user: AuthUser = Depends(require_user),
    tier: Tier = Depends(get_user_tier),
    controller: AdmissionController = Depends(get_admission_controller),
    provider: Optional[BaseProvider] = Depends(get_chat_provider),
) -> PlainTextResponse:
    """Answer a ByteBot question, subject to the caller's rate limit.

    Flow:
    1. Authenticate the caller and resolve their tier
    2. Take one admission token (429 with Retry-After when empty)
    3. Validate the body: {"messages": [{"parts": [{"text": ...}]}]}
    4. Ask the AI provider and return its answer as plain text

    Every response after the admission check carries X-RateLimit-* headers.
    """
    request_id = get_request_id(request)
    log_context = get_log_context(request_id=request_id, user_id=user.id, tier=tier.value)

    decision = controller.check_admission(user.id, tier)
    headers = rate_limit_headers(decision)

    if not decision.allowed:
        logger.info(
            f"Rate limit exceeded, retry after {decision.retry_after}s",
            extra=log_context,
        )
        raise RateLimitExceededError(decision)

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidRequestError(
            "Invalid JSON in request body", error_code="invalid_json", headers=headers
        )

    try:
        chat_request = ChatRequest.model_validate(body)
    except ValidationError as validation_error:
        raise InvalidRequestError(
            "Invalid request structure",
            details=_format_validation_errors(validation_error),
            headers=headers,
        )

    if provider is None:
        raise ProviderUnavailableError(headers=headers)

    user_message = chat_request.messages[0].parts[0].text
    logger.info(
        f"Chat request ({decision.remaining} requests remaining)",
        extra={**log_context, "provider": provider.name},
    )

    try:
        text = await provider.generate_text(SYSTEM_PROMPT + user_message)
    except httpx.HTTPError as e:
        logger.error(f"AI provider request failed: {e}", extra=log_context)
        raise ProviderResponseError("Failed to generate chat response", headers=headers)

    if not text:
        raise ProviderResponseError(headers=headers)

    return PlainTextResponse(text, headers=headers)


@router.get("/limits")
async def chat_limits(
    user: AuthUser = Depends(require_user),
    tier: Tier = Depends(get_user_tier),
    controller: AdmissionController = Depends(get_admission_controller),
) -> Dict[str, Any]:
    """Report the caller's tier policy and bucket state without using a token."""
    policy = controller.policy_for(tier)
    return {
        "tier": tier.value,
        "requests_per_minute": policy.requests_per_minute,
        "burst_capacity": policy.burst_capacity,
        "bucket": controller.get_bucket_stats(user.id),
    }
