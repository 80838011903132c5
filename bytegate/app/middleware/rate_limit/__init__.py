"""Per-user rate limiting for the gateway.

This package provides token bucket admission control with tier dependent
policies, plus the helpers that translate an admission decision into
standard rate limit response headers.
"""

from typing import Dict

from fastapi import Request

from bytegate.app.middleware.rate_limit.controller import (
    RESET_WINDOW_MS,
    AdmissionController,
    epoch_millis,
)
from bytegate.app.middleware.rate_limit.models import (
    AdmissionDecision,
    Tier,
    TierPolicy,
    TokenBucket,
)
from bytegate.app.middleware.rate_limit.tiers import (
    DEFAULT_TIER,
    DEFAULT_TIER_POLICIES,
    parse_tier,
    policies_from_settings,
)

__all__ = [
    # Models
    "AdmissionDecision",
    "Tier",
    "TierPolicy",
    "TokenBucket",
    # Policies
    "DEFAULT_TIER",
    "DEFAULT_TIER_POLICIES",
    "parse_tier",
    "policies_from_settings",
    # Controller
    "AdmissionController",
    "RESET_WINDOW_MS",
    "epoch_millis",
    # HTTP helpers
    "get_admission_controller",
    "rate_limit_headers",
]


def rate_limit_headers(decision: AdmissionDecision) -> Dict[str, str]:
    """Build X-RateLimit-* (and Retry-After on denial) response headers."""
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(max(0, decision.remaining)),
        "X-RateLimit-Reset": str(decision.reset_time_seconds),
    }
    if not decision.allowed and decision.retry_after is not None:
        headers["Retry-After"] = str(decision.retry_after)
    return headers


def get_admission_controller(request: Request) -> AdmissionController:
    """FastAPI dependency returning the application's admission controller.

    Raises:
        RuntimeError: If the application was created without a controller
    """
    controller = getattr(request.app.state, "admission_controller", None)
    if controller is None:
        raise RuntimeError("Admission controller not configured on application state")
    return controller
