"""Tier policy table and tier name normalization."""

from types import MappingProxyType
from typing import Any, Mapping, Optional

from bytegate.app.core.config import Settings
from bytegate.app.middleware.rate_limit.models import Tier, TierPolicy

DEFAULT_TIER = Tier.FREE

DEFAULT_TIER_POLICIES: Mapping[Tier, TierPolicy] = MappingProxyType({
    Tier.FREE: TierPolicy(requests_per_minute=5, burst_capacity=10),
    Tier.PREMIUM: TierPolicy(requests_per_minute=30, burst_capacity=50),
    Tier.ADMIN: TierPolicy(requests_per_minute=1000, burst_capacity=2000),
})


def policies_from_settings(config: Settings) -> Mapping[Tier, TierPolicy]:
    """Build the tier policy table from application settings."""
    return MappingProxyType({
        Tier.FREE: TierPolicy(
            requests_per_minute=config.rate_limit_free_requests_per_minute,
            burst_capacity=config.rate_limit_free_burst_size,
        ),
        Tier.PREMIUM: TierPolicy(
            requests_per_minute=config.rate_limit_premium_requests_per_minute,
            burst_capacity=config.rate_limit_premium_burst_size,
        ),
        Tier.ADMIN: TierPolicy(
            requests_per_minute=config.rate_limit_admin_requests_per_minute,
            burst_capacity=config.rate_limit_admin_burst_size,
        ),
    })


def parse_tier(value: Any) -> Optional[Tier]:
    """Map a tier name or Tier to a Tier, or None when it is not recognized.

    Matching is exact on the lowercase names used in the policy table.
    """
    if isinstance(value, Tier):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Tier(value)
    except ValueError:
        return None
