"""Rate limiting data models.

This module contains the tier enumeration and the dataclasses for tier
policies, token bucket state and admission decisions.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Tier(str, Enum):
    """Caller classification that selects a rate limit policy."""

    FREE = "free"
    PREMIUM = "premium"
    ADMIN = "admin"


@dataclass(frozen=True)
class TierPolicy:
    """Steady-state rate and burst size for one tier."""

    requests_per_minute: int
    burst_capacity: int

    @property
    def refill_rate_per_second(self) -> float:
        return self.requests_per_minute / 60.0


@dataclass
class TokenBucket:
    """Token bucket state for a single caller identity.

    Timestamps are wall-clock milliseconds since the epoch.
    """

    identity: str
    tokens: float
    capacity: int
    refill_rate_per_second: float
    last_refill_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AdmissionDecision:
    """Result of an admission check.

    reset_time is in epoch milliseconds. retry_after is only set on denial
    and is the whole number of seconds after which one token is available.
    """

    allowed: bool
    remaining: int
    reset_time: int
    limit: int
    retry_after: Optional[int] = None

    @property
    def reset_time_seconds(self) -> int:
        """Reset time in epoch seconds, rounded up."""
        return -(-self.reset_time // 1000)
