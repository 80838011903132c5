"""Per-user token bucket admission control.

The AdmissionController owns a map from caller identity to token bucket.
Each check refills the caller's bucket from elapsed wall-clock time and
then tries to take one token. Buckets idle for longer than the retention
window are reclaimed by a periodic background sweep.

Limits are enforced per process. Instances behind a load balancer each
keep their own buckets, so the effective global limit scales with the
number of instances.
"""

import asyncio
import math
import threading
import time
from typing import Any, Callable, Dict, Mapping, Optional, Union

from bytegate.app.core.config import Settings, settings
from bytegate.app.core.logging import get_log_context, get_logger
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

logger = get_logger(__name__)

Clock = Callable[[], float]

# Window reported as reset time for admitted and fail-open requests
RESET_WINDOW_MS = 60_000

# Float tolerance when comparing against a whole token, so that waiting
# retry_after seconds always yields an admission.
_TOKEN_EPSILON = 1e-9


def epoch_millis() -> float:
    """Current wall-clock time in milliseconds since the epoch."""
    return time.time() * 1000.0


class AdmissionController:
    """Token bucket rate limiter keyed by caller identity.

    Usage:
        controller = AdmissionController.from_settings()
        await controller.start()

        decision = controller.check_admission(user_id, "premium")
        if not decision.allowed:
            ...  # 429 with Retry-After: decision.retry_after

        await controller.shutdown()

    check_admission never raises: missing identities, unknown tiers and
    internal errors are logged and the request is allowed.
    """

    DEFAULT_CLEANUP_INTERVAL_SECONDS = 300.0
    DEFAULT_MAX_IDLE_MS = 3_600_000

    def __init__(
        self,
        policies: Optional[Mapping[Tier, TierPolicy]] = None,
        clock: Optional[Clock] = None,
        cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        max_idle_ms: float = DEFAULT_MAX_IDLE_MS,
    ):
        """Initialize the controller.

        Args:
            policies: Tier policy table (defaults to the built-in table)
            clock: Callable returning epoch milliseconds, injectable for tests
            cleanup_interval: Seconds between background reclamation sweeps
            max_idle_ms: Idle time after which the sweep drops a bucket
        """
        self._policies: Dict[Tier, TierPolicy] = dict(policies or DEFAULT_TIER_POLICIES)
        missing = [tier.value for tier in Tier if tier not in self._policies]
        if missing:
            raise ValueError(f"Missing rate limit policy for tiers: {', '.join(missing)}")

        self._clock: Clock = clock or epoch_millis
        self._cleanup_interval = cleanup_interval
        self._max_idle_ms = max_idle_ms

        self._buckets: Dict[str, TokenBucket] = {}
        # Guards the bucket map; handlers may run on a thread pool
        self._lock = threading.Lock()

        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @classmethod
    def from_settings(
        cls,
        config: Settings = settings,
        clock: Optional[Clock] = None,
    ) -> "AdmissionController":
        """Create a controller configured from application settings."""
        return cls(
            policies=policies_from_settings(config),
            clock=clock,
            cleanup_interval=config.rate_limit_cleanup_interval_seconds,
            max_idle_ms=config.rate_limit_max_idle_seconds * 1000,
        )

    @property
    def bucket_count(self) -> int:
        with self._lock:
            return len(self._buckets)

    @property
    def is_running(self) -> bool:
        return self._task is not None

    def policy_for(self, tier: Union[Tier, str, None]) -> TierPolicy:
        """Return the policy for a tier, falling back to the default tier."""
        resolved = parse_tier(tier) or DEFAULT_TIER
        return self._policies[resolved]

    def check_admission(
        self,
        identity: str,
        tier: Union[Tier, str, None] = DEFAULT_TIER,
    ) -> AdmissionDecision:
        """Decide whether one request from identity may proceed now.

        Args:
            identity: Opaque caller key (user id)
            tier: Tier name; omitted means the default (free) tier

        Returns:
            AdmissionDecision with remaining tokens, reset time and, on
            denial, the number of seconds to wait before retrying
        """
        if tier is None:
            tier = DEFAULT_TIER

        resolved = parse_tier(tier)
        if resolved is None:
            logger.warning(
                f"Rate limit check with unknown tier {tier!r}, allowing request",
                extra=get_log_context(user_id=identity if isinstance(identity, str) else None),
            )
            return self._fail_open(self._policies[DEFAULT_TIER])

        policy = self._policies[resolved]
        if not identity or not isinstance(identity, str):
            logger.warning(
                "Rate limit check without a valid identity, allowing request",
                extra=get_log_context(tier=resolved.value),
            )
            return self._fail_open(policy)

        try:
            return self._consume(identity, policy)
        except Exception as e:
            logger.exception(
                f"Unexpected rate limit error: {e}",
                extra=get_log_context(user_id=identity, tier=resolved.value),
            )
            return self._fail_open(policy)

    def _consume(self, identity: str, policy: TierPolicy) -> AdmissionDecision:
        """Refill the identity's bucket, then try to take one token."""
        now = self._clock()

        with self._lock:
            bucket = self._buckets.get(identity)
            if bucket is None:
                bucket = TokenBucket(
                    identity=identity,
                    tokens=float(policy.burst_capacity),
                    capacity=policy.burst_capacity,
                    refill_rate_per_second=policy.refill_rate_per_second,
                    last_refill_ms=now,
                )
                self._buckets[identity] = bucket

            # The tier is supplied per call, so a changed tier applies at once
            bucket.capacity = policy.burst_capacity
            bucket.refill_rate_per_second = policy.refill_rate_per_second

            # A clock that moved backwards must not remove tokens
            elapsed_ms = max(0.0, now - bucket.last_refill_ms)
            refill = elapsed_ms * policy.requests_per_minute / 60_000.0
            bucket.tokens = min(float(bucket.capacity), bucket.tokens + refill)
            bucket.last_refill_ms = max(bucket.last_refill_ms, now)

            if bucket.tokens + _TOKEN_EPSILON >= 1.0:
                bucket.tokens = max(0.0, bucket.tokens - 1.0)
                return AdmissionDecision(
                    allowed=True,
                    remaining=math.floor(bucket.tokens),
                    reset_time=int(now + RESET_WINDOW_MS),
                    limit=policy.burst_capacity,
                )

            tokens_needed = 1.0 - bucket.tokens

        retry_after = max(1, math.ceil(tokens_needed * 60.0 / policy.requests_per_minute))
        return AdmissionDecision(
            allowed=False,
            remaining=0,
            reset_time=int(now + retry_after * 1000),
            limit=policy.burst_capacity,
            retry_after=retry_after,
        )

    def _safe_now(self) -> float:
        try:
            return self._clock()
        except Exception:
            logger.exception("Rate limit clock failed, using system time")
            return epoch_millis()

    def _fail_open(self, policy: TierPolicy) -> AdmissionDecision:
        now = self._safe_now()
        return AdmissionDecision(
            allowed=True,
            remaining=0,
            reset_time=int(now + RESET_WINDOW_MS),
            limit=policy.burst_capacity,
        )

    def reclaim_idle(self, max_age_ms: Optional[float] = None) -> int:
        """Drop buckets that have not been refilled within max_age_ms.

        Args:
            max_age_ms: Idle threshold in milliseconds (defaults to the
                configured retention window); 0 clears every bucket

        Returns:
            Number of buckets removed
        """
        if max_age_ms is None:
            max_age_ms = self._max_idle_ms
        cutoff = self._safe_now() - max_age_ms

        with self._lock:
            if max_age_ms <= 0:
                removed = len(self._buckets)
                self._buckets.clear()
            else:
                expired = [
                    identity for identity, bucket in self._buckets.items()
                    if bucket.last_refill_ms < cutoff
                ]
                for identity in expired:
                    del self._buckets[identity]
                removed = len(expired)

        if removed > 0:
            logger.debug(f"Reclaimed {removed} idle rate limit buckets")
        return removed

    def get_bucket_stats(self, identity: str) -> Optional[Dict[str, Any]]:
        """Snapshot of an identity's bucket, or None if it has none."""
        with self._lock:
            bucket = self._buckets.get(identity)
            return bucket.to_dict() if bucket is not None else None

    async def start(self) -> None:
        """Start the periodic reclamation sweep on the running event loop."""
        if self._task is not None:
            logger.debug("Rate limit reclaimer already running")
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_reclaimer())
        logger.info(
            f"Started rate limit reclaimer (interval: {self._cleanup_interval}s, "
            f"max idle: {self._max_idle_ms / 1000:.0f}s)"
        )

    async def shutdown(self) -> None:
        """Stop the periodic reclamation sweep."""
        if self._task is None:
            return

        if self._stop_event is not None:
            self._stop_event.set()

        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Rate limit reclaimer did not stop gracefully, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
            self._stop_event = None
            logger.info("Stopped rate limit reclaimer")

    async def _run_reclaimer(self) -> None:
        """Background task that reclaims idle buckets every interval."""
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._cleanup_interval,
                )
            except asyncio.TimeoutError:
                # Interval elapsed
                try:
                    self.reclaim_idle()
                except Exception as e:
                    logger.error(f"Error during rate limit reclamation: {e}")
