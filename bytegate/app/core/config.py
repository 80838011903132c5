import json
import re
from typing import Annotated, Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_list(raw: Any) -> list[str]:
    """Parse a list setting given as JSON or as a comma/space separated string."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple, set)):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []

    # Prefer JSON, but tolerate plain strings so a misconfigured deployment
    # does not crash at startup.
    if raw.startswith(("[", '"')):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]
        if isinstance(parsed, str):
            raw = parsed.strip()

    # Deduplicate while preserving order.
    seen: set[str] = set()
    result: list[str] = []
    for part in re.split(r"[,\s]+", raw):
        if not part or part in seen:
            continue
        seen.add(part)
        result.append(part)
    return result


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./bytegate.db"
    db_auto_create: bool = True  # Create tables on startup
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 300

    # Rate limiting: per-tier token bucket policies
    rate_limit_free_requests_per_minute: int = 5
    rate_limit_free_burst_size: int = 10
    rate_limit_premium_requests_per_minute: int = 30
    rate_limit_premium_burst_size: int = 50
    rate_limit_admin_requests_per_minute: int = 1000
    rate_limit_admin_burst_size: int = 2000

    # Idle bucket reclamation
    rate_limit_cleanup_interval_seconds: float = 300.0  # 5 minutes
    rate_limit_max_idle_seconds: float = 3600.0  # 1 hour

    # Users whose e-mail is listed here are resolved to the admin tier
    admin_emails: Annotated[list[str], NoDecode] = []

    # Gemini settings
    gemini_api_key: str = Field(default="", validation_alias="GEMINI_API_KEY")
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-2.5-flash"
    gemini_timeout: float = 30.0

    # Offline provider for development and tests
    mock_provider: bool = Field(default=False, validation_alias="BYTEGATE_MOCK_PROVIDER")

    # HTTP Client connection pool settings
    httpx_connect_timeout: float = 10.0
    httpx_read_timeout: float = 30.0
    httpx_write_timeout: float = 10.0
    httpx_pool_timeout: float = 5.0
    httpx_keepalive_expiry: float = 30.0
    httpx_max_connections: int = 100
    httpx_max_keepalive_connections: int = 20

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("admin_emails", mode="before")
    @classmethod
    def decode_admin_emails(cls, v: Any) -> list[str]:
        return [email.lower() for email in _parse_list(v)]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_list(v)

    @field_validator(
        "rate_limit_free_requests_per_minute",
        "rate_limit_free_burst_size",
        "rate_limit_premium_requests_per_minute",
        "rate_limit_premium_burst_size",
        "rate_limit_admin_requests_per_minute",
        "rate_limit_admin_burst_size",
    )
    @classmethod
    def validate_rate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator(
        "rate_limit_cleanup_interval_seconds", "rate_limit_max_idle_seconds"
    )
    @classmethod
    def validate_cleanup_positive(cls, v: float) -> float:
        """Validate reclamation timings are positive."""
        if v <= 0:
            raise ValueError("Rate limit cleanup timings must be positive")
        return v

    @field_validator(
        "gemini_timeout",
        "httpx_connect_timeout",
        "httpx_read_timeout",
        "httpx_write_timeout",
    )
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    @model_validator(mode="after")
    def validate_tier_ordering(self) -> "Settings":
        """Tiers must grant strictly more as they go up: free < premium < admin."""
        rpm = (
            self.rate_limit_free_requests_per_minute,
            self.rate_limit_premium_requests_per_minute,
            self.rate_limit_admin_requests_per_minute,
        )
        burst = (
            self.rate_limit_free_burst_size,
            self.rate_limit_premium_burst_size,
            self.rate_limit_admin_burst_size,
        )
        for values in (rpm, burst):
            if not values[0] < values[1] < values[2]:
                raise ValueError(
                    "Rate limits must strictly increase from free to premium to admin"
                )
        return self

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )


# Global settings instance
settings = Settings()
