import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional, Tuple

from fastapi import Request

from bytegate.app.core.security import MAX_API_KEY_LENGTH, hash_api_key
from bytegate.app.db.async_session import SessionDep
from bytegate.app.db.crud import lookup_user_by_hash
from bytegate.app.exceptions import AuthenticationError, InvalidRequestError


@dataclass(frozen=True)
class AuthUser:
    """Authenticated caller, detached from any database session."""

    id: str
    email: Optional[str]
    name: str


# API key cache: {token_hash: (user, timestamp)}, LRU ordered
_api_key_cache: OrderedDict[str, Tuple[AuthUser, float]] = OrderedDict()
_cache_ttl_seconds = 60
_cache_max_size = 10000
_cache_lock = asyncio.Lock()


async def _get_cached_user(token_hash: str) -> Optional[AuthUser]:
    """Return a cached user, or None on miss or expiry."""
    async with _cache_lock:
        entry = _api_key_cache.get(token_hash)
        if entry is None:
            return None
        user, timestamp = entry
        if time.time() - timestamp >= _cache_ttl_seconds:
            del _api_key_cache[token_hash]
            return None
        _api_key_cache.move_to_end(token_hash)
        return user


async def _cache_user(token_hash: str, user: AuthUser) -> None:
    async with _cache_lock:
        _api_key_cache.pop(token_hash, None)
        if len(_api_key_cache) >= _cache_max_size:
            # Evict the oldest 20% to reduce eviction frequency
            for _ in range(max(1, int(_cache_max_size * 0.2))):
                if not _api_key_cache:
                    break
                _api_key_cache.popitem(last=False)
        _api_key_cache[token_hash] = (user, time.time())


def clear_auth_cache() -> None:
    _api_key_cache.clear()


def get_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header.

    Returns:
        The token string if present, None otherwise
    """
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.replace("Bearer ", "", 1).strip()


async def require_user(request: Request, session: SessionDep) -> AuthUser:
    """Validate the caller's API key and return the associated user.

    Raises:
        AuthenticationError: If the API key is missing or unknown
        InvalidRequestError: If the API key is too long
    """
    token = get_bearer_token(request)
    if not token:
        raise AuthenticationError("Authentication required")

    # Checked before hashing to avoid hashing arbitrarily long input
    if len(token) > MAX_API_KEY_LENGTH:
        raise InvalidRequestError(
            f"API key too long (max {MAX_API_KEY_LENGTH} characters)",
            error_code="api_key_too_long",
        )

    token_hash = hash_api_key(token)

    cached = await _get_cached_user(token_hash)
    if cached is not None:
        return cached

    user = await lookup_user_by_hash(session, token_hash)
    if user is None:
        raise AuthenticationError("Invalid API key")

    auth_user = AuthUser(id=user.id, email=user.email, name=user.name)
    await _cache_user(token_hash, auth_user)
    return auth_user
