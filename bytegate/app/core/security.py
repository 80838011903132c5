import hashlib
import secrets

# Upper bound on accepted API key length, checked before hashing
MAX_API_KEY_LENGTH = 512


def hash_api_key(raw_key: str) -> str:
    """Hash an API key using SHA256.

    Args:
        raw_key: The raw API key to hash

    Returns:
        The SHA256 hex digest of the key
    """
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key(nbytes: int = 32) -> str:
    """Generate a new URL-safe API key.

    Only the hash of the key is stored; the raw key is shown once to the user.
    """
    return secrets.token_urlsafe(nbytes)
