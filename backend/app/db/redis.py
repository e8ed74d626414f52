"""Redis client for session management, CSRF tokens and rate limiting"""
import logging
import secrets
from typing import Optional
import redis
from app.core.config import settings

logger = logging.getLogger(__name__)

# Lazy initialization - no connection at import time
_client = None


def get_redis_client():
    """Get or create Redis client (lazy initialization)

    This prevents connection attempts during import, allowing mocks to be applied first.
    """
    global _client
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


# Session TTL (30 days)
SESSION_TTL = 30 * 24 * 60 * 60

# Invitation / password reset links stay valid for 3 days
PASSWORD_RESET_TTL = 3 * 24 * 60 * 60

# Rate limiting configuration
RATE_LIMIT_WINDOW = 60  # seconds
RATE_LIMIT_REQUESTS = 1000 if settings.ENVIRONMENT == "development" else 300
RATE_LIMIT_STRICT_WINDOW = 60  # seconds
RATE_LIMIT_STRICT_REQUESTS = 1000 if settings.ENVIRONMENT == "development" else 120


def set_session(session_id: str, user_id: int) -> None:
    """Store session in Redis"""
    key = f"session:{session_id}"
    get_redis_client().setex(key, SESSION_TTL, user_id)


def get_session(session_id: str) -> Optional[int]:
    """Get user_id from session"""
    key = f"session:{session_id}"
    user_id = get_redis_client().get(key)
    return int(user_id) if user_id else None


def delete_session(session_id: str) -> None:
    """Delete session from Redis"""
    get_redis_client().delete(f"session:{session_id}")
    get_redis_client().delete(f"csrf:{session_id}")


def set_csrf_token(session_id: str, token: str) -> None:
    """Store CSRF token in Redis"""
    key = f"csrf:{session_id}"
    get_redis_client().setex(key, SESSION_TTL, token)


def get_csrf_token(session_id: str) -> Optional[str]:
    """Get CSRF token from Redis"""
    key = f"csrf:{session_id}"
    return get_redis_client().get(key)


def get_or_create_csrf_token(session_id: str) -> str:
    """Get existing CSRF token or create new one if it doesn't exist"""
    csrf_token = get_csrf_token(session_id)
    if not csrf_token:
        csrf_token = secrets.token_urlsafe(32)
        set_csrf_token(session_id, csrf_token)
    return csrf_token


def increment_rate_limit(identifier: str, window: int) -> int:
    """Increment the fixed-window counter for identifier and return the current count"""
    key = f"ratelimit:{identifier}"
    client = get_redis_client()
    count = client.incr(key)
    if count == 1:
        client.expire(key, window)
    return int(count)


def check_rate_limit(identifier: str, strict: bool = False) -> bool:
    """Check if request is within rate limit using Redis. Returns True if allowed, False if rate limited."""
    window = RATE_LIMIT_STRICT_WINDOW if strict else RATE_LIMIT_WINDOW
    max_requests = RATE_LIMIT_STRICT_REQUESTS if strict else RATE_LIMIT_REQUESTS
    return increment_rate_limit(identifier, window) <= max_requests


def delete_all_user_sessions(user_id: int) -> int:
    """Delete every session (and its CSRF token) belonging to user_id

    Returns:
        Number of sessions deleted
    """
    client = get_redis_client()
    deleted_count = 0
    for key in client.scan_iter("session:*"):
        stored_user_id = client.get(key)
        try:
            if not stored_user_id or int(stored_user_id) != user_id:
                continue
        except ValueError:
            continue
        session_id = key.split(":", 1)[1]
        client.delete(key)
        client.delete(f"csrf:{session_id}")
        deleted_count += 1
    return deleted_count


def set_password_reset_token(token: str, email: str) -> None:
    """Store password reset token with associated email."""
    key = f"password_reset_token:{token}"
    get_redis_client().setex(key, PASSWORD_RESET_TTL, email)


def get_password_reset_email(token: str) -> Optional[str]:
    """Retrieve email associated with a password reset token."""
    key = f"password_reset_token:{token}"
    return get_redis_client().get(key)


def delete_password_reset_token(token: str) -> None:
    """Delete password reset token."""
    key = f"password_reset_token:{token}"
    get_redis_client().delete(key)
