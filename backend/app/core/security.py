"""Security dependencies, rate limiting and access logging"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse
from fastapi import Depends, Header, HTTPException, Request, Response
from sqlalchemy.orm import Session

from app.core.config import settings, STAFF_ROLES
from app.db import redis as redis_store
from app.db.session import get_db
from app.models.user import User

security_logger = logging.getLogger("security")
api_access_logger = logging.getLogger("api_access")


def require_auth(request: Request) -> int:
    """Dependency: Require authentication, return user_id"""
    session_id = request.cookies.get("session_id")

    if not session_id:
        raise HTTPException(401, "Not authenticated. Please log in.")

    user_id = redis_store.get_session(session_id)
    if not user_id:
        raise HTTPException(401, "Session expired. Please log in again.")

    return user_id


def require_csrf(
    request: Request,
    user_id: int = Depends(require_auth),
    x_csrf_token: Optional[str] = Header(None, alias="X-CSRF-Token")
) -> int:
    """Dependency: Require auth + valid CSRF token, return user_id"""
    session_id = request.cookies.get("session_id")
    expected_csrf = redis_store.get_csrf_token(session_id)
    if not expected_csrf or x_csrf_token != expected_csrf:
        security_logger.warning(
            f"CSRF validation failed - User: {user_id}, "
            f"IP: {request.client.host if request.client else 'unknown'}, "
            f"Path: {request.url.path}"
        )
        raise HTTPException(403, "Invalid or missing CSRF token")

    return user_id


def _load_user_with_role(user_id: int, db: Session, roles) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user or user.role not in roles:
        security_logger.warning(f"Role check failed - User: {user_id}, required: {roles}")
        raise HTTPException(403, "Insufficient permissions")
    return user


def get_current_user(user_id: int = Depends(require_auth), db: Session = Depends(get_db)) -> User:
    """Dependency: the authenticated user row"""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(401, "Session expired. Please log in again.")
    return user


def get_current_user_csrf(user_id: int = Depends(require_csrf), db: Session = Depends(get_db)) -> User:
    """Dependency: the authenticated user row, for state-changing requests"""
    return get_current_user(user_id, db)


def require_staff(user_id: int = Depends(require_auth), db: Session = Depends(get_db)) -> User:
    """Dependency: Require admin or staff role (read-only requests - no CSRF)"""
    return _load_user_with_role(user_id, db, STAFF_ROLES)


def require_staff_csrf(user_id: int = Depends(require_csrf), db: Session = Depends(get_db)) -> User:
    """Dependency: Require admin or staff role + CSRF token"""
    return _load_user_with_role(user_id, db, STAFF_ROLES)


def require_admin_get(user_id: int = Depends(require_auth), db: Session = Depends(get_db)) -> User:
    """Dependency: Require admin role (for GET requests - no CSRF required)"""
    return _load_user_with_role(user_id, db, ("admin",))


def require_admin(user_id: int = Depends(require_csrf), db: Session = Depends(get_db)) -> User:
    """Dependency: Require admin role + CSRF token"""
    return _load_user_with_role(user_id, db, ("admin",))


def get_client_identifier(request: Request, session_id: Optional[str] = None) -> str:
    """Get a unique identifier for rate limiting"""
    if session_id:
        return f"session:{session_id}"

    # Fallback to IP address
    client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"


def check_rate_limit(identifier: str, strict: bool = False) -> bool:
    """Check if request is within rate limit

    Args:
        identifier: Client identifier (session ID or IP)
        strict: If True, use stricter rate limits for state-changing operations

    Returns:
        True if within limit, False if exceeded
    """
    return redis_store.check_rate_limit(identifier, strict=strict)


def get_allowed_origins():
    """Get list of allowed CORS origins"""
    allowed_origins = [settings.FRONTEND_URL]
    if settings.ENVIRONMENT == "development":
        allowed_origins.extend([
            "http://localhost:3000",
            "http://localhost:8000",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:8000"
        ])
    return allowed_origins


def validate_origin_referer(request: Request) -> bool:
    """Validate Origin and Referer headers"""
    origin = request.headers.get("Origin")
    referer = request.headers.get("Referer")
    allowed_origins = [o.rstrip("/") for o in get_allowed_origins() if o]

    # Allow requests without Origin/Referer in development
    if settings.ENVIRONMENT == "development" and not origin and not referer:
        return True

    if origin and origin.rstrip("/") in allowed_origins:
        return True

    # Check referer as fallback
    if referer:
        referer_parsed = urlparse(referer)
        referer_origin = f"{referer_parsed.scheme}://{referer_parsed.netloc}"
        if referer_origin in allowed_origins:
            return True

    return False


def log_api_access(
    request: Request,
    session_id: Optional[str] = None,
    status_code: int = 200,
    error: Optional[str] = None
):
    """Log detailed API access information"""
    client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"

    log_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "method": request.method,
        "path": request.url.path,
        "query": str(request.url.query) if request.url.query else None,
        "session_id": session_id[:16] + "..." if session_id else None,
        "client_ip": client_ip,
        "user_agent": request.headers.get("User-Agent", "unknown"),
        "status_code": status_code,
        "error": error
    }

    if error or status_code >= 400:
        api_access_logger.warning(f"API Access: {json.dumps(log_data)}")
    else:
        api_access_logger.info(f"API Access: {json.dumps(log_data)}")


def set_auth_cookie(response: Response, session_id: str, request: Request) -> None:
    """Set session cookie with proper domain for cross-subdomain sharing"""
    host = request.headers.get("host", settings.DOMAIN)
    if ":" in host:
        host = host.split(":")[0]

    # Parent domain for multi-level hosts, browser default for localhost
    domain_parts = host.split(".")
    cookie_domain = "." + ".".join(domain_parts[-2:]) if len(domain_parts) >= 2 else None

    response.set_cookie(
        key="session_id",
        value=session_id,
        domain=cookie_domain,
        httponly=True,
        secure=settings.ENVIRONMENT == "production",
        samesite="lax",
        max_age=60 * 60 * 24 * 7  # 7 days
    )
