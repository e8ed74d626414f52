"""Middleware configuration for FastAPI application"""
import logging
from fastapi import Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.security import (
    get_allowed_origins, get_client_identifier, check_rate_limit,
    validate_origin_referer, log_api_access
)
from app.db.redis import get_or_create_csrf_token

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")

# Called by third parties or anonymous visitors without a browser origin
PUBLIC_PATHS = (
    "/api/auth/csrf",
    "/api/auth/signup",
    "/api/auth/login",
    "/api/auth/logout",
    "/api/auth/reset-password",
    "/api/webhooks/resend",
    "/api/unsubscribe",
    "/metrics",
    "/health",
)
PUBLIC_PREFIXES = ("/api/public/",)


def is_public_path(path: str) -> bool:
    return path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES)


def setup_cors_middleware(app):
    """Setup CORS middleware for FastAPI app"""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _json_error(content: str, status_code: int, request: Request) -> Response:
    response = Response(content=content, status_code=status_code, media_type="application/json")
    origin = request.headers.get("Origin")
    if origin and origin in get_allowed_origins():
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
    return response


async def security_middleware(request: Request, call_next):
    """Middleware for rate limiting, origin checks and API access logging"""
    session_id = request.cookies.get("session_id")
    status_code = 500
    error = None

    try:
        path = request.url.path

        # Provider retries must never be throttled
        if path != "/api/webhooks/resend":
            identifier = get_client_identifier(request, session_id)
            is_state_changing = request.method in ["POST", "PATCH", "DELETE", "PUT"]
            if not check_rate_limit(identifier, strict=is_state_changing):
                error = "Rate limit exceeded"
                status_code = 429
                security_logger.warning(f"Rate limit exceeded - Identifier: {identifier}, Path: {path}")
                return _json_error('{"error": "Rate limit exceeded. Please try again later."}', 429, request)

        if not is_public_path(path) and request.method not in ("GET", "OPTIONS"):
            if not validate_origin_referer(request):
                error = "Invalid origin or referer"
                status_code = 403
                security_logger.warning(f"Origin/Referer validation failed - Path: {path}")
                return _json_error('{"error": "Invalid origin or referer"}', 403, request)

        response = await call_next(request)
        status_code = response.status_code

        if session_id and status_code < 400:
            response.headers["X-CSRF-Token"] = get_or_create_csrf_token(session_id)

        return response

    except Exception as e:
        error = str(e)
        security_logger.error(f"Security middleware error: {error}", exc_info=True)
        raise
    finally:
        log_api_access(request, session_id, status_code, error)


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )
