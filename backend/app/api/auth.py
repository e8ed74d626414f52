"""Auth API routes"""
import secrets
import logging
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session
from app.schemas.auth import SignupRequest, LoginRequest, ResetPasswordRequest
from app.services.auth_service import (
    signup_user, login_user, logout_user, get_current_user_from_session, reset_password_with_token
)
from app.core.config import settings
from app.core.security import set_auth_cookie
from app.db.session import get_db
from app.db.redis import get_or_create_csrf_token

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)


@router.post("/signup")
def signup(request_data: SignupRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    """Create an account (association addresses only) and log it in"""
    try:
        result = signup_user(request_data.email, request_data.password, request_data.name, db)
    except ValueError as e:
        raise HTTPException(400, str(e))
    set_auth_cookie(response, result["session_id"], request)
    return {"user": result["user"]}


@router.post("/login")
def login(request_data: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    """Login user"""
    try:
        result = login_user(request_data.email, request_data.password, db)
        set_auth_cookie(response, result["session_id"], request)
        return {"user": result["user"]}
    except ValueError as e:
        raise HTTPException(401, str(e))
    except Exception as e:
        logger.error(f"Login error: {e}", exc_info=True)
        raise HTTPException(500, "Login failed")


@router.post("/logout")
def logout(request: Request, response: Response):
    """Logout user"""
    session_id = request.cookies.get("session_id")
    result = logout_user(session_id)
    if session_id:
        response.delete_cookie("session_id")
    return result


@router.post("/reset-password")
def reset_password(request_data: ResetPasswordRequest, db: Session = Depends(get_db)):
    """Set a password from an invitation link"""
    try:
        return reset_password_with_token(request_data.token, request_data.new_password, db)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("/me")
def get_current_user(request: Request, db: Session = Depends(get_db)):
    """Get current logged-in user"""
    try:
        session_id = request.cookies.get("session_id")
        return get_current_user_from_session(session_id, db)
    except Exception:
        # Return None on any error to prevent redirect loops
        return {"user": None}


@router.get("/csrf")
def get_csrf_token_route(request: Request, response: Response):
    """Get or generate CSRF token for the session"""
    session_id = request.cookies.get("session_id")

    if not session_id:
        session_id = secrets.token_urlsafe(32)
        response.set_cookie(
            key="session_id",
            value=session_id,
            httponly=True,
            secure=settings.ENVIRONMENT == "production",
            samesite="lax",
            max_age=3600 * 24  # 24 hours
        )

    csrf_token = get_or_create_csrf_token(session_id)

    return {"csrf_token": csrf_token}
