"""Authentication service - business logic for user authentication and staff management"""
import bcrypt
import logging
import secrets
from typing import Optional, Dict, Any, List
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.user import User
from app.core.config import settings
from app.core.metrics import login_attempts_counter
from app.db.redis import (
    set_session, get_session, delete_session, delete_all_user_sessions,
    set_password_reset_token, get_password_reset_email, delete_password_reset_token
)
from app.services import email_service

logger = logging.getLogger(__name__)

ROLES = ("admin", "staff", "user", "guest")
ASSIGNABLE_ROLES = ("admin", "staff", "user")
MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    """Hash a password using bcrypt"""
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash"""
    # Invited users and guests have no password hash yet
    if not password_hash or not password:
        return False
    return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))


def _validate_password(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def serialize_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "phone_number": user.phone_number,
        "email_verified": user.email_verified,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def is_signup_allowed(email: str) -> bool:
    """Only the association's own address or school-domain addresses may sign up"""
    email = (email or "").strip().lower()
    allowed_emails = {e.lower() for e in settings.SIGNUP_ALLOWED_EMAILS}
    domain = (settings.SIGNUP_ALLOWED_DOMAIN or "").lower()
    return email in allowed_emails or bool(domain and email.endswith(domain))


def create_session(user_id: int) -> str:
    """Create a new session for user"""
    session_id = secrets.token_urlsafe(32)
    set_session(session_id, user_id)
    return session_id


def signup_user(email: str, password: str, name: Optional[str], db: Session) -> dict:
    """Register a new account and open a session

    Raises:
        ValueError: If the address is not allowed, already registered or the password is too short
    """
    if not is_signup_allowed(email):
        raise ValueError(
            f"Seules les adresses {settings.SIGNUP_ALLOWED_DOMAIN} ou "
            f"{', '.join(settings.SIGNUP_ALLOWED_EMAILS)} sont autorisées."
        )
    _validate_password(password)

    email = email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise ValueError("Email already registered")

    user = User(
        email=email,
        name=(name or "").strip() or email.split("@")[0],
        password_hash=hash_password(password),
        role="user",
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValueError("Email already registered")
    db.refresh(user)

    logger.info(f"User signed up: {user.email} (ID: {user.id})")
    return {"user": serialize_user(user), "session_id": create_session(user.id)}


def authenticate_user(email: str, password: str, db: Session) -> Optional[User]:
    """Authenticate a user by email and password"""
    user = db.query(User).filter(User.email == (email or "").strip().lower()).first()
    if not user or user.role == "guest":
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def login_user(email: str, password: str, db: Session) -> dict:
    """Complete login flow: authenticate, create session, return user info

    Raises:
        ValueError: If invalid credentials
    """
    user = authenticate_user(email, password, db)
    if not user:
        login_attempts_counter.labels(status="failure").inc()
        raise ValueError("Invalid email or password")

    session_id = create_session(user.id)
    login_attempts_counter.labels(status="success").inc()
    logger.info(f"User logged in: {user.email} (ID: {user.id})")

    return {"user": serialize_user(user), "session_id": session_id}


def logout_user(session_id: Optional[str]) -> dict:
    """Logout flow: delete session"""
    if session_id:
        delete_session(session_id)
        logger.info(f"User logged out (session: {session_id[:16]}...)")

    return {"message": "Logged out successfully"}


def get_current_user_from_session(session_id: Optional[str], db: Session) -> dict:
    """User info for a session, or {"user": None}"""
    if not session_id:
        return {"user": None}

    user_id = get_session(session_id)
    if not user_id:
        return {"user": None}

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        return {"user": None}

    return {"user": serialize_user(user)}


def reset_password_with_token(token: str, new_password: str, db: Session) -> dict:
    """Set a password from an invitation/reset link

    Raises:
        ValueError: If password too short or token invalid
    """
    _validate_password(new_password)

    email = get_password_reset_email(token)
    if not email:
        raise ValueError("Invalid or expired reset link")

    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise ValueError("Invalid or expired reset link")

    user.password_hash = hash_password(new_password)
    user.email_verified = True
    db.commit()
    delete_password_reset_token(token)
    delete_all_user_sessions(user.id)

    logger.info(f"Password set for user {user.id}")
    return {"message": "Password has been reset successfully."}


# --- Staff administration ---

def list_users(db: Session, role: Optional[str] = None) -> List[Dict[str, Any]]:
    """Users (guests excluded unless asked for), newest first"""
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    else:
        query = query.filter(User.role != "guest")
    return [serialize_user(u) for u in query.order_by(User.created_at.desc(), User.id.desc()).all()]


def invite_user(email: str, role: str, name: Optional[str], db: Session) -> Dict[str, Any]:
    """Create a verified account without password and email a set-password link

    The signup address restriction does not apply to invitations.
    """
    if role not in ASSIGNABLE_ROLES:
        raise ValueError(f"Invalid role: {role}")

    email = email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise ValueError("Email already registered")

    user = User(
        email=email,
        name=(name or "").strip() or email.split("@")[0],
        role=role,
        email_verified=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    token = secrets.token_urlsafe(32)
    set_password_reset_token(token, email)
    if not email_service.send_invitation_email(email, user.name, role, token):
        logger.warning(f"Invitation email to {email} could not be sent")

    logger.info(f"User {user.id} invited with role {role}")
    return serialize_user(user)


def _get_user(user_id: int, db: Session) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise ValueError("User not found")
    return user


def update_user_role(user_id: int, role: str, acting_user: User, db: Session) -> Dict[str, Any]:
    if role not in ASSIGNABLE_ROLES:
        raise ValueError(f"Invalid role: {role}")
    user = _get_user(user_id, db)
    if user.id == acting_user.id and role != "admin":
        raise ValueError("You cannot remove your own admin role")
    user.role = role
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} role set to {role} by {acting_user.id}")
    return serialize_user(user)


def delete_user(user_id: int, acting_user: User, db: Session) -> None:
    """Delete an account and all its sessions; an admin cannot delete itself"""
    if user_id == acting_user.id:
        raise ValueError("You cannot delete your own account")
    user = _get_user(user_id, db)
    db.delete(user)
    db.commit()
    delete_all_user_sessions(user_id)
    logger.info(f"User {user_id} deleted by {acting_user.id}")


def grant_admin(email: str, db: Session) -> bool:
    """Give the admin role to an existing user

    Returns:
        bool: False when the user already was an admin

    Raises:
        ValueError: If no user has this email
    """
    user = db.query(User).filter(User.email == email.strip().lower()).first()
    if not user:
        raise ValueError(f"User with email '{email}' not found")
    if user.role == "admin":
        return False
    user.role = "admin"
    user.email_verified = True
    db.commit()
    return True
