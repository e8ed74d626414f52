"""Admin API routes (staff accounts)"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.security import require_admin, require_admin_get
from app.db.session import get_db
from app.models.user import User
from app.schemas.auth import InviteUserRequest, UpdateRoleRequest
from app.services.auth_service import list_users, invite_user, update_user_role, delete_user

router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = logging.getLogger(__name__)


@router.get("/users")
def list_users_endpoint(
    role: Optional[str] = Query(None),
    admin_user: User = Depends(require_admin_get),
    db: Session = Depends(get_db)
):
    """List users, optionally filtered by role (admin only)"""
    return {"users": list_users(db, role=role)}


@router.post("/users")
def invite_user_endpoint(
    request_data: InviteUserRequest,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Create an account with a role and email its set-password link (admin only)"""
    try:
        user = invite_user(request_data.email, request_data.role, request_data.name, db)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return {"user": user}


@router.patch("/users/{user_id}/role")
def update_role_endpoint(
    user_id: int,
    request_data: UpdateRoleRequest,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        return {"user": update_user_role(user_id, request_data.role, admin_user, db)}
    except ValueError as e:
        message = str(e)
        raise HTTPException(404 if "not found" in message.lower() else 400, message)


@router.delete("/users/{user_id}")
def delete_user_endpoint(
    user_id: int,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        delete_user(user_id, admin_user, db)
    except ValueError as e:
        message = str(e)
        raise HTTPException(404 if "not found" in message.lower() else 400, message)
    return {"success": True}
