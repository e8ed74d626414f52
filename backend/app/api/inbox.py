"""Inbox and email log API routes"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.security import require_staff, require_staff_csrf
from app.db.session import get_db
from app.models.user import User
from app.schemas.messaging import InboxReply
from app.services import inbox_service
from app.services.email_log_service import list_email_logs
from app.services.email_service import EmailDeliveryError

router = APIRouter(prefix="/api", tags=["inbox"])
logger = logging.getLogger(__name__)


@router.get("/inbox")
def list_inbox(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(require_staff),
    db: Session = Depends(get_db)
):
    return inbox_service.list_messages(db, page=page, limit=limit)


@router.get("/inbox/{message_id}")
def get_inbox_message(message_id: int, user: User = Depends(require_staff), db: Session = Depends(get_db)):
    try:
        return inbox_service.get_message(message_id, db)
    except ValueError as e:
        raise HTTPException(404, str(e))


@router.post("/inbox/{message_id}/reply")
def reply_to_inbox_message(
    message_id: int,
    request_data: InboxReply,
    user: User = Depends(require_staff_csrf),
    db: Session = Depends(get_db)
):
    """Reply to a received email, threaded on its Message-ID"""
    try:
        return inbox_service.reply_to_message(message_id, request_data.message, request_data.subject, db)
    except ValueError as e:
        message = str(e)
        raise HTTPException(404 if "not found" in message.lower() else 400, message)
    except EmailDeliveryError as e:
        logger.error(f"Reply to inbox message {message_id} failed: {e}")
        raise HTTPException(502, str(e))


@router.get("/logs/emails")
def email_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None),
    recipient: Optional[str] = Query(None),
    user: User = Depends(require_staff),
    db: Session = Depends(get_db)
):
    return list_email_logs(db, page=page, limit=limit, status=status, recipient=recipient)
