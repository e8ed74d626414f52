"""Conversation and support ticket API routes"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.security import get_current_user, get_current_user_csrf, require_staff, require_staff_csrf
from app.db.session import get_db
from app.models.user import User
from app.schemas.messaging import MessageCreate, ConversationCreate, TicketCreate
from app.services import messaging_service

router = APIRouter(prefix="/api", tags=["messaging"])
public_router = APIRouter(prefix="/api/public/tickets", tags=["public"])
logger = logging.getLogger(__name__)


def _http_error(e: Exception) -> HTTPException:
    message = str(e)
    if isinstance(e, PermissionError):
        return HTTPException(403, message)
    return HTTPException(404 if "not found" in message.lower() else 400, message)


# --- Conversations ---

@router.get("/conversations")
def list_conversations(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return messaging_service.list_conversations(user, db)


@router.post("/conversations")
def create_conversation(
    request_data: ConversationCreate,
    user: User = Depends(get_current_user_csrf),
    db: Session = Depends(get_db)
):
    """Start (or reopen) a direct conversation"""
    try:
        return messaging_service.create_conversation(user, request_data.target_user_id, db)
    except ValueError as e:
        raise _http_error(e)


@router.get("/conversations/{conversation_id}/messages")
def get_messages(conversation_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        return messaging_service.get_messages(conversation_id, user, db)
    except (ValueError, PermissionError) as e:
        raise _http_error(e)


@router.post("/conversations/{conversation_id}/messages")
def send_message(
    conversation_id: int,
    request_data: MessageCreate,
    user: User = Depends(get_current_user_csrf),
    db: Session = Depends(get_db)
):
    try:
        return messaging_service.send_message(conversation_id, user, request_data.content, db)
    except (ValueError, PermissionError) as e:
        raise _http_error(e)


@router.post("/conversations/{conversation_id}/read")
def mark_as_read(conversation_id: int, user: User = Depends(get_current_user_csrf), db: Session = Depends(get_db)):
    try:
        messaging_service.mark_as_read(conversation_id, user, db)
        return {"success": True}
    except PermissionError as e:
        raise _http_error(e)


@router.get("/users/search")
def search_users(q: str = Query(""), user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return messaging_service.search_users(q, user, db)


# --- Tickets (staff side) ---

@router.get("/tickets")
def list_tickets(
    status: Optional[str] = Query(None),
    user: User = Depends(require_staff),
    db: Session = Depends(get_db)
):
    try:
        return messaging_service.list_tickets(db, status=status)
    except ValueError as e:
        raise _http_error(e)


@router.post("/tickets/{conversation_id}/resolve")
def resolve_ticket(conversation_id: int, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    try:
        return messaging_service.resolve_ticket(conversation_id, db)
    except ValueError as e:
        raise _http_error(e)


# --- Tickets (guest side, authorized by X-Ticket-Token) ---

@public_router.post("")
def create_ticket(request_data: TicketCreate, db: Session = Depends(get_db)):
    """Open a ticket; keep the returned guest_token to follow up"""
    try:
        return messaging_service.create_ticket(request_data.subject, request_data.name, db)
    except ValueError as e:
        raise _http_error(e)


@public_router.get("/{conversation_id}")
def get_ticket_thread(
    conversation_id: int,
    x_ticket_token: Optional[str] = Header(None, alias="X-Ticket-Token"),
    db: Session = Depends(get_db)
):
    try:
        return messaging_service.get_ticket_thread(conversation_id, x_ticket_token, db)
    except (ValueError, PermissionError) as e:
        raise _http_error(e)


@public_router.post("/{conversation_id}/messages")
def send_guest_message(
    conversation_id: int,
    request_data: MessageCreate,
    x_ticket_token: Optional[str] = Header(None, alias="X-Ticket-Token"),
    db: Session = Depends(get_db)
):
    try:
        return messaging_service.send_guest_message(conversation_id, x_ticket_token, request_data.content, db)
    except (ValueError, PermissionError) as e:
        raise _http_error(e)
