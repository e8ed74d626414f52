"""Inbox service - received emails and threaded replies"""
import html
import logging
import math
import re
from typing import Any, Dict
from sqlalchemy.orm import Session

from app.models.inbox_message import InboxMessage
from app.services import email_service

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"<([^>]+)>")


def _serialize_message(message: InboxMessage, full: bool = False) -> Dict[str, Any]:
    result = {
        "id": message.id,
        "email_id": message.email_id,
        "from": message.from_address,
        "to": message.to or [],
        "subject": message.subject,
        "received_at": message.received_at.isoformat() if message.received_at else None,
        "attachments": message.attachments or [],
    }
    if full:
        result.update({"message_id": message.message_id, "text": message.text, "html": message.html})
    return result


def list_messages(db: Session, page: int = 1, limit: int = 20) -> Dict[str, Any]:
    """Received emails, newest first"""
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    query = db.query(InboxMessage)
    total = query.count()
    rows = query.order_by(InboxMessage.received_at.desc(), InboxMessage.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "messages": [_serialize_message(m) for m in rows],
        "pagination": {"total": total, "pages": math.ceil(total / limit) if total else 0, "page": page, "limit": limit},
    }


def get_message(message_id: int, db: Session) -> Dict[str, Any]:
    message = db.query(InboxMessage).filter(InboxMessage.id == message_id).first()
    if not message:
        raise ValueError("Message not found")
    return _serialize_message(message, full=True)


def reply_address(from_header: str) -> str:
    """Bare address of a From header ("Name <a@b.c>" -> "a@b.c")"""
    match = _ADDRESS_RE.search(from_header or "")
    return match.group(1).strip() if match else (from_header or "").strip()


def reply_subject(subject: str) -> str:
    subject = subject or ""
    return subject if subject.lower().startswith("re:") else f"Re: {subject}"


def reply_to_message(message_id: int, body: str, subject: str, db: Session) -> Dict[str, Any]:
    """Answer a received email, threaded on its RFC Message-ID

    Raises:
        ValueError: If the message does not exist or the body is empty
        EmailDeliveryError: If the provider rejects the reply
    """
    if not body or not body.strip():
        raise ValueError("Reply content is required")

    original = db.query(InboxMessage).filter(InboxMessage.id == message_id).first()
    if not original:
        raise ValueError("Message not found")

    # Plain text is wrapped; HTML is sent as is
    html_body = body if "<" in body else "".join(
        f"<p>{html.escape(line)}</p>" for line in body.splitlines() if line.strip()
    )
    params = {
        "to": reply_address(original.from_address),
        "subject": reply_subject(subject or original.subject),
        "html": html_body,
    }
    if original.message_id:
        params["headers"] = {"In-Reply-To": original.message_id, "References": original.message_id}

    email_id = email_service.deliver_email(params)
    logger.info(f"Reply to inbox message {message_id} sent (id: {email_id})")
    return {"success": True, "id": email_id}
