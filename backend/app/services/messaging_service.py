"""Messaging service - internal conversations and guest support tickets"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.models.conversation import Conversation, ConversationParticipant, Message
from app.models.user import User

logger = logging.getLogger(__name__)

MESSAGE_HISTORY_DAYS = 7
USER_SEARCH_MIN_LENGTH = 2
USER_SEARCH_LIMIT = 10
TICKET_STATUSES = ("OPEN", "RESOLVED")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _serialize_user(user: User) -> Dict[str, Any]:
    return {"id": user.id, "name": user.name, "email": user.email, "role": user.role}


def _serialize_message(message: Message) -> Dict[str, Any]:
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "content": message.content,
        "created_at": _iso(message.created_at),
        "sender": _serialize_user(message.sender) if message.sender else None,
    }


def _serialize_conversation(conversation: Conversation, last_message: Optional[Message] = None) -> Dict[str, Any]:
    return {
        "id": conversation.id,
        "subject": conversation.subject,
        "is_ticket": conversation.is_ticket,
        "ticket_status": conversation.ticket_status,
        "guest_name": conversation.guest_name,
        "last_message_at": _iso(conversation.last_message_at),
        "participants": [
            {**_serialize_user(p.user), "last_read_at": _iso(p.last_read_at)}
            for p in conversation.participants
        ],
        "last_message": _serialize_message(last_message) if last_message else None,
    }


def _get_conversation(conversation_id: int, db: Session) -> Conversation:
    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if not conversation:
        raise ValueError("Conversation not found")
    return conversation


def _participant(conversation_id: int, user_id: int, db: Session) -> Optional[ConversationParticipant]:
    return db.query(ConversationParticipant).filter(
        ConversationParticipant.conversation_id == conversation_id,
        ConversationParticipant.user_id == user_id
    ).first()


def _require_access(conversation: Conversation, user: User, db: Session) -> Optional[ConversationParticipant]:
    """Participant row of user; staff may also act on any ticket

    Raises:
        PermissionError: If the user may not access the conversation
    """
    participant = _participant(conversation.id, user.id, db)
    if participant:
        return participant
    if conversation.is_ticket and user.is_staff:
        return None
    raise PermissionError("Not a participant of this conversation")


def _touch(conversation: Conversation) -> None:
    conversation.last_message_at = datetime.now(timezone.utc)


# --- Conversations ---

def list_conversations(user: User, db: Session) -> List[Dict[str, Any]]:
    """Conversations the user takes part in, most recent activity first"""
    conversations = db.query(Conversation).join(ConversationParticipant).filter(
        ConversationParticipant.user_id == user.id
    ).order_by(Conversation.last_message_at.desc()).all()

    result = []
    for conversation in conversations:
        last_message = db.query(Message).filter(
            Message.conversation_id == conversation.id
        ).order_by(Message.created_at.desc(), Message.id.desc()).first()
        result.append(_serialize_conversation(conversation, last_message))
    return result


def get_messages(conversation_id: int, user: User, db: Session) -> List[Dict[str, Any]]:
    """Messages of the last seven days, oldest first"""
    conversation = _get_conversation(conversation_id, db)
    _require_access(conversation, user, db)

    since = datetime.now(timezone.utc) - timedelta(days=MESSAGE_HISTORY_DAYS)
    messages = db.query(Message).filter(
        Message.conversation_id == conversation_id,
        Message.created_at >= since
    ).order_by(Message.created_at.asc(), Message.id.asc()).all()
    return [_serialize_message(m) for m in messages]


def send_message(conversation_id: int, user: User, content: str, db: Session) -> Dict[str, Any]:
    """Post a message; staff answering a ticket join it as participant"""
    if not content or not content.strip():
        raise ValueError("Message content is required")

    conversation = _get_conversation(conversation_id, db)
    participant = _require_access(conversation, user, db)
    if participant is None:
        db.add(ConversationParticipant(conversation_id=conversation.id, user_id=user.id))

    message = Message(conversation_id=conversation.id, sender_id=user.id, content=content.strip())
    db.add(message)
    _touch(conversation)
    db.commit()
    db.refresh(message)
    return _serialize_message(message)


def mark_as_read(conversation_id: int, user: User, db: Session) -> None:
    participant = _participant(conversation_id, user.id, db)
    if not participant:
        raise PermissionError("Not a participant of this conversation")
    participant.last_read_at = datetime.now(timezone.utc)
    db.commit()


def search_users(query: str, user: User, db: Session) -> List[Dict[str, Any]]:
    """Up to ten other users whose name, email or phone contains query"""
    if not query or len(query) < USER_SEARCH_MIN_LENGTH:
        return []

    pattern = f"%{query.lower()}%"
    users = db.query(User).filter(
        User.id != user.id,
        User.role != "guest",
        or_(
            func.lower(User.name).like(pattern),
            func.lower(User.email).like(pattern),
            func.lower(User.phone_number).like(pattern),
        )
    ).order_by(User.name.asc(), User.id.asc()).limit(USER_SEARCH_LIMIT).all()
    return [_serialize_user(u) for u in users]


def create_conversation(user: User, target_user_id: int, db: Session) -> Dict[str, Any]:
    """Direct conversation with target_user_id, reusing an existing one"""
    if target_user_id == user.id:
        raise ValueError("Cannot start a conversation with yourself")
    if not db.query(User).filter(User.id == target_user_id).first():
        raise ValueError("User not found")

    mine = db.query(ConversationParticipant.conversation_id).filter(ConversationParticipant.user_id == user.id)
    existing = db.query(Conversation).join(ConversationParticipant).filter(
        Conversation.is_ticket.is_(False),
        ConversationParticipant.user_id == target_user_id,
        Conversation.id.in_(mine)
    ).first()
    if existing:
        return _serialize_conversation(existing)

    conversation = Conversation(is_ticket=False)
    conversation.participants = [
        ConversationParticipant(user_id=user.id),
        ConversationParticipant(user_id=target_user_id),
    ]
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    return _serialize_conversation(conversation)


# --- Tickets ---

def create_ticket(subject: str, name: str, db: Session) -> Dict[str, Any]:
    """Open a support ticket for an anonymous visitor

    A guest user is created to author the visitor's messages; the returned
    guest_token is required for every later guest call on this ticket.
    """
    if not subject or not subject.strip() or not name or not name.strip():
        raise ValueError("Subject and name are required")

    guest = User(
        email=f"guest-{secrets.token_hex(8)}@ticket.local",
        name=name.strip(),
        role="guest",
        email_verified=True,
    )
    db.add(guest)
    db.flush()

    conversation = Conversation(
        subject=subject.strip(),
        is_ticket=True,
        ticket_status="OPEN",
        guest_name=name.strip(),
        guest_token=secrets.token_urlsafe(32),
    )
    conversation.participants = [ConversationParticipant(user_id=guest.id)]
    db.add(conversation)
    db.commit()

    logger.info(f"Ticket {conversation.id} opened by guest {guest.id}")
    return {"conversation_id": conversation.id, "guest_id": guest.id, "guest_token": conversation.guest_token}


def _guest_ticket(conversation_id: int, guest_token: str, db: Session) -> Conversation:
    conversation = _get_conversation(conversation_id, db)
    if not conversation.is_ticket or not guest_token or not secrets.compare_digest(
        conversation.guest_token or "", guest_token
    ):
        raise PermissionError("Invalid ticket token")
    return conversation


def _guest_user_id(conversation: Conversation) -> int:
    for participant in conversation.participants:
        if participant.user.role == "guest":
            return participant.user_id
    raise PermissionError("Ticket has no guest participant")


def send_guest_message(conversation_id: int, guest_token: str, content: str, db: Session) -> Dict[str, Any]:
    """Guest reply on an OPEN ticket"""
    if not content or not content.strip():
        raise ValueError("Message content is required")
    conversation = _guest_ticket(conversation_id, guest_token, db)
    if conversation.ticket_status != "OPEN":
        raise ValueError("Ticket is closed")

    message = Message(
        conversation_id=conversation.id,
        sender_id=_guest_user_id(conversation),
        content=content.strip()
    )
    db.add(message)
    _touch(conversation)
    db.commit()
    db.refresh(message)
    return _serialize_message(message)


def get_ticket_thread(conversation_id: int, guest_token: str, db: Session) -> Dict[str, Any]:
    """Full ticket thread as seen by the guest"""
    conversation = _guest_ticket(conversation_id, guest_token, db)
    messages = db.query(Message).filter(
        Message.conversation_id == conversation.id
    ).order_by(Message.created_at.asc(), Message.id.asc()).all()
    return {
        "subject": conversation.subject,
        "ticket_status": conversation.ticket_status,
        "messages": [_serialize_message(m) for m in messages],
    }


def resolve_ticket(conversation_id: int, db: Session) -> Dict[str, Any]:
    conversation = _get_conversation(conversation_id, db)
    if not conversation.is_ticket:
        raise ValueError("Conversation is not a ticket")
    conversation.ticket_status = "RESOLVED"
    db.commit()
    logger.info(f"Ticket {conversation_id} resolved")
    return _serialize_conversation(conversation)


def list_tickets(db: Session, status: Optional[str] = None) -> List[Dict[str, Any]]:
    """Tickets, most recent activity first"""
    if status and status not in TICKET_STATUSES:
        raise ValueError(f"Invalid ticket status: {status}")
    query = db.query(Conversation).filter(Conversation.is_ticket.is_(True))
    if status:
        query = query.filter(Conversation.ticket_status == status)
    return [_serialize_conversation(c) for c in query.order_by(Conversation.last_message_at.desc()).all()]
