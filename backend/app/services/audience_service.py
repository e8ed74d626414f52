"""Audience service - contacts (mirrored to the provider), segments, topics and unsubscribes"""
import csv
import io
import logging
import math
from typing import Any, Dict, List, Optional
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.campaign import Campaign, Segment
from app.models.contact import Contact, Topic, ContactTopic, UnsubscribedRecipient
from app.services import email_service

logger = logging.getLogger(__name__)


def _serialize_contact(contact: Contact) -> Dict[str, Any]:
    return {
        "id": contact.id,
        "email": contact.email,
        "first_name": contact.first_name,
        "last_name": contact.last_name,
        "unsubscribed": contact.unsubscribed,
        "properties": contact.properties or {},
        "resend_id": contact.resend_id,
        "topic_ids": [ct.topic_id for ct in contact.topics],
        "created_at": contact.created_at.isoformat() if contact.created_at else None,
        "updated_at": contact.updated_at.isoformat() if contact.updated_at else None,
    }


def _get_contact(contact_id: int, db: Session) -> Contact:
    contact = db.query(Contact).filter(Contact.id == contact_id).first()
    if not contact:
        raise ValueError("Contact not found")
    return contact


# --- Contacts ---

def search_contacts(db: Session, query: str = "", page: int = 1, limit: int = 10) -> Dict[str, Any]:
    """Newest contacts first, filtered by a case-insensitive match on email or name"""
    page = max(page, 1)
    limit = min(max(limit, 1), 100)

    contacts = db.query(Contact)
    if query:
        pattern = f"%{query.lower()}%"
        contacts = contacts.filter(or_(
            func.lower(Contact.email).like(pattern),
            func.lower(Contact.first_name).like(pattern),
            func.lower(Contact.last_name).like(pattern),
        ))

    total = contacts.count()
    rows = contacts.order_by(Contact.created_at.desc(), Contact.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "data": [_serialize_contact(c) for c in rows],
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    }


def get_contact(contact_id: int, db: Session) -> Dict[str, Any]:
    return _serialize_contact(_get_contact(contact_id, db))


def create_contact(data: Dict[str, Any], db: Session) -> Dict[str, Any]:
    """Create the contact at the provider (best effort), then locally"""
    email = (data.get("email") or "").strip()
    if not email:
        raise ValueError("Email is required")
    if db.query(Contact).filter(Contact.email == email).first():
        raise ValueError("Contact already exists")

    resend_id = email_service.create_provider_contact(
        email,
        data.get("first_name"),
        data.get("last_name"),
        bool(data.get("unsubscribed", False))
    )

    contact = Contact(
        email=email,
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        unsubscribed=bool(data.get("unsubscribed", False)),
        properties=data.get("properties") or {},
        resend_id=resend_id,
    )
    db.add(contact)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValueError("Contact already exists")
    db.refresh(contact)
    return _serialize_contact(contact)


def update_contact(contact_id: int, data: Dict[str, Any], db: Session) -> Dict[str, Any]:
    """Update the provider copy first (when linked), then the local row

    Raises:
        ValueError: If the contact does not exist
        EmailDeliveryError: If the provider rejects the update (local row untouched)
    """
    contact = _get_contact(contact_id, db)

    if contact.resend_id:
        email_service.update_provider_contact(
            contact.resend_id,
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            unsubscribed=data.get("unsubscribed"),
        )

    for field in ("first_name", "last_name", "unsubscribed", "properties"):
        if field in data and data[field] is not None:
            setattr(contact, field, data[field])
    db.commit()
    db.refresh(contact)
    return _serialize_contact(contact)


def delete_contact(contact_id: int, db: Session) -> None:
    """Remove the provider copy (when linked), then the local row"""
    contact = _get_contact(contact_id, db)
    if contact.resend_id:
        email_service.remove_provider_contact(contact.resend_id)
    db.delete(contact)
    db.commit()


def import_contacts_csv(content: str, db: Session) -> Dict[str, int]:
    """Upsert contacts from "email,firstName,lastName" lines

    The first line is skipped when it mentions "email". Lines without a valid
    address count as errors.
    """
    rows = list(csv.reader(io.StringIO(content)))
    if rows and any("email" in cell.lower() for cell in rows[0]):
        rows = rows[1:]

    success_count = 0
    error_count = 0
    for row in rows:
        cells = [cell.strip() for cell in row]
        if not any(cells):
            continue
        email = cells[0]
        first_name = cells[1] if len(cells) > 1 and cells[1] else None
        last_name = cells[2] if len(cells) > 2 and cells[2] else None
        if not email or "@" not in email:
            error_count += 1
            continue

        try:
            resend_id = email_service.create_provider_contact(email, first_name, last_name)
            contact = db.query(Contact).filter(Contact.email == email).first()
            if contact:
                contact.first_name = first_name
                contact.last_name = last_name
                if resend_id:
                    contact.resend_id = resend_id
            else:
                db.add(Contact(email=email, first_name=first_name, last_name=last_name, resend_id=resend_id))
            db.commit()
            success_count += 1
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to import contact {email}: {e}")
            error_count += 1

    logger.info(f"Contact import finished: {success_count} imported, {error_count} errors")
    return {"success_count": success_count, "error_count": error_count}


# --- Segments ---

def list_segments(db: Session) -> List[Dict[str, Any]]:
    rows = db.query(Segment, func.count(Campaign.id)).outerjoin(
        Campaign, Campaign.segment_id == Segment.id
    ).group_by(Segment.id).order_by(Segment.created_at.desc(), Segment.id.desc()).all()
    return [
        {
            "id": segment.id,
            "name": segment.name,
            "query": segment.query or {},
            "campaign_count": count,
            "created_at": segment.created_at.isoformat() if segment.created_at else None,
        }
        for segment, count in rows
    ]


def create_segment(name: str, query: Optional[Dict[str, Any]], db: Session) -> Dict[str, Any]:
    if not name or not name.strip():
        raise ValueError("Name is required")
    segment = Segment(name=name.strip(), query=query or {})
    db.add(segment)
    db.commit()
    db.refresh(segment)
    return {"id": segment.id, "name": segment.name, "query": segment.query, "campaign_count": 0}


# --- Topics ---

def list_topics(db: Session, public_only: bool = False) -> List[Dict[str, Any]]:
    query = db.query(Topic, func.count(ContactTopic.id)).outerjoin(
        ContactTopic, ContactTopic.topic_id == Topic.id
    )
    if public_only:
        query = query.filter(Topic.visibility == "public")
    rows = query.group_by(Topic.id).order_by(Topic.created_at.desc(), Topic.id.desc()).all()
    return [
        {
            "id": topic.id,
            "name": topic.name,
            "description": topic.description,
            "visibility": topic.visibility,
            "is_default": topic.is_default,
            "contact_count": count,
        }
        for topic, count in rows
    ]


def create_topic(data: Dict[str, Any], db: Session) -> Dict[str, Any]:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValueError("Name is required")
    visibility = data.get("visibility") or "public"
    if visibility not in ("public", "private"):
        raise ValueError(f"Invalid visibility: {visibility}")

    topic = Topic(
        name=name,
        description=data.get("description"),
        visibility=visibility,
        is_default=bool(data.get("is_default", False)),
    )
    db.add(topic)
    db.commit()
    db.refresh(topic)
    return {
        "id": topic.id,
        "name": topic.name,
        "description": topic.description,
        "visibility": topic.visibility,
        "is_default": topic.is_default,
        "contact_count": 0,
    }


# --- Unsubscribe ---

def unsubscribe(email: str, db: Session, reason: str = "One-Click Unsubscribe") -> None:
    """Add an address to the global unsubscribe list (idempotent)"""
    if not email:
        raise ValueError("Email required")
    if db.query(UnsubscribedRecipient).filter(UnsubscribedRecipient.email == email).first():
        return
    db.add(UnsubscribedRecipient(email=email, reason=reason))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
    logger.info(f"Recipient unsubscribed ({reason})")


def get_preferences(email: str, db: Session) -> Dict[str, Any]:
    """Subscription state of an address plus the public topics it may choose from"""
    if not email:
        raise ValueError("Email required")
    contact = db.query(Contact).filter(Contact.email == email).first()
    globally_unsubscribed = db.query(UnsubscribedRecipient).filter(
        UnsubscribedRecipient.email == email
    ).first() is not None
    return {
        "email": email,
        "unsubscribed": globally_unsubscribed or bool(contact and contact.unsubscribed),
        "topic_ids": [ct.topic_id for ct in contact.topics] if contact else [],
        "topics": list_topics(db, public_only=True),
    }


def update_preferences(email: str, unsubscribed: bool, topic_ids: Optional[List[int]], db: Session) -> None:
    """Replace a contact's topics and sync the global unsubscribe list

    Raises:
        ValueError: If the email is missing, no contact has it or a topic id is unknown
    """
    if not email:
        raise ValueError("Email required")
    contact = db.query(Contact).filter(Contact.email == email).first()
    if not contact:
        raise ValueError("Contact not found")

    wanted = list(dict.fromkeys(topic_ids or []))
    if wanted:
        known = {row.id for row in db.query(Topic.id).filter(Topic.id.in_(wanted)).all()}
        unknown = [topic_id for topic_id in wanted if topic_id not in known]
        if unknown:
            raise ValueError(f"Unknown topic ids: {unknown}")

    contact.unsubscribed = bool(unsubscribed)
    db.query(ContactTopic).filter(ContactTopic.contact_id == contact.id).delete(synchronize_session=False)
    db.flush()
    for topic_id in wanted:
        db.add(ContactTopic(contact_id=contact.id, topic_id=topic_id))
    db.expire(contact, ["topics"])

    entry = db.query(UnsubscribedRecipient).filter(UnsubscribedRecipient.email == email).first()
    if unsubscribed and not entry:
        db.add(UnsubscribedRecipient(email=email, reason="User Preference"))
    elif not unsubscribed and entry:
        db.delete(entry)

    db.commit()
