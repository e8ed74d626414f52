"""Event and booking service"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.event import Event, Booking, BOOKING_STATUSES, SEAT_HOLDING_STATUSES

logger = logging.getLogger(__name__)

EVENT_FIELDS = ("title", "description", "date", "location", "price", "member_price",
                "external_price", "image", "max_seats", "is_featured")
REQUIRED_EVENT_FIELDS = ("title", "date", "location", "price", "max_seats")
REQUIRED_BOOKING_FIELDS = ("event_id", "first_name", "last_name", "email", "phone")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def count_held_seats(event_id: int, db: Session) -> int:
    """Bookings that hold a seat (PENDING or CONFIRMED)"""
    return db.query(func.count(Booking.id)).filter(
        Booking.event_id == event_id,
        Booking.status.in_(SEAT_HOLDING_STATUSES)
    ).scalar() or 0


def serialize_event(event: Event, db: Session) -> Dict[str, Any]:
    held = count_held_seats(event.id, db)
    return {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "date": _iso(event.date),
        "location": event.location,
        "price": event.price,
        "member_price": event.member_price,
        "external_price": event.external_price,
        "image": event.image,
        "max_seats": event.max_seats,
        "is_featured": event.is_featured,
        "booked_seats": held,
        "available_seats": max(event.max_seats - held, 0),
    }


def serialize_booking(booking: Booking, include_event: bool = False) -> Dict[str, Any]:
    result = {
        "id": booking.id,
        "event_id": booking.event_id,
        "first_name": booking.first_name,
        "last_name": booking.last_name,
        "email": booking.email,
        "phone": booking.phone,
        "status": booking.status,
        "revolut_link": booking.revolut_link,
        "created_at": _iso(booking.created_at),
    }
    if include_event and booking.event:
        result["event"] = {"id": booking.event.id, "title": booking.event.title, "date": _iso(booking.event.date)}
    return result


def _get_event(event_id: int, db: Session) -> Event:
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event:
        raise ValueError("Event not found")
    return event


# --- Public ---

def list_events(db: Session, upcoming_only: bool = False) -> List[Dict[str, Any]]:
    query = db.query(Event)
    if upcoming_only:
        query = query.filter(Event.date >= func.now())
    return [serialize_event(e, db) for e in query.order_by(Event.date.asc()).all()]


def get_event(event_id: int, db: Session) -> Dict[str, Any]:
    return serialize_event(_get_event(event_id, db), db)


def revolut_link_for(price: float, booking_id: int) -> str:
    """Revolut payment link: https://revolut.me/<username>/<amount>?note=BOOKING-<id>"""
    amount = int(price) if float(price).is_integer() else price
    return f"https://revolut.me/{settings.REVOLUT_USERNAME}/{amount}?note=BOOKING-{booking_id}"


def create_booking(data: Dict[str, Any], db: Session) -> Dict[str, Any]:
    """Reserve a seat (PENDING) and return the booking id with its payment link

    Raises:
        ValueError: If a field is missing, the event does not exist or no seat is left
    """
    if any(not data.get(field) for field in REQUIRED_BOOKING_FIELDS):
        raise ValueError("Missing required fields")

    # Row lock serializes concurrent bookings on databases that support it
    event = db.query(Event).filter(Event.id == data["event_id"]).with_for_update().first()
    if not event:
        raise ValueError("Event not found")

    if event.max_seats - count_held_seats(event.id, db) <= 0:
        db.rollback()
        raise ValueError("No seats available")

    booking = Booking(
        event_id=event.id,
        first_name=data["first_name"].strip(),
        last_name=data["last_name"].strip(),
        email=data["email"].strip(),
        phone=data["phone"].strip(),
        status="PENDING",
    )
    db.add(booking)
    db.flush()
    booking.revolut_link = revolut_link_for(event.price, booking.id)
    db.commit()

    logger.info(f"Booking {booking.id} created for event {event.id}")
    return {"booking_id": booking.id, "revolut_link": booking.revolut_link}


def get_booking(booking_id: int, db: Session) -> Dict[str, Any]:
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise ValueError("Booking not found")
    return serialize_booking(booking, include_event=True)


# --- Admin ---

def _apply_featured(event_id: int, db: Session) -> None:
    """Only one event is featured at a time"""
    db.query(Event).filter(Event.id != event_id, Event.is_featured.is_(True)).update(
        {Event.is_featured: False}, synchronize_session=False
    )


def create_event(data: Dict[str, Any], db: Session) -> Dict[str, Any]:
    missing = [field for field in REQUIRED_EVENT_FIELDS if data.get(field) in (None, "")]
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")
    if data["max_seats"] <= 0:
        raise ValueError("max_seats must be positive")

    event = Event(**{field: data[field] for field in EVENT_FIELDS if data.get(field) is not None})
    db.add(event)
    db.flush()
    if event.is_featured:
        _apply_featured(event.id, db)
    db.commit()
    db.refresh(event)
    logger.info(f"Event {event.id} created")
    return serialize_event(event, db)


def update_event(event_id: int, data: Dict[str, Any], db: Session) -> Dict[str, Any]:
    """Partial update; featuring this event un-features every other one"""
    event = _get_event(event_id, db)
    if "max_seats" in data and data["max_seats"] is not None and data["max_seats"] <= 0:
        raise ValueError("max_seats must be positive")

    for field in EVENT_FIELDS:
        if field in data:
            setattr(event, field, data[field])
    if data.get("is_featured"):
        _apply_featured(event.id, db)
    db.commit()
    db.refresh(event)
    return serialize_event(event, db)


def delete_event(event_id: int, db: Session) -> None:
    event = _get_event(event_id, db)
    db.delete(event)
    db.commit()
    logger.info(f"Event {event_id} deleted")


def list_bookings(db: Session, event_id: Optional[int] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
    query = db.query(Booking)
    if event_id is not None:
        query = query.filter(Booking.event_id == event_id)
    if status:
        query = query.filter(Booking.status == status)
    return [serialize_booking(b, include_event=True) for b in query.order_by(Booking.created_at.desc(), Booking.id.desc()).all()]


def _check_status(status: str) -> None:
    if status not in BOOKING_STATUSES:
        raise ValueError(f"Invalid status: {status}")


def update_booking_status(booking_id: int, status: str, db: Session) -> Dict[str, Any]:
    _check_status(status)
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise ValueError("Booking not found")
    booking.status = status
    db.commit()
    db.refresh(booking)
    return serialize_booking(booking)


def bulk_update_booking_status(booking_ids: List[int], status: str, db: Session) -> int:
    if not booking_ids:
        raise ValueError("Invalid request data")
    _check_status(status)
    count = db.query(Booking).filter(Booking.id.in_(booking_ids)).update(
        {Booking.status: status}, synchronize_session=False
    )
    db.commit()
    logger.info(f"Bulk status update: {count} booking(s) set to {status}")
    return count
