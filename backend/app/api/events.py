"""Event and booking API routes"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.security import require_staff, require_staff_csrf
from app.db.session import get_db
from app.models.user import User
from app.schemas.events import (
    EventCreate, EventUpdate, BookingCreate, BookingStatusUpdate, BulkBookingStatusUpdate
)
from app.services import event_service

router = APIRouter(prefix="/api", tags=["events"])
public_router = APIRouter(prefix="/api/public", tags=["public"])
logger = logging.getLogger(__name__)


def _http_error(e: ValueError) -> HTTPException:
    message = str(e)
    return HTTPException(404 if "not found" in message.lower() else 400, message)


# --- Public (no login) ---

@public_router.get("/events")
def public_list_events(upcoming: bool = Query(False), db: Session = Depends(get_db)):
    """Events with their remaining seats"""
    return event_service.list_events(db, upcoming_only=upcoming)


@public_router.get("/events/{event_id}")
def public_get_event(event_id: int, db: Session = Depends(get_db)):
    try:
        return event_service.get_event(event_id, db)
    except ValueError as e:
        raise _http_error(e)


@public_router.post("/bookings")
def public_create_booking(request_data: BookingCreate, db: Session = Depends(get_db)):
    """Reserve a seat; the response carries the Revolut payment link"""
    try:
        return event_service.create_booking(request_data.model_dump(), db)
    except ValueError as e:
        raise _http_error(e)


@public_router.get("/bookings/{booking_id}")
def public_get_booking(booking_id: int, db: Session = Depends(get_db)):
    try:
        return event_service.get_booking(booking_id, db)
    except ValueError as e:
        raise _http_error(e)


# --- Staff ---

@router.get("/events")
def list_events(user: User = Depends(require_staff), db: Session = Depends(get_db)):
    return event_service.list_events(db)


@router.post("/events")
def create_event(request_data: EventCreate, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    try:
        return event_service.create_event(request_data.model_dump(), db)
    except ValueError as e:
        raise _http_error(e)


@router.patch("/events/{event_id}")
def update_event(
    event_id: int,
    request_data: EventUpdate,
    user: User = Depends(require_staff_csrf),
    db: Session = Depends(get_db)
):
    try:
        return event_service.update_event(event_id, request_data.model_dump(exclude_unset=True), db)
    except ValueError as e:
        raise _http_error(e)


@router.delete("/events/{event_id}")
def delete_event(event_id: int, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    try:
        event_service.delete_event(event_id, db)
        return {"success": True}
    except ValueError as e:
        raise _http_error(e)


@router.get("/bookings")
def list_bookings(
    event_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    user: User = Depends(require_staff),
    db: Session = Depends(get_db)
):
    return event_service.list_bookings(db, event_id=event_id, status=status)


@router.patch("/bookings/bulk")
def bulk_update_bookings(
    request_data: BulkBookingStatusUpdate,
    user: User = Depends(require_staff_csrf),
    db: Session = Depends(get_db)
):
    try:
        count = event_service.bulk_update_booking_status(request_data.booking_ids, request_data.status, db)
        return {"success": True, "count": count}
    except ValueError as e:
        raise _http_error(e)


@router.patch("/bookings/{booking_id}")
def update_booking_status(
    booking_id: int,
    request_data: BookingStatusUpdate,
    user: User = Depends(require_staff_csrf),
    db: Session = Depends(get_db)
):
    try:
        return event_service.update_booking_status(booking_id, request_data.status, db)
    except ValueError as e:
        raise _http_error(e)
