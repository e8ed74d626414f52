"""Event and Booking models"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Float, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base

BOOKING_STATUSES = ("PENDING", "CONFIRMED", "CANCELLED", "CHECKED_IN", "CHECKED_OUT")

# Bookings that hold a seat
SEAT_HOLDING_STATUSES = ("PENDING", "CONFIRMED")


class Event(Base):
    """Ticketed association event"""
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    date = Column(DateTime(timezone=True), nullable=False, index=True)
    location = Column(String(255), nullable=False)
    price = Column(Float, nullable=False)
    member_price = Column(Float, nullable=True)
    external_price = Column(Float, nullable=True)
    image = Column(String(1024), nullable=True)
    max_seats = Column(Integer, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    bookings = relationship("Booking", back_populates="event", cascade="all, delete-orphan")


class Booking(Base):
    """Seat reservation for an event"""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50), nullable=False)
    status = Column(String(20), default="PENDING", nullable=False)
    revolut_link = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    event = relationship("Event", back_populates="bookings")

    __table_args__ = (
        Index('ix_bookings_event_status', 'event_id', 'status'),
    )
