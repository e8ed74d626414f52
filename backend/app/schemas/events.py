"""Pydantic schemas for events and bookings"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field


class EventCreate(BaseModel):
    """Schema for creating an event"""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    date: datetime
    location: str = Field(..., min_length=1, max_length=255)
    price: float = Field(..., ge=0)
    member_price: Optional[float] = Field(None, ge=0)
    external_price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None
    max_seats: int = Field(..., gt=0)
    is_featured: bool = False


class EventUpdate(BaseModel):
    """Schema for partially updating an event"""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    date: Optional[datetime] = None
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    price: Optional[float] = Field(None, ge=0)
    member_price: Optional[float] = Field(None, ge=0)
    external_price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None
    max_seats: Optional[int] = Field(None, gt=0)
    is_featured: Optional[bool] = None


class BookingCreate(BaseModel):
    event_id: int
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: str = Field(..., min_length=1, max_length=50)


class BookingStatusUpdate(BaseModel):
    status: str


class BulkBookingStatusUpdate(BaseModel):
    booking_ids: List[int] = Field(..., min_length=1)
    status: str
