"""Pydantic schemas for contacts, segments, topics and unsubscribe preferences"""
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, EmailStr, Field


class ContactCreate(BaseModel):
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    unsubscribed: bool = False
    properties: Optional[Dict[str, Any]] = None


class ContactUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    unsubscribed: Optional[bool] = None
    properties: Optional[Dict[str, Any]] = None


class SegmentQuery(BaseModel):
    """Saved filter; unknown keys are rejected"""
    unsubscribed: Optional[bool] = None
    topicIds: Optional[List[int]] = None
    properties: Optional[Dict[str, Any]] = None
    reservedEventId: Optional[int] = None

    model_config = {"extra": "forbid"}


class SegmentCreate(BaseModel):
    name: str = Field(..., max_length=255)
    query: SegmentQuery = Field(default_factory=SegmentQuery)


class TopicCreate(BaseModel):
    name: str = Field(..., max_length=255)
    description: Optional[str] = None
    visibility: Literal["public", "private"] = "public"
    is_default: bool = False


class PreferencesUpdate(BaseModel):
    email: EmailStr
    unsubscribed: bool = False
    topic_ids: List[int] = Field(default_factory=list)
