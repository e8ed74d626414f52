"""Pydantic schemas for campaigns"""
from datetime import datetime
from typing import Any, List, Literal, Optional
from pydantic import BaseModel, Field


class CampaignAttachment(BaseModel):
    url: str
    name: str


class CampaignCreate(BaseModel):
    """Schema for creating a campaign; event_id targets that event's confirmed bookings"""
    name: str = Field(..., max_length=255)
    subject: Optional[str] = Field(None, max_length=512)
    content: Optional[Any] = None
    recipients: Optional[List[str]] = None
    segment_id: Optional[int] = None
    attachments: Optional[List[CampaignAttachment]] = None
    event_id: Optional[int] = None


class CampaignUpdate(BaseModel):
    """Schema for partially updating a campaign"""
    name: Optional[str] = Field(None, max_length=255)
    subject: Optional[str] = Field(None, max_length=512)
    content: Optional[Any] = None
    recipients: Optional[List[str]] = None
    segment_id: Optional[int] = None
    attachments: Optional[List[CampaignAttachment]] = None
    status: Optional[Literal["DRAFT", "SCHEDULED", "ARCHIVED"]] = None


class SendCampaignRequest(BaseModel):
    scheduled_at: Optional[datetime] = None


class BulkCampaignRequest(BaseModel):
    campaign_ids: List[int] = Field(..., min_length=1)
