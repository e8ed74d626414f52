"""Pydantic schemas for conversations, tickets and inbox replies"""
from pydantic import BaseModel, Field


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)


class ConversationCreate(BaseModel):
    target_user_id: int


class TicketCreate(BaseModel):
    subject: str = Field(..., max_length=512)
    name: str = Field(..., max_length=255)


class InboxReply(BaseModel):
    message: str = Field(..., min_length=1)
    subject: str = ""


class DomainCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=253)
