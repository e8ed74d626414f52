"""InboxMessage model"""
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from datetime import datetime, timezone
from app.models.base import Base


class InboxMessage(Base):
    """Email received on the association's inbound address"""
    __tablename__ = "inbox_messages"

    id = Column(Integer, primary_key=True, index=True)
    email_id = Column(String(255), unique=True, nullable=False, index=True)
    message_id = Column(String(512), nullable=True)  # RFC Message-ID, used for reply threading
    from_address = Column(String(512), nullable=False)
    to = Column(JSON, default=list)
    subject = Column(String(1024), nullable=True)
    text = Column(Text, nullable=True)
    html = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=False)
    attachments = Column(JSON, default=list)  # [{id, filename, content_type, size, url}]
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
