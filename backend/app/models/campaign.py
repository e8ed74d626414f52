"""Campaign and Segment models"""
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base

CAMPAIGN_STATUSES = ("DRAFT", "SCHEDULED", "SENT", "ARCHIVED")


class Segment(Base):
    """Saved audience filter, resolved against contacts at send time"""
    __tablename__ = "segments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    # Keys: unsubscribed, topicIds, properties, reservedEventId
    query = Column(JSON, default=dict, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    campaigns = relationship("Campaign", back_populates="segment")


class Campaign(Base):
    """One outbound email blast and its running delivery counters"""
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    subject = Column(String(512), nullable=True)
    content = Column(JSON, nullable=True)  # Editor JSON or raw HTML/markdown string
    status = Column(String(20), default="DRAFT", nullable=False)
    recipients = Column(JSON, default=list)  # Explicit address list, used when segment_id is null
    segment_id = Column(Integer, ForeignKey("segments.id", ondelete="SET NULL"), nullable=True, index=True)
    attachments = Column(JSON, default=list)  # [{"url": ..., "name": ...}]
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    sent_count = Column(Integer, default=0, nullable=False)
    delivered_count = Column(Integer, default=0, nullable=False)
    open_count = Column(Integer, default=0, nullable=False)
    click_count = Column(Integer, default=0, nullable=False)
    bounce_count = Column(Integer, default=0, nullable=False)
    complaint_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    user = relationship("User", back_populates="campaigns")
    segment = relationship("Segment", back_populates="campaigns")
    email_logs = relationship("EmailLog", back_populates="campaign")

    __table_args__ = (
        Index('ix_campaigns_user_status', 'user_id', 'status'),
    )
