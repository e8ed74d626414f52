"""EmailLog model"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base


class EmailLog(Base):
    """One row per provider delivery/engagement notification for a campaign email"""
    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    webhook_id = Column(String(255), unique=True, nullable=True, index=True)  # svix-id of the delivery
    email_id = Column(String(255), nullable=False, index=True)
    recipient = Column(String(255), nullable=False, index=True)
    event_type = Column(String(100), nullable=False, index=True)  # e.g. email.delivered
    status = Column(String(50), nullable=False, index=True)  # event_type without the "email." prefix
    ip_address = Column(String(100), nullable=True)
    user_agent = Column(Text, nullable=True)
    link_clicked = Column(Text, nullable=True)
    bounce_type = Column(String(100), nullable=True)
    bounce_sub_type = Column(String(100), nullable=True)
    bounce_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    campaign = relationship("Campaign", back_populates="email_logs")

    __table_args__ = (
        Index('ix_email_logs_email_event', 'email_id', 'event_type'),
    )
