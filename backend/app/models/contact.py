"""Marketing audience models: contacts, topics and the global unsubscribe list"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base


class Contact(Base):
    """Audience member, mirrored in the email provider through resend_id"""
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    unsubscribed = Column(Boolean, default=False, nullable=False)
    properties = Column(JSON, default=dict)
    resend_id = Column(String(255), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    topics = relationship("ContactTopic", back_populates="contact", cascade="all, delete-orphan")


class Topic(Base):
    """Subscription topic a contact can opt into"""
    __tablename__ = "topics"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    visibility = Column(String(20), default="public", nullable=False)  # public, private
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    contacts = relationship("ContactTopic", back_populates="topic", cascade="all, delete-orphan")


class ContactTopic(Base):
    """Contact <-> Topic membership"""
    __tablename__ = "contact_topics"

    id = Column(Integer, primary_key=True, index=True)
    contact_id = Column(Integer, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True)
    topic_id = Column(Integer, ForeignKey("topics.id", ondelete="CASCADE"), nullable=False, index=True)

    contact = relationship("Contact", back_populates="topics")
    topic = relationship("Topic", back_populates="contacts")

    __table_args__ = (
        UniqueConstraint('contact_id', 'topic_id', name='uq_contact_topics_contact_topic'),
    )


class UnsubscribedRecipient(Base):
    """Address excluded from every campaign"""
    __tablename__ = "unsubscribed_recipients"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
