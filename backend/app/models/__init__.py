"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from app.models.base import Base
from app.models.user import User
from app.models.event import Event, Booking
from app.models.contact import Contact, Topic, ContactTopic, UnsubscribedRecipient
from app.models.campaign import Campaign, Segment
from app.models.email_template import TemplateFolder, EmailTemplate
from app.models.email_log import EmailLog
from app.models.inbox_message import InboxMessage
from app.models.conversation import Conversation, ConversationParticipant, Message

# Export all for convenience
__all__ = [
    "Base", "User", "Event", "Booking",
    "Contact", "Topic", "ContactTopic", "UnsubscribedRecipient",
    "Campaign", "Segment", "TemplateFolder", "EmailTemplate",
    "EmailLog", "InboxMessage", "Conversation", "ConversationParticipant", "Message"
]
