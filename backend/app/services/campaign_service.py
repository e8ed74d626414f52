"""Campaign service - audience resolution, sending and delivery statistics"""
import logging
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.metrics import campaign_emails_counter
from app.models.campaign import Campaign, Segment, CAMPAIGN_STATUSES
from app.models.contact import Contact, ContactTopic, UnsubscribedRecipient
from app.models.email_log import EmailLog
from app.models.event import Event, Booking
from app.services import email_service, resend_api
from app.utils.templates import (
    replace_template_placeholders, content_to_html, render_campaign_html, html_to_text
)

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "subject", "content", "recipients", "segment_id", "attachments")
DAILY_SERIES_KEYS = ("sent", "delivered", "opened", "clicked", "bounced", "complained", "failed")


def _serialize_campaign(campaign: Campaign) -> Dict[str, Any]:
    return {
        "id": campaign.id,
        "name": campaign.name,
        "subject": campaign.subject,
        "content": campaign.content,
        "status": campaign.status,
        "recipients": campaign.recipients or [],
        "segment_id": campaign.segment_id,
        "segment": {"id": campaign.segment.id, "name": campaign.segment.name} if campaign.segment else None,
        "attachments": campaign.attachments or [],
        "scheduled_at": campaign.scheduled_at.isoformat() if campaign.scheduled_at else None,
        "sent_at": campaign.sent_at.isoformat() if campaign.sent_at else None,
        "sent_count": campaign.sent_count,
        "delivered_count": campaign.delivered_count,
        "open_count": campaign.open_count,
        "click_count": campaign.click_count,
        "bounce_count": campaign.bounce_count,
        "complaint_count": campaign.complaint_count,
        "created_at": campaign.created_at.isoformat() if campaign.created_at else None,
        "updated_at": campaign.updated_at.isoformat() if campaign.updated_at else None,
    }


def get_owned_campaign(campaign_id: int, user_id: int, db: Session) -> Campaign:
    """Campaign owned by user_id

    Raises:
        ValueError: If the campaign does not exist or belongs to another user
    """
    campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
    if not campaign or campaign.user_id != user_id:
        raise ValueError("Campaign not found")
    return campaign


def list_campaigns(user_id: int, db: Session, status: Optional[str] = None) -> List[Dict[str, Any]]:
    """Campaigns of a user, most recently updated first"""
    query = db.query(Campaign).filter(Campaign.user_id == user_id)
    if status:
        query = query.filter(Campaign.status == status)
    return [_serialize_campaign(c) for c in query.order_by(Campaign.updated_at.desc(), Campaign.id.desc()).all()]


def get_campaign(campaign_id: int, user_id: int, db: Session) -> Dict[str, Any]:
    return _serialize_campaign(get_owned_campaign(campaign_id, user_id, db))


def _validate_audience_fields(recipients: Optional[List[str]], segment_id: Optional[int], db: Session) -> None:
    if recipients and segment_id:
        raise ValueError("A campaign targets either an explicit recipient list or a segment, not both")
    if segment_id and not db.query(Segment).filter(Segment.id == segment_id).first():
        raise ValueError("Segment not found")


def create_campaign(user_id: int, data: Dict[str, Any], db: Session, event_id: Optional[int] = None) -> Dict[str, Any]:
    """Create a draft campaign

    When event_id is given, a segment targeting the event's confirmed bookings is
    created and attached to the campaign.
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValueError("Campaign name is required")

    recipients = data.get("recipients") or []
    segment_id = data.get("segment_id")

    if event_id is not None:
        event = db.query(Event).filter(Event.id == event_id).first()
        if not event:
            raise ValueError("Event not found")
        segment = Segment(name=f"Segment for {name}", query={"reservedEventId": event.id})
        db.add(segment)
        db.flush()
        segment_id = segment.id
        recipients = []
    else:
        _validate_audience_fields(recipients, segment_id, db)

    campaign = Campaign(
        user_id=user_id,
        name=name,
        subject=data.get("subject") or "Nouvelle campagne",
        content=data.get("content"),
        status="DRAFT",
        recipients=recipients,
        segment_id=segment_id,
        attachments=data.get("attachments") or [],
    )
    db.add(campaign)
    db.commit()
    db.refresh(campaign)
    logger.info(f"Campaign {campaign.id} created by user {user_id}")
    return _serialize_campaign(campaign)


def update_campaign(campaign_id: int, user_id: int, data: Dict[str, Any], db: Session) -> Dict[str, Any]:
    """Partial update of a campaign that has not been sent"""
    campaign = get_owned_campaign(campaign_id, user_id, db)
    if campaign.status == "SENT":
        raise ValueError("Cannot modify a campaign that has already been sent")

    new_status = data.get("status")
    if new_status is not None and (new_status not in CAMPAIGN_STATUSES or new_status == "SENT"):
        raise ValueError(f"Invalid campaign status: {new_status}")
    if "name" in data and not (data["name"] or "").strip():
        raise ValueError("Campaign name is required")
    _validate_audience_fields(
        data["recipients"] if "recipients" in data else campaign.recipients,
        data["segment_id"] if "segment_id" in data else campaign.segment_id,
        db
    )

    if new_status is not None:
        campaign.status = new_status
    for field in EDITABLE_FIELDS:
        if field in data:
            setattr(campaign, field, data[field])

    db.commit()
    db.refresh(campaign)
    return _serialize_campaign(campaign)


def delete_campaign(campaign_id: int, user_id: int, db: Session) -> None:
    campaign = get_owned_campaign(campaign_id, user_id, db)
    db.delete(campaign)
    db.commit()
    logger.info(f"Campaign {campaign_id} deleted by user {user_id}")


def archive_campaign(campaign_id: int, user_id: int, db: Session) -> Dict[str, Any]:
    campaign = get_owned_campaign(campaign_id, user_id, db)
    campaign.status = "ARCHIVED"
    db.commit()
    db.refresh(campaign)
    return _serialize_campaign(campaign)


def bulk_delete_campaigns(campaign_ids: List[int], user_id: int, db: Session) -> int:
    """Delete the given campaigns owned by user_id; ids of other users are skipped"""
    campaigns = db.query(Campaign).filter(Campaign.id.in_(campaign_ids), Campaign.user_id == user_id).all()
    for campaign in campaigns:
        db.delete(campaign)
    db.commit()
    return len(campaigns)


def bulk_archive_campaigns(campaign_ids: List[int], user_id: int, db: Session) -> int:
    """Archive the given campaigns owned by user_id; ids of other users are skipped"""
    count = db.query(Campaign).filter(
        Campaign.id.in_(campaign_ids), Campaign.user_id == user_id
    ).update({Campaign.status: "ARCHIVED"}, synchronize_session=False)
    db.commit()
    return count


# --- Audience ---

def _property_condition(key: str, value: Any):
    element = Contact.properties[key]
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, int):
        return element.as_integer() == value
    if isinstance(value, float):
        return element.as_float() == value
    return element.as_string() == str(value)


def segment_emails(query: Dict[str, Any], db: Session) -> List[str]:
    """Addresses matching a segment query, in contact then booking order"""
    query = query or {}
    contacts = db.query(Contact.email)

    if query.get("unsubscribed") is False:
        contacts = contacts.filter(Contact.unsubscribed.is_(False))

    topic_ids = query.get("topicIds")
    if isinstance(topic_ids, list) and topic_ids:
        contacts = contacts.filter(Contact.topics.any(ContactTopic.topic_id.in_(topic_ids)))

    properties = query.get("properties")
    if isinstance(properties, dict):
        for key, value in properties.items():
            contacts = contacts.filter(_property_condition(key, value))

    emails = [row.email for row in contacts.order_by(Contact.id).all()]

    event_id = query.get("reservedEventId")
    if event_id:
        bookings = db.query(Booking.email).filter(
            Booking.event_id == event_id, Booking.status == "CONFIRMED"
        ).order_by(Booking.id).all()
        emails.extend(row.email for row in bookings)

    return emails


def resolve_audience(campaign: Campaign, db: Session) -> List[str]:
    """Final recipient list: explicit list or segment, minus global unsubscribes, de-duplicated"""
    if campaign.segment_id:
        segment = db.query(Segment).filter(Segment.id == campaign.segment_id).first()
        emails = segment_emails(segment.query, db) if segment else []
    else:
        emails = list(campaign.recipients or [])

    # Order-preserving de-duplication
    emails = list(OrderedDict.fromkeys(e.strip() for e in emails if e and e.strip()))
    if not emails:
        return []

    unsubscribed = {
        row.email for row in
        db.query(UnsubscribedRecipient.email).filter(UnsubscribedRecipient.email.in_(emails)).all()
    }
    return [e for e in emails if e not in unsubscribed]


def get_campaign_audience(campaign_id: int, user_id: int, db: Session) -> List[str]:
    return resolve_audience(get_owned_campaign(campaign_id, user_id, db), db)


# --- Sending ---

def _build_email(campaign: Campaign, email: str, contact: Optional[Contact],
                 body_html: str, scheduled_at: Optional[datetime]) -> Dict[str, Any]:
    encoded = quote(email, safe="")
    app_url = settings.APP_URL.rstrip("/")
    unsubscribe_url = f"{app_url}/unsubscribe?email={encoded}"

    subject = replace_template_placeholders(campaign.subject or "Sans objet", contact, email)
    content = replace_template_placeholders(body_html, contact, email)
    html_body = render_campaign_html(content, subject, unsubscribe_url)

    params = {
        "to": email,
        "subject": subject,
        "html": html_body,
        "text": html_to_text(html_body),
        "headers": {
            "List-Unsubscribe": f"<{app_url}/api/unsubscribe?email={encoded}>",
            "List-Unsubscribe-Post": "List-Unsubscribe=One-Click",
        },
        "tags": [{"name": "campaignId", "value": str(campaign.id)}],
    }
    if campaign.attachments:
        params["attachments"] = [{"path": a.get("url"), "filename": a.get("name")} for a in campaign.attachments]
    if scheduled_at:
        params["scheduled_at"] = scheduled_at.isoformat()
    return params


def send_campaign(campaign_id: int, user_id: int, db: Session,
                  scheduled_at: Optional[datetime] = None) -> Dict[str, Any]:
    """Send (or schedule) a campaign, one provider request per recipient

    Individual send failures are logged and do not stop the run; sent_count is the
    number of accepted sends.

    Raises:
        ValueError: If the campaign was already sent, or is scheduled with attachments
    """
    campaign = get_owned_campaign(campaign_id, user_id, db)

    if campaign.status == "SENT":
        raise ValueError("Campaign already sent")
    if scheduled_at and campaign.attachments:
        raise ValueError("Cannot schedule emails with attachments")

    recipients = resolve_audience(campaign, db)
    contacts = {
        c.email: c for c in db.query(Contact).filter(Contact.email.in_(recipients)).all()
    } if recipients else {}
    body_html = content_to_html(campaign.content)

    sent_count = 0
    failed = []
    for email in recipients:
        params = _build_email(campaign, email, contacts.get(email), body_html, scheduled_at)
        try:
            email_service.deliver_email(params)
            sent_count += 1
            campaign_emails_counter.labels(status="sent").inc()
        except email_service.EmailDeliveryError as e:
            failed.append(email)
            campaign_emails_counter.labels(status="failed").inc()
            logger.error(f"Campaign {campaign.id}: {e}")

    if failed:
        logger.error(f"Campaign {campaign.id}: failed to send {len(failed)} of {len(recipients)} emails")

    if scheduled_at:
        campaign.status = "SCHEDULED"
        campaign.scheduled_at = scheduled_at
    else:
        campaign.status = "SENT"
        campaign.sent_at = datetime.now(timezone.utc)
        campaign.scheduled_at = None
    campaign.sent_count = sent_count
    db.commit()
    db.refresh(campaign)

    logger.info(f"Campaign {campaign.id} {campaign.status.lower()}: {sent_count}/{len(recipients)} accepted")
    return {
        "campaign": _serialize_campaign(campaign),
        "recipients": len(recipients),
        "sent_count": sent_count,
        "failed": failed,
    }


def sync_campaign_stats(campaign_id: int, user_id: int, db: Session) -> Dict[str, int]:
    """Recount sent/open/click from the provider's email list, matched by subject

    Overwrites the stored counters. Stops at the first provider error and keeps
    whatever pages were read.
    """
    campaign = get_owned_campaign(campaign_id, user_id, db)

    sent_count = open_count = click_count = 0
    cursor = None
    while True:
        try:
            page = resend_api.list_emails(limit=100, after=cursor)
        except resend_api.ResendAPIError as e:
            logger.error(f"Resend API error while syncing campaign {campaign_id}: {e}")
            break

        emails = page.get("data") or []
        for email in emails:
            if email.get("subject") != campaign.subject:
                continue
            sent_count += 1
            if email.get("last_event") in ("opened", "clicked"):
                open_count += 1
            if email.get("last_event") == "clicked":
                click_count += 1

        if page.get("has_more") and emails:
            cursor = emails[-1]["id"]
        else:
            break

    campaign.sent_count = sent_count
    campaign.open_count = open_count
    campaign.click_count = click_count
    db.commit()
    return {"sent_count": sent_count, "open_count": open_count, "click_count": click_count}


# --- Statistics ---

def get_campaign_booking_stats(campaign_id: int, user_id: int, db: Session) -> Dict[str, int]:
    """Booking status breakdown for the event a campaign's segment targets"""
    campaign = get_owned_campaign(campaign_id, user_id, db)
    result = {"pending": 0, "confirmed": 0, "cancelled": 0, "checked_in": 0, "checked_out": 0, "total": 0}

    event_id = (campaign.segment.query or {}).get("reservedEventId") if campaign.segment else None
    if not event_id:
        return result

    rows = db.query(Booking.status, func.count(Booking.id)).filter(
        Booking.event_id == event_id
    ).group_by(Booking.status).all()
    for status, count in rows:
        key = status.lower()
        if key in result:
            result[key] = count
    result["total"] = sum(v for k, v in result.items() if k != "total")
    return result


def get_campaign_email_series(campaign_id: int, user_id: int, db: Session) -> List[Dict[str, Any]]:
    """Per-day counts of webhook events for one campaign, oldest day first"""
    get_owned_campaign(campaign_id, user_id, db)
    logs = db.query(EmailLog.status, EmailLog.created_at).filter(
        EmailLog.campaign_id == campaign_id
    ).order_by(EmailLog.created_at.asc()).all()

    days: Dict[str, Dict[str, int]] = {}
    for status, created_at in logs:
        day = created_at.date().isoformat()
        counts = days.setdefault(day, {key: 0 for key in DAILY_SERIES_KEYS})
        key = "failed" if status == "delivery_delayed" else status
        if key in counts:
            counts[key] += 1

    return [{"date": day, **counts} for day, counts in sorted(days.items())]


def get_global_email_stats(user_id: int, db: Session) -> Dict[str, int]:
    """Totals across every logged email event"""
    def count_status(status: str) -> int:
        return db.query(func.count(EmailLog.id)).filter(EmailLog.status == status).scalar() or 0

    return {
        "sent": db.query(func.count(func.distinct(EmailLog.email_id))).scalar() or 0,
        "delivered": count_status("delivered"),
        "opened": count_status("opened"),
        "clicked": count_status("clicked"),
        "failed": count_status("bounced") + count_status("failed"),
        "complained": count_status("complained"),
        "total_campaigns": db.query(func.count(Campaign.id)).filter(Campaign.user_id == user_id).scalar() or 0,
    }
