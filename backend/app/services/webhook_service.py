"""Resend webhook processing - inbound email capture and campaign event attribution"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import httpx
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from svix.webhooks import Webhook, WebhookVerificationError

from app.core.config import settings
from app.core.metrics import webhook_events_counter
from app.models.campaign import Campaign
from app.models.email_log import EmailLog
from app.models.inbox_message import InboxMessage
from app.services import email_service, resend_api
from app.services.storage import blob_service

logger = logging.getLogger(__name__)
webhook_logger = logging.getLogger("webhooks")

SVIX_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")

# Event type -> Campaign counter column. Other email.* types only produce a log row.
COUNTER_BY_EVENT = {
    "email.delivered": "delivered_count",
    "email.bounced": "bounce_count",
    "email.complained": "complaint_count",
    "email.opened": "open_count",
    "email.clicked": "click_count",
}


class WebhookConfigError(Exception):
    """Raised when the webhook signing secret is not configured"""


class WebhookSignatureError(ValueError):
    """Raised when svix headers are missing or the signature does not verify"""


def verify_webhook(body: bytes, headers) -> Dict[str, Any]:
    """Verify a signed webhook delivery and return the decoded event

    Args:
        body: Raw request body, exactly as received
        headers: Mapping holding the svix-id, svix-timestamp and svix-signature headers

    Raises:
        WebhookConfigError: If RESEND_WEBHOOK_SECRET is not set
        WebhookSignatureError: If a header is missing, the signature is invalid or the body is not JSON
    """
    if not settings.RESEND_WEBHOOK_SECRET:
        raise WebhookConfigError("RESEND_WEBHOOK_SECRET is not set")

    svix_headers = {name: headers.get(name) for name in SVIX_HEADERS}
    missing = [name for name, value in svix_headers.items() if not value]
    if missing:
        raise WebhookSignatureError(f"Missing svix headers: {', '.join(missing)}")

    try:
        # Authentication only; svix 2.x returns None instead of the decoded body
        Webhook(settings.RESEND_WEBHOOK_SECRET).verify(body, svix_headers)
    except WebhookVerificationError as e:
        raise WebhookSignatureError(f"Invalid webhook signature: {e}") from e

    try:
        event = json.loads(body)
    except ValueError as e:
        # json.JSONDecodeError is a ValueError
        raise WebhookSignatureError(f"Invalid webhook payload: {e}") from e

    if not isinstance(event, dict) or not event.get("type"):
        raise WebhookSignatureError("Webhook payload has no event type")
    return event


def _parse_timestamp(value: Optional[str]) -> datetime:
    if value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Unparseable webhook timestamp: {value}")
    return datetime.now(timezone.utc)


def _find_tag(tags: Any, name: str) -> Optional[str]:
    """Tag value by case-insensitive name; tags arrive as a list of {name, value} or as a dict"""
    if isinstance(tags, dict):
        for key, value in tags.items():
            if str(key).lower() == name.lower():
                return value
        return None
    for tag in tags or []:
        if isinstance(tag, dict) and str(tag.get("name", "")).lower() == name.lower():
            return tag.get("value")
    return None


# --- email.received ---

def _store_attachments(email_id: str, attachments: List[Dict[str, Any]]) -> Tuple[List[Dict], List[Dict]]:
    """Download each attachment and copy it to blob storage

    Returns:
        tuple: (stored attachment metadata, attachments to re-attach when forwarding)
    """
    stored = []
    forward = []
    for attachment in attachments:
        filename = attachment.get("filename") or attachment.get("id") or "attachment"
        try:
            response = httpx.get(attachment["download_url"], timeout=settings.ATTACHMENT_DOWNLOAD_TIMEOUT)
            if response.status_code >= 400:
                logger.error(f"Failed to download {filename} (HTTP {response.status_code})")
                continue
            content = response.content

            url = blob_service.upload_file(
                content,
                f"inbox/{email_id}/{filename}",
                settings.STORAGE_INBOX_BUCKET,
                attachment.get("content_type")
            )
            stored.append({
                "id": attachment.get("id"),
                "filename": filename,
                "content_type": attachment.get("content_type"),
                "size": attachment.get("size"),
                "url": url,
            })
            forward.append({"filename": filename, "content": content})
        except Exception as e:
            logger.error(f"Error processing attachment {filename} of {email_id}: {e}", exc_info=True)
    return stored, forward


def handle_received_email(event: Dict[str, Any], db: Session) -> Dict[str, Any]:
    """Persist an inbound email with its attachments and forward it

    Every failure is logged and swallowed so the provider never retries inbound mail.
    """
    data = event.get("data") or {}
    email_id = data.get("email_id")

    try:
        if not email_id:
            raise ValueError("No email_id in email.received event")

        try:
            email_data = resend_api.get_received_email(email_id)
        except resend_api.ResendAPIError as e:
            logger.error(f"Error fetching received email content for {email_id}: {e}")
            return {"success": True}

        try:
            attachment_list = resend_api.list_received_attachments(email_id)
        except resend_api.ResendAPIError as e:
            logger.error(f"Error fetching attachments list for {email_id}: {e}")
            attachment_list = []

        stored, forward = _store_attachments(email_id, attachment_list)

        if email_data:
            db.add(InboxMessage(
                email_id=email_id,
                message_id=data.get("message_id"),
                from_address=data.get("from") or "",
                to=data.get("to") or [],
                subject=data.get("subject"),
                text=email_data.get("text"),
                html=email_data.get("html"),
                received_at=_parse_timestamp(event.get("created_at")),
                attachments=stored,
            ))
            db.commit()
            webhook_logger.info(f"Inbound email {email_id} stored with {len(stored)} attachment(s)")

            email_service.forward_received_email(
                data.get("from") or "",
                data.get("to") or [],
                data.get("subject"),
                email_data.get("html"),
                email_data.get("text"),
                forward
            )
    except Exception as e:
        db.rollback()
        logger.error(f"Error processing received email: {e}", exc_info=True)

    webhook_events_counter.labels(event_type="email.received", outcome="processed").inc()
    return {"success": True}


# --- campaign lifecycle events ---

def _is_duplicate(db: Session, webhook_id: Optional[str], email_id: str, event_type: str, occurred_at: datetime) -> bool:
    query = db.query(EmailLog.id)
    if webhook_id and query.filter(EmailLog.webhook_id == webhook_id).first():
        return True
    return query.filter(
        EmailLog.email_id == email_id,
        EmailLog.event_type == event_type,
        EmailLog.created_at == occurred_at
    ).first() is not None


def handle_campaign_event(event: Dict[str, Any], webhook_id: Optional[str], db: Session) -> Dict[str, Any]:
    """Record one campaign delivery/engagement event and bump the matching counter

    The log row and the counter update commit together; a delivery already recorded
    (same svix-id, or same email/type/timestamp) is acknowledged without writes.

    Raises:
        Exception: Any database error after rollback (the caller answers 500)
    """
    event_type = event["type"]
    data = event.get("data") or {}

    raw_campaign_id = _find_tag(data.get("tags"), "campaignId")
    if not raw_campaign_id:
        webhook_logger.warning(f"No campaignId tag found in {event_type} event (email_id: {data.get('email_id')})")
        webhook_events_counter.labels(event_type=event_type, outcome="ignored").inc()
        return {"message": "Event ignored (no campaignId tag)"}

    try:
        campaign = db.query(Campaign).filter(Campaign.id == int(raw_campaign_id)).first()
    except (TypeError, ValueError):
        campaign = None
    if not campaign:
        webhook_logger.warning(f"Unknown campaign {raw_campaign_id} in {event_type} event")
        webhook_events_counter.labels(event_type=event_type, outcome="ignored").inc()
        return {"message": "Event ignored (unknown campaign)"}

    email_id = data.get("email_id")
    if not email_id:
        webhook_events_counter.labels(event_type=event_type, outcome="ignored").inc()
        return {"message": "Ignored (no email_id)"}

    occurred_at = _parse_timestamp(event.get("created_at"))
    if _is_duplicate(db, webhook_id, email_id, event_type, occurred_at):
        webhook_events_counter.labels(event_type=event_type, outcome="duplicate").inc()
        return {"message": "Duplicate event ignored"}

    click = data.get("click") or {}
    bounce = data.get("bounce") or {}
    failed = data.get("failed") or {}
    recipients = data.get("to") or []

    try:
        db.add(EmailLog(
            campaign_id=campaign.id,
            user_id=campaign.user_id,
            webhook_id=webhook_id,
            email_id=email_id,
            recipient=recipients[0] if recipients else "unknown",
            event_type=event_type,
            status=event_type.replace("email.", "", 1),
            ip_address=click.get("ipAddress"),
            user_agent=click.get("userAgent"),
            link_clicked=click.get("link"),
            bounce_type=bounce.get("type"),
            bounce_sub_type=bounce.get("subType"),
            bounce_message=bounce.get("message") or failed.get("reason"),
            created_at=occurred_at,
        ))

        counter = COUNTER_BY_EVENT.get(event_type)
        if counter:
            column = getattr(Campaign, counter)
            db.query(Campaign).filter(Campaign.id == campaign.id).update(
                {column: column + 1}, synchronize_session=False
            )

        db.commit()
    except IntegrityError:
        # Concurrent delivery of the same svix-id won the unique constraint
        db.rollback()
        webhook_events_counter.labels(event_type=event_type, outcome="duplicate").inc()
        return {"message": "Duplicate event ignored"}
    except Exception:
        db.rollback()
        webhook_events_counter.labels(event_type=event_type, outcome="error").inc()
        raise

    webhook_logger.info(f"Recorded {event_type} for campaign {campaign.id} (email {email_id})")
    webhook_events_counter.labels(event_type=event_type, outcome="recorded").inc()
    return {"success": True}


def process_event(event: Dict[str, Any], webhook_id: Optional[str], db: Session) -> Dict[str, Any]:
    """Route a verified event to its branch and return the response body"""
    event_type = event["type"]
    webhook_logger.info(f"Resend webhook: {event_type} (svix-id: {webhook_id})")

    if event_type == "email.received":
        return handle_received_email(event, db)

    if event_type.startswith(("contact.", "domain.")):
        webhook_events_counter.labels(event_type=event_type, outcome="ignored").inc()
        return {"message": "Event ignored"}

    return handle_campaign_event(event, webhook_id, db)

