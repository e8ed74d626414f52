"""Email service - outgoing email, provider contacts and domains through the Resend SDK"""
import html
import logging
from typing import Optional, Dict, Any, List
import resend

from app.core.config import settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when the provider rejects or fails an outgoing email"""


def validate_email_config() -> tuple[bool, str]:
    """
    Validate email service configuration.

    Returns:
        tuple: (is_valid, error_message)
    """
    if not settings.RESEND_API_KEY:
        return False, "RESEND_API_KEY is not set in environment variables"

    if not settings.RESEND_WEBHOOK_SECRET:
        return False, "RESEND_WEBHOOK_SECRET is not set in environment variables"

    return True, ""


def _configure() -> None:
    if not settings.RESEND_API_KEY:
        raise EmailDeliveryError("RESEND_API_KEY is not set")
    resend.api_key = settings.RESEND_API_KEY


def _response_id(response: Any) -> Optional[str]:
    """Resend returns a dict with 'id' on success; older clients return an object"""
    if isinstance(response, dict):
        return response.get('id')
    return getattr(response, 'id', None)


def deliver_email(params: Dict[str, Any]) -> str:
    """Send one email and return the provider email id

    Raises:
        EmailDeliveryError: If the provider call fails or returns no id
    """
    _configure()
    params = {"from": settings.EMAIL_FROM, **params}

    try:
        response = resend.Emails.send(params)
    except Exception as exc:
        raise EmailDeliveryError(f"Failed to send email to {params.get('to')}: {exc}") from exc

    email_id = _response_id(response)
    if not email_id:
        raise EmailDeliveryError(f"Email send returned invalid response: {response} (type: {type(response)})")

    logger.info(f"Email sent successfully to {params.get('to')} (id: {email_id})")
    return email_id


def send_email(to: str, subject: str, html_body: str, **extra) -> bool:
    """
    Best-effort send: failures are logged, never raised.

    Returns:
        bool: True on success, False on failure
    """
    try:
        deliver_email({"to": to, "subject": subject, "html": html_body, **extra})
        return True
    except EmailDeliveryError as exc:
        logger.error(str(exc), exc_info=True)
        return False


def forward_received_email(
    from_address: str,
    to: List[str],
    subject: Optional[str],
    body_html: Optional[str],
    body_text: Optional[str],
    attachments: List[Dict[str, Any]]
) -> bool:
    """Forward an inbound email to EMAIL_FORWARD_TO with its attachments re-attached

    Args:
        attachments: [{"filename": str, "content": bytes}]

    Returns:
        bool: True when forwarded, False when forwarding is disabled or failed
    """
    forward_to = settings.EMAIL_FORWARD_TO
    if not forward_to:
        return False

    body = body_html or f"<pre>{html.escape(body_text or '')}</pre>"
    forwarded_html = f"""
    <p><strong>De:</strong> {html.escape(from_address or '')}</p>
    <p><strong>À:</strong> {html.escape(", ".join(to or []))}</p>
    <p><strong>Sujet:</strong> {html.escape(subject or '')}</p>
    <hr />
    {body}
    """

    sent = send_email(
        forward_to,
        f"Fwd: {subject or ''}",
        forwarded_html,
        reply_to=from_address,
        attachments=[
            {"filename": a["filename"], "content": list(a["content"])}
            for a in attachments
        ],
    )
    if sent:
        logger.info(f"Email forwarded to {forward_to}")
    return sent


def send_invitation_email(email: str, name: Optional[str], role: str, token: str) -> bool:
    """Invite a new staff member to choose a password"""
    setup_link = f"{settings.FRONTEND_URL}/reset-password?token={token}"
    greeting = f"Bonjour {html.escape(name)}," if name else "Bonjour,"
    html_body = f"""
    <p>{greeting}</p>
    <p>Vous avez été invité(e) sur l'espace d'administration avec le rôle <strong>{html.escape(role)}</strong>.</p>
    <p>Ce lien expire dans 3 jours.</p>
    <p><a href="{setup_link}" target="_blank" rel="noopener noreferrer">Choisir mon mot de passe</a></p>
    """
    return send_email(email, "Invitation à l'espace d'administration", html_body)


# --- Provider contacts ---

def _audience_params() -> Dict[str, Any]:
    return {"audience_id": settings.RESEND_AUDIENCE_ID} if settings.RESEND_AUDIENCE_ID else {}


def create_provider_contact(
    email: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    unsubscribed: bool = False
) -> Optional[str]:
    """Create the contact at the provider; returns its id or None (failures are logged)"""
    try:
        _configure()
        response = resend.Contacts.create({
            **_audience_params(),
            "email": email,
            "first_name": first_name,
            "last_name": last_name,
            "unsubscribed": unsubscribed,
        })
        return _response_id(response)
    except Exception as exc:
        logger.error(f"Resend create contact error for {email}: {exc}", exc_info=True)
        return None


def update_provider_contact(resend_id: str, **fields) -> None:
    """Update the provider copy of a contact

    Raises:
        EmailDeliveryError: If the provider call fails
    """
    _configure()
    params = {**_audience_params(), "id": resend_id}
    params.update({k: v for k, v in fields.items() if v is not None})
    try:
        resend.Contacts.update(params)
    except Exception as exc:
        raise EmailDeliveryError(f"Resend update contact error for {resend_id}: {exc}") from exc


def remove_provider_contact(resend_id: str) -> None:
    """Delete the provider copy of a contact

    Raises:
        EmailDeliveryError: If the provider call fails
    """
    _configure()
    try:
        resend.Contacts.remove(id=resend_id, **_audience_params())
    except Exception as exc:
        raise EmailDeliveryError(f"Resend remove contact error for {resend_id}: {exc}") from exc


# --- Sending domains ---

def _domains_call(action: str, *args):
    _configure()
    try:
        return getattr(resend.Domains, action)(*args)
    except Exception as exc:
        raise EmailDeliveryError(f"Resend domains.{action} failed: {exc}") from exc


def list_domains() -> List[Dict[str, Any]]:
    response = _domains_call("list")
    return response.get("data", []) if isinstance(response, dict) else response


def create_domain(name: str) -> Dict[str, Any]:
    return _domains_call("create", {"name": name})


def get_domain(domain_id: str) -> Dict[str, Any]:
    return _domains_call("get", domain_id)


def verify_domain(domain_id: str) -> Dict[str, Any]:
    return _domains_call("verify", domain_id)


def delete_domain(domain_id: str) -> Dict[str, Any]:
    return _domains_call("remove", domain_id)
