"""Resend REST API helpers for endpoints not wrapped by the resend SDK (receiving, email listing)"""
import logging
from typing import Any, Dict, List, Optional
import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


class ResendAPIError(Exception):
    """Raised when the Resend API answers with an error"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _request(method: str, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    if not settings.RESEND_API_KEY:
        raise ResendAPIError("RESEND_API_KEY is not set")

    url = f"{settings.RESEND_API_BASE.rstrip('/')}{path}"
    try:
        response = httpx.request(
            method,
            url,
            params={k: v for k, v in (params or {}).items() if v is not None},
            headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
            timeout=settings.RESEND_API_TIMEOUT
        )
    except httpx.RequestError as e:
        raise ResendAPIError(f"Request to {path} failed: {e}") from e

    if response.status_code >= 400:
        try:
            message = response.json().get("message", response.text)
        except ValueError:
            message = response.text
        raise ResendAPIError(f"Resend API {response.status_code} on {path}: {message}", response.status_code)

    return response.json()


def get_received_email(email_id: str) -> Dict[str, Any]:
    """Full content (text, html, headers) of an inbound email"""
    return _request("GET", f"/emails/receiving/{email_id}")


def list_received_attachments(email_id: str) -> List[Dict[str, Any]]:
    """Attachments of an inbound email, each with a temporary download_url"""
    payload = _request("GET", f"/emails/receiving/{email_id}/attachments")
    return payload.get("data", []) if isinstance(payload, dict) else payload


def list_emails(limit: int = 100, after: Optional[str] = None) -> Dict[str, Any]:
    """One page of sent emails: {"data": [...], "has_more": bool}"""
    return _request("GET", "/emails", params={"limit": limit, "after": after})
