"""Settings API routes (sending domains at the email provider)"""
import logging
from fastapi import APIRouter, Depends, HTTPException

from app.core.security import require_admin, require_admin_get
from app.models.user import User
from app.schemas.messaging import DomainCreate
from app.services import email_service
from app.services.email_service import EmailDeliveryError

router = APIRouter(prefix="/api/settings", tags=["settings"])
logger = logging.getLogger(__name__)


def _provider_error(e: EmailDeliveryError) -> HTTPException:
    logger.error(f"Domain operation failed: {e}")
    return HTTPException(502, str(e))


@router.get("/domains")
def list_domains(admin_user: User = Depends(require_admin_get)):
    try:
        return {"domains": email_service.list_domains()}
    except EmailDeliveryError as e:
        raise _provider_error(e)


@router.post("/domains")
def create_domain(request_data: DomainCreate, admin_user: User = Depends(require_admin)):
    try:
        return email_service.create_domain(request_data.name.strip().lower())
    except EmailDeliveryError as e:
        raise _provider_error(e)


@router.get("/domains/{domain_id}")
def get_domain(domain_id: str, admin_user: User = Depends(require_admin_get)):
    """Domain with its DNS records"""
    try:
        return email_service.get_domain(domain_id)
    except EmailDeliveryError as e:
        raise _provider_error(e)


@router.post("/domains/{domain_id}/verify")
def verify_domain(domain_id: str, admin_user: User = Depends(require_admin)):
    try:
        return email_service.verify_domain(domain_id)
    except EmailDeliveryError as e:
        raise _provider_error(e)


@router.delete("/domains/{domain_id}")
def delete_domain(domain_id: str, admin_user: User = Depends(require_admin)):
    try:
        return email_service.delete_domain(domain_id)
    except EmailDeliveryError as e:
        raise _provider_error(e)
