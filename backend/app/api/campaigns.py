"""Campaign API routes"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.security import require_staff, require_staff_csrf
from app.db.session import get_db
from app.models.user import User
from app.schemas.campaigns import CampaignCreate, CampaignUpdate, SendCampaignRequest, BulkCampaignRequest
from app.services import campaign_service

router = APIRouter(prefix="/api/campaigns", tags=["campaigns"])
logger = logging.getLogger(__name__)


def _http_error(e: ValueError) -> HTTPException:
    message = str(e)
    return HTTPException(404 if "not found" in message.lower() else 400, message)


@router.get("")
def list_campaigns(
    status: Optional[str] = Query(None),
    user: User = Depends(require_staff),
    db: Session = Depends(get_db)
):
    """Campaigns of the current user"""
    return campaign_service.list_campaigns(user.id, db, status=status)


@router.post("")
def create_campaign(request_data: CampaignCreate, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    """Create a draft campaign (optionally targeting an event's confirmed bookings)"""
    data = request_data.model_dump(exclude_unset=True, exclude={"event_id"})
    try:
        return campaign_service.create_campaign(user.id, data, db, event_id=request_data.event_id)
    except ValueError as e:
        raise _http_error(e)


@router.get("/stats/global")
def global_stats(user: User = Depends(require_staff), db: Session = Depends(get_db)):
    return campaign_service.get_global_email_stats(user.id, db)


@router.post("/bulk-delete")
def bulk_delete(request_data: BulkCampaignRequest, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    return {"deleted": campaign_service.bulk_delete_campaigns(request_data.campaign_ids, user.id, db)}


@router.post("/bulk-archive")
def bulk_archive(request_data: BulkCampaignRequest, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    return {"archived": campaign_service.bulk_archive_campaigns(request_data.campaign_ids, user.id, db)}


@router.get("/{campaign_id}")
def get_campaign(campaign_id: int, user: User = Depends(require_staff), db: Session = Depends(get_db)):
    try:
        return campaign_service.get_campaign(campaign_id, user.id, db)
    except ValueError as e:
        raise _http_error(e)


@router.patch("/{campaign_id}")
def update_campaign(
    campaign_id: int,
    request_data: CampaignUpdate,
    user: User = Depends(require_staff_csrf),
    db: Session = Depends(get_db)
):
    try:
        return campaign_service.update_campaign(campaign_id, user.id, request_data.model_dump(exclude_unset=True), db)
    except ValueError as e:
        raise _http_error(e)


@router.delete("/{campaign_id}")
def delete_campaign(campaign_id: int, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    try:
        campaign_service.delete_campaign(campaign_id, user.id, db)
        return {"success": True}
    except ValueError as e:
        raise _http_error(e)


@router.post("/{campaign_id}/archive")
def archive_campaign(campaign_id: int, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    try:
        return campaign_service.archive_campaign(campaign_id, user.id, db)
    except ValueError as e:
        raise _http_error(e)


@router.get("/{campaign_id}/audience")
def campaign_audience(campaign_id: int, user: User = Depends(require_staff), db: Session = Depends(get_db)):
    """Addresses the campaign would be sent to right now"""
    try:
        recipients = campaign_service.get_campaign_audience(campaign_id, user.id, db)
        return {"recipients": recipients, "count": len(recipients)}
    except ValueError as e:
        raise _http_error(e)


@router.post("/{campaign_id}/send")
def send_campaign(
    campaign_id: int,
    request_data: Optional[SendCampaignRequest] = None,
    user: User = Depends(require_staff_csrf),
    db: Session = Depends(get_db)
):
    """Send now, or schedule when scheduled_at is given"""
    scheduled_at = request_data.scheduled_at if request_data else None
    try:
        return campaign_service.send_campaign(campaign_id, user.id, db, scheduled_at=scheduled_at)
    except ValueError as e:
        raise _http_error(e)


@router.post("/{campaign_id}/sync-stats")
def sync_stats(campaign_id: int, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    """Recount sent/open/click from the provider"""
    try:
        return campaign_service.sync_campaign_stats(campaign_id, user.id, db)
    except ValueError as e:
        raise _http_error(e)


@router.get("/{campaign_id}/booking-stats")
def booking_stats(campaign_id: int, user: User = Depends(require_staff), db: Session = Depends(get_db)):
    try:
        return campaign_service.get_campaign_booking_stats(campaign_id, user.id, db)
    except ValueError as e:
        raise _http_error(e)


@router.get("/{campaign_id}/email-stats")
def email_stats(campaign_id: int, user: User = Depends(require_staff), db: Session = Depends(get_db)):
    """Per-day webhook event counts"""
    try:
        return campaign_service.get_campaign_email_series(campaign_id, user.id, db)
    except ValueError as e:
        raise _http_error(e)
