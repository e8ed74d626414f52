"""Resend webhook endpoint"""
import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.services.webhook_service import (
    verify_webhook, process_event, WebhookConfigError, WebhookSignatureError
)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)


@router.post("/resend")
async def resend_webhook(request: Request, db: Session = Depends(get_db)):
    """Handle Resend webhook events (signed with svix)

    200 acknowledges the delivery (including ignored events), 400 rejects a
    missing or invalid signature, 500 asks the provider to retry.
    """
    payload = await request.body()

    try:
        event = verify_webhook(payload, request.headers)
    except WebhookConfigError:
        logger.error("Missing RESEND_WEBHOOK_SECRET")
        return JSONResponse({"error": "Server configuration error"}, status_code=500)
    except WebhookSignatureError as e:
        logger.warning(f"Rejected Resend webhook: {e}")
        return JSONResponse({"error": "Invalid webhook signature"}, status_code=400)

    try:
        return process_event(event, request.headers.get("svix-id"), db)
    except Exception as e:
        db.rollback()
        logger.error(f"Error processing Resend webhook: {e}", exc_info=True)
        return JSONResponse({"error": "Internal Server Error"}, status_code=500)
