"""Public unsubscribe and preference-center routes (no login)"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.audience import PreferencesUpdate
from app.services import audience_service

router = APIRouter(prefix="/api", tags=["unsubscribe"])


@router.post("/unsubscribe")
def one_click_unsubscribe(email: Optional[str] = Query(None), db: Session = Depends(get_db)):
    """RFC 8058 one-click target from the List-Unsubscribe-Post header"""
    if not email:
        raise HTTPException(400, "Email required")
    audience_service.unsubscribe(email, db)
    return {"success": True}


@router.get("/public/preferences")
def get_preferences(email: Optional[str] = Query(None), db: Session = Depends(get_db)):
    if not email:
        raise HTTPException(400, "Email required")
    return audience_service.get_preferences(email, db)


@router.patch("/public/preferences")
def update_preferences(request_data: PreferencesUpdate, db: Session = Depends(get_db)):
    try:
        audience_service.update_preferences(
            request_data.email, request_data.unsubscribed, request_data.topic_ids, db
        )
    except ValueError as e:
        message = str(e)
        raise HTTPException(404 if "not found" in message.lower() else 400, message)
    return {"success": True}
