"""Contact, segment and topic API routes"""
import logging
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from app.core.security import require_staff, require_staff_csrf
from app.db.session import get_db
from app.models.user import User
from app.schemas.audience import ContactCreate, ContactUpdate, SegmentCreate, TopicCreate
from app.services import audience_service
from app.services.email_service import EmailDeliveryError

router = APIRouter(prefix="/api", tags=["audience"])
logger = logging.getLogger(__name__)


def _http_error(e: ValueError) -> HTTPException:
    message = str(e)
    return HTTPException(404 if "not found" in message.lower() else 400, message)


# --- Contacts ---

@router.get("/contacts")
def search_contacts(
    query: str = Query(""),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(require_staff),
    db: Session = Depends(get_db)
):
    return audience_service.search_contacts(db, query=query, page=page, limit=limit)


@router.post("/contacts")
def create_contact(request_data: ContactCreate, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    try:
        return audience_service.create_contact(request_data.model_dump(), db)
    except ValueError as e:
        raise _http_error(e)


@router.post("/contacts/import")
async def import_contacts(
    file: UploadFile = File(...),
    user: User = Depends(require_staff_csrf),
    db: Session = Depends(get_db)
):
    """Import contacts from a CSV file (email,firstName,lastName)"""
    raw = await file.read()
    try:
        content = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(400, "File must be UTF-8 encoded CSV")
    return audience_service.import_contacts_csv(content, db)


@router.get("/contacts/{contact_id}")
def get_contact(contact_id: int, user: User = Depends(require_staff), db: Session = Depends(get_db)):
    try:
        return audience_service.get_contact(contact_id, db)
    except ValueError as e:
        raise _http_error(e)


@router.patch("/contacts/{contact_id}")
def update_contact(
    contact_id: int,
    request_data: ContactUpdate,
    user: User = Depends(require_staff_csrf),
    db: Session = Depends(get_db)
):
    try:
        return audience_service.update_contact(contact_id, request_data.model_dump(exclude_unset=True), db)
    except ValueError as e:
        raise _http_error(e)
    except EmailDeliveryError as e:
        logger.error(f"Provider update of contact {contact_id} failed: {e}")
        raise HTTPException(502, str(e))


@router.delete("/contacts/{contact_id}")
def delete_contact(contact_id: int, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    try:
        audience_service.delete_contact(contact_id, db)
        return {"success": True}
    except ValueError as e:
        raise _http_error(e)
    except EmailDeliveryError as e:
        logger.error(f"Provider removal of contact {contact_id} failed: {e}")
        raise HTTPException(502, str(e))


# --- Segments ---

@router.get("/segments")
def list_segments(user: User = Depends(require_staff), db: Session = Depends(get_db)):
    return audience_service.list_segments(db)


@router.post("/segments")
def create_segment(request_data: SegmentCreate, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    query = request_data.query.model_dump(exclude_none=True)
    try:
        return audience_service.create_segment(request_data.name, query, db)
    except ValueError as e:
        raise _http_error(e)


# --- Topics ---

@router.get("/topics")
def list_topics(user: User = Depends(require_staff), db: Session = Depends(get_db)):
    return audience_service.list_topics(db)


@router.post("/topics")
def create_topic(request_data: TopicCreate, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    try:
        return audience_service.create_topic(request_data.model_dump(), db)
    except ValueError as e:
        raise _http_error(e)
