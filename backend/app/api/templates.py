"""Email template and folder API routes"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.security import require_staff, require_staff_csrf
from app.db.session import get_db
from app.models.user import User
from app.schemas.templates import FolderRequest, TemplateCreate, TemplateImport, TemplateUpdate, TemplateMove
from app.services import template_service

router = APIRouter(prefix="/api/templates", tags=["templates"])


def _http_error(e: ValueError) -> HTTPException:
    message = str(e)
    return HTTPException(404 if "not found" in message.lower() else 400, message)


# --- Folders ---

@router.get("/folders")
def list_folders(user: User = Depends(require_staff), db: Session = Depends(get_db)):
    return template_service.list_folders(user.id, db)


@router.post("/folders")
def create_folder(request_data: FolderRequest, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    try:
        return template_service.create_folder(user.id, request_data.name, db)
    except ValueError as e:
        raise _http_error(e)


@router.patch("/folders/{folder_id}")
def rename_folder(
    folder_id: int,
    request_data: FolderRequest,
    user: User = Depends(require_staff_csrf),
    db: Session = Depends(get_db)
):
    try:
        return template_service.rename_folder(folder_id, user.id, request_data.name, db)
    except ValueError as e:
        raise _http_error(e)


@router.delete("/folders/{folder_id}")
def delete_folder(folder_id: int, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    """Delete a folder; its templates move back to the root"""
    try:
        template_service.delete_folder(folder_id, user.id, db)
        return {"success": True}
    except ValueError as e:
        raise _http_error(e)


# --- Templates ---

@router.get("")
def list_templates(
    folder_id: Optional[int] = Query(None),
    user: User = Depends(require_staff),
    db: Session = Depends(get_db)
):
    try:
        return template_service.list_templates(user.id, db, folder_id=folder_id)
    except ValueError as e:
        raise _http_error(e)


@router.get("/deleted")
def list_deleted_templates(user: User = Depends(require_staff), db: Session = Depends(get_db)):
    """Trash"""
    return template_service.list_deleted_templates(user.id, db)


@router.post("")
def create_template(request_data: TemplateCreate, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    try:
        return template_service.create_template(user.id, request_data.name, db, folder_id=request_data.folder_id)
    except ValueError as e:
        raise _http_error(e)


@router.post("/import")
def import_template(request_data: TemplateImport, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    """Create a template from raw HTML"""
    try:
        return template_service.import_template(
            user.id, request_data.name, request_data.content, db, folder_id=request_data.folder_id
        )
    except ValueError as e:
        raise _http_error(e)


@router.get("/{template_id}")
def get_template(template_id: int, user: User = Depends(require_staff), db: Session = Depends(get_db)):
    try:
        return template_service.get_template(template_id, user.id, db)
    except ValueError as e:
        raise _http_error(e)


@router.patch("/{template_id}")
def update_template(
    template_id: int,
    request_data: TemplateUpdate,
    user: User = Depends(require_staff_csrf),
    db: Session = Depends(get_db)
):
    try:
        return template_service.update_template(template_id, user.id, request_data.model_dump(exclude_unset=True), db)
    except ValueError as e:
        raise _http_error(e)


@router.delete("/{template_id}")
def delete_template(template_id: int, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    """Move a template to the trash"""
    try:
        template_service.delete_template(template_id, user.id, db)
        return {"success": True}
    except ValueError as e:
        raise _http_error(e)


@router.post("/{template_id}/restore")
def restore_template(template_id: int, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    try:
        template_service.restore_template(template_id, user.id, db)
        return {"success": True}
    except ValueError as e:
        raise _http_error(e)


@router.delete("/{template_id}/permanent")
def permanent_delete_template(template_id: int, user: User = Depends(require_staff_csrf), db: Session = Depends(get_db)):
    try:
        template_service.permanent_delete_template(template_id, user.id, db)
        return {"success": True}
    except ValueError as e:
        raise _http_error(e)


@router.post("/{template_id}/move")
def move_template(
    template_id: int,
    request_data: TemplateMove,
    user: User = Depends(require_staff_csrf),
    db: Session = Depends(get_db)
):
    try:
        return template_service.move_template(template_id, user.id, request_data.folder_id, db)
    except ValueError as e:
        raise _http_error(e)
