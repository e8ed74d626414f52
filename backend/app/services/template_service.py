"""Email template service - per-user folders and soft-deletable templates"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from app.models.email_template import TemplateFolder, EmailTemplate

logger = logging.getLogger(__name__)


def _serialize_template(template: EmailTemplate) -> Dict[str, Any]:
    return {
        "id": template.id,
        "name": template.name,
        "subject": template.subject,
        "content": template.content,
        "folder_id": template.folder_id,
        "deleted_at": template.deleted_at.isoformat() if template.deleted_at else None,
        "created_at": template.created_at.isoformat() if template.created_at else None,
        "updated_at": template.updated_at.isoformat() if template.updated_at else None,
    }


def _get_folder(folder_id: int, user_id: int, db: Session) -> TemplateFolder:
    folder = db.query(TemplateFolder).filter(TemplateFolder.id == folder_id).first()
    if not folder or folder.user_id != user_id:
        raise ValueError("Folder not found")
    return folder


def _get_template(template_id: int, user_id: int, db: Session) -> EmailTemplate:
    template = db.query(EmailTemplate).filter(EmailTemplate.id == template_id).first()
    if not template or template.user_id != user_id:
        raise ValueError("Template not found")
    return template


def _check_folder(folder_id: Optional[int], user_id: int, db: Session) -> Optional[int]:
    if folder_id is not None:
        _get_folder(folder_id, user_id, db)
    return folder_id


# --- Folders ---

def list_folders(user_id: int, db: Session) -> List[Dict[str, Any]]:
    """Folders newest first, each with its non-deleted templates (most recently updated first)"""
    folders = db.query(TemplateFolder).filter(
        TemplateFolder.user_id == user_id
    ).order_by(TemplateFolder.created_at.desc(), TemplateFolder.id.desc()).all()

    result = []
    for folder in folders:
        templates = sorted(
            (t for t in folder.templates if t.deleted_at is None),
            key=lambda t: t.updated_at,
            reverse=True
        )
        result.append({
            "id": folder.id,
            "name": folder.name,
            "created_at": folder.created_at.isoformat() if folder.created_at else None,
            "template_count": len(folder.templates),
            "templates": [
                {"id": t.id, "name": t.name, "updated_at": t.updated_at.isoformat() if t.updated_at else None}
                for t in templates
            ],
        })
    return result


def create_folder(user_id: int, name: str, db: Session) -> Dict[str, Any]:
    if not name or not name.strip():
        raise ValueError("Folder name is required")
    folder = TemplateFolder(user_id=user_id, name=name.strip())
    db.add(folder)
    db.commit()
    db.refresh(folder)
    return {"id": folder.id, "name": folder.name}


def rename_folder(folder_id: int, user_id: int, name: str, db: Session) -> Dict[str, Any]:
    if not name or not name.strip():
        raise ValueError("Folder name is required")
    folder = _get_folder(folder_id, user_id, db)
    folder.name = name.strip()
    db.commit()
    return {"id": folder.id, "name": folder.name}


def delete_folder(folder_id: int, user_id: int, db: Session) -> None:
    """Delete a folder; its templates are kept and moved out of any folder"""
    folder = _get_folder(folder_id, user_id, db)
    for template in folder.templates:
        template.folder_id = None
    db.delete(folder)
    db.commit()


# --- Templates ---

def list_templates(user_id: int, db: Session, folder_id: Optional[int] = None) -> List[Dict[str, Any]]:
    query = db.query(EmailTemplate).filter(
        EmailTemplate.user_id == user_id,
        EmailTemplate.deleted_at.is_(None)
    )
    if folder_id is not None:
        query = query.filter(EmailTemplate.folder_id == folder_id)
    return [_serialize_template(t) for t in query.order_by(EmailTemplate.updated_at.desc()).all()]


def list_deleted_templates(user_id: int, db: Session) -> List[Dict[str, Any]]:
    templates = db.query(EmailTemplate).filter(
        EmailTemplate.user_id == user_id,
        EmailTemplate.deleted_at.isnot(None)
    ).order_by(EmailTemplate.deleted_at.desc()).all()
    return [_serialize_template(t) for t in templates]


def get_template(template_id: int, user_id: int, db: Session) -> Dict[str, Any]:
    return _serialize_template(_get_template(template_id, user_id, db))


def create_template(user_id: int, name: str, db: Session, folder_id: Optional[int] = None) -> Dict[str, Any]:
    """New empty template"""
    if not name or not name.strip():
        raise ValueError("Template name is required")
    template = EmailTemplate(
        user_id=user_id,
        name=name.strip(),
        subject="Nouvel e-mail",
        content={},
        folder_id=_check_folder(folder_id, user_id, db),
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    return _serialize_template(template)


def import_template(user_id: int, name: str, content: str, db: Session,
                    folder_id: Optional[int] = None) -> Dict[str, Any]:
    """Template from raw HTML/markdown; the name doubles as subject"""
    if not name or not name.strip():
        raise ValueError("Template name is required")
    template = EmailTemplate(
        user_id=user_id,
        name=name.strip(),
        subject=name.strip(),
        content=content,
        folder_id=_check_folder(folder_id, user_id, db),
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    logger.info(f"Template {template.id} imported by user {user_id}")
    return _serialize_template(template)


def update_template(template_id: int, user_id: int, data: Dict[str, Any], db: Session) -> Dict[str, Any]:
    template = _get_template(template_id, user_id, db)
    if "folder_id" in data:
        template.folder_id = _check_folder(data["folder_id"], user_id, db)
    for field in ("name", "subject", "content"):
        if field in data and data[field] is not None:
            setattr(template, field, data[field])
    db.commit()
    db.refresh(template)
    return _serialize_template(template)


def delete_template(template_id: int, user_id: int, db: Session) -> None:
    """Soft delete (recoverable through restore_template)"""
    template = _get_template(template_id, user_id, db)
    template.deleted_at = datetime.now(timezone.utc)
    db.commit()


def restore_template(template_id: int, user_id: int, db: Session) -> None:
    template = _get_template(template_id, user_id, db)
    template.deleted_at = None
    db.commit()


def permanent_delete_template(template_id: int, user_id: int, db: Session) -> None:
    template = _get_template(template_id, user_id, db)
    db.delete(template)
    db.commit()


def move_template(template_id: int, user_id: int, folder_id: Optional[int], db: Session) -> Dict[str, Any]:
    template = _get_template(template_id, user_id, db)
    template.folder_id = _check_folder(folder_id, user_id, db)
    db.commit()
    db.refresh(template)
    return _serialize_template(template)
