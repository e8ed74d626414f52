"""Email log listing"""
import math
from typing import Any, Dict, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.email_log import EmailLog


def list_email_logs(db: Session, page: int = 1, limit: int = 20,
                    status: Optional[str] = None, recipient: Optional[str] = None) -> Dict[str, Any]:
    """Newest log rows first; status "ALL" means no status filter"""
    page = max(page, 1)
    limit = min(max(limit, 1), 100)

    query = db.query(EmailLog)
    if status and status != "ALL":
        query = query.filter(EmailLog.status == status)
    if recipient:
        query = query.filter(func.lower(EmailLog.recipient).like(f"%{recipient.lower()}%"))

    total = query.count()
    rows = query.order_by(EmailLog.created_at.desc(), EmailLog.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "logs": [
            {
                "id": log.id,
                "campaign_id": log.campaign_id,
                "campaign_name": log.campaign.name if log.campaign else None,
                "email_id": log.email_id,
                "recipient": log.recipient,
                "event_type": log.event_type,
                "status": log.status,
                "link_clicked": log.link_clicked,
                "bounce_type": log.bounce_type,
                "bounce_message": log.bounce_message,
                "created_at": log.created_at.isoformat() if log.created_at else None,
            }
            for log in rows
        ],
        "pagination": {"total": total, "pages": math.ceil(total / limit) if total else 0, "page": page, "limit": limit},
    }
