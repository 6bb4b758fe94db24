from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.core.auth import require_role, User
from app.core.errors import ValidationError
from app.models.audit_log import AuditLog
from app.models.enums import UserRole
from app.schemas.audit_log import AuditLogOut

router = APIRouter(prefix="/audit-logs", tags=["audit-logs"])


def _parse_dt(value: str, name: str) -> datetime:
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date-time")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@router.get("", response_model=List[AuditLogOut])
def list_audit_logs(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    start_date: Optional[str] = Query(None, description="ISO date-time"),
    end_date: Optional[str] = Query(None, description="ISO date-time"),
    actor: Optional[str] = Query(None, description="Filter by actor email"),
    entity_type: Optional[str] = Query(None, description="service_request|job|invoice"),
    entity_id: Optional[str] = Query(None),
    service_request_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None),
    source: Optional[str] = Query(None, description="api|system"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    q = db.query(AuditLog)

    if start_date:
        q = q.filter(AuditLog.created_at >= _parse_dt(start_date, "start_date"))
    if end_date:
        q = q.filter(AuditLog.created_at <= _parse_dt(end_date, "end_date"))
    if actor:
        q = q.filter(AuditLog.actor_email == actor)
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        q = q.filter(AuditLog.entity_id == entity_id)
    if service_request_id is not None:
        q = q.filter(AuditLog.service_request_id == service_request_id)
    if action:
        q = q.filter(AuditLog.action == action)
    if source:
        q = q.filter(AuditLog.source == source)

    return q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(offset).limit(limit).all()
