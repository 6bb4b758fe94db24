from typing import Optional

from sqlalchemy.orm import Session

from app.core.auth import User
from app.models.audit_log import AuditLog

SYSTEM_ACTOR_ID = "system"


def log_audit(
    db: Session,
    *,
    actor: Optional[User],
    action: str,
    entity_type: str,
    entity_id,
    source: str = "api",
    status: Optional[str] = None,
    service_request_id: Optional[int] = None,
    description: Optional[str] = None,
) -> AuditLog:
    """
    Stage an audit row in the caller's session.

    Not committed here: the row lands in the same transaction as the change
    it describes, so a rolled-back dispatch leaves no audit entry behind.
    ``actor=None`` records the change as made by the system (auto-dispatch).
    """
    log = AuditLog(
        actor_id=actor.id if actor else SYSTEM_ACTOR_ID,
        actor_email=actor.email if actor else None,
        actor_role=actor.role if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        source=source if actor else "system",
        status=status,
        service_request_id=service_request_id,
        description=description,
    )
    db.add(log)
    return log
