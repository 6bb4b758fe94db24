from datetime import datetime
from typing import Optional

from pydantic import BaseModel, computed_field

from app.core.audit import SYSTEM_ACTOR_ID


class AuditLogOut(BaseModel):
    """One recorded change. ``status`` is the entity's status after the change."""
    id: int
    actor_id: str
    actor_email: Optional[str] = None
    actor_role: Optional[str] = None
    action: str
    entity_type: str   # service_request / job / invoice
    entity_id: str
    source: Optional[str] = None
    status: Optional[str] = None
    service_request_id: Optional[int] = None
    description: Optional[str] = None
    created_at: datetime

    @computed_field
    @property
    def by_system(self) -> bool:
        # auto-dispatch and the reconcile sweep act without a user
        return self.actor_id == SYSTEM_ACTOR_ID

    class Config:
        from_attributes = True
