from sqlalchemy import Column, String, DateTime, Integer
from sqlalchemy.sql import func
from app.core.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(String, nullable=False, index=True)
    actor_email = Column(String, nullable=True, index=True)
    actor_role = Column(String, nullable=True)
    action = Column(String, nullable=False, index=True)  # dispatched/auto_dispatched/status_changed/accept/...
    entity_type = Column(String, nullable=False, index=True)  # service_request/job
    entity_id = Column(String, nullable=False, index=True)
    source = Column(String, nullable=True, index=True)  # api/system
    status = Column(String, nullable=True, index=True)  # status after the change
    service_request_id = Column(Integer, nullable=True, index=True)
    description = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
