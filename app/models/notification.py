from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey
from sqlalchemy.sql import func
from app.core.database import Base


class Notification(Base):
    """One outbound message (SMS or email). Doubles as the delivery outbox."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)

    kind = Column(String, nullable=False, index=True)     # vendor_dispatch/status_update/job_completion/test
    channel = Column(String, nullable=False)               # sms/email
    recipient = Column(String, nullable=False)
    subject = Column(String, nullable=True)
    body = Column(String, nullable=False)

    status = Column(String, nullable=False, default="PENDING", index=True)  # PENDING/SENT/FAILED/SKIPPED
    attempts = Column(Integer, nullable=False, default=0)
    error = Column(String, nullable=True)
    provider_id = Column(String, nullable=True)  # Twilio SID / SMTP message id

    # who it is for; one of these is set
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True, index=True)

    service_request_id = Column(Integer, ForeignKey("service_requests.id"), nullable=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True, index=True)

    is_read = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
