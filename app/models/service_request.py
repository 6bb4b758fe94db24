from sqlalchemy import Column, String, DateTime, Integer, Float, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base


class ServiceRequest(Base):
    __tablename__ = "service_requests"

    id = Column(Integer, primary_key=True, index=True)

    # SR-YYYYMMDD-XXXX
    reference_number = Column(String, nullable=False, unique=True, index=True)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    organization = relationship("Organization", back_populates="service_requests")

    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    property = relationship("Property", back_populates="service_requests")

    description = Column(String, nullable=False)
    category = Column(String, nullable=False, index=True)
    urgency = Column(String, nullable=False, default="MEDIUM")   # LOW/MEDIUM/HIGH/EMERGENCY
    status = Column(String, nullable=False, default="SUBMITTED", index=True)

    # Filled in by the external triage service
    ai_triage_summary = Column(String, nullable=True)
    ai_urgency_score = Column(Float, nullable=True)
    ai_suggested_category = Column(String, nullable=True)

    resolved_at = Column(DateTime(timezone=True), nullable=True)

    # at most one job per request (unique FK on jobs side)
    job = relationship("Job", back_populates="service_request", uselist=False)
    invoice = relationship("Invoice", back_populates="service_request", uselist=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now(), nullable=False)
