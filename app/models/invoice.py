from sqlalchemy import Column, String, DateTime, Integer, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)

    # INV-YYYYMMDD-XXXX
    invoice_number = Column(String, nullable=False, unique=True, index=True)

    service_request_id = Column(Integer, ForeignKey("service_requests.id"), nullable=False, unique=True, index=True)
    service_request = relationship("ServiceRequest", back_populates="invoice")

    # billed operator organization, and the vendor that did the work (if any)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True, index=True)

    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String, nullable=False, default="DRAFT")  # DRAFT/SENT/PAID/OVERDUE/CANCELLED
    due_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now(), nullable=False)
