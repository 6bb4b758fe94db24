from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)

    company_name = Column(String, nullable=False)
    contact_name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    phone = Column(String, nullable=False)
    address = Column(String, nullable=True)
    service_area = Column(String, nullable=True)
    service_radius_km = Column(Integer, nullable=True)

    # inactive vendors are never picked by auto-dispatch
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    skills = relationship("VendorSkill", back_populates="vendor", cascade="all, delete-orphan")
    credentials = relationship("VendorCredential", back_populates="vendor", cascade="all, delete-orphan")
    jobs = relationship("Job", back_populates="vendor")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now(), nullable=False)


class VendorSkill(Base):
    __tablename__ = "vendor_skills"
    __table_args__ = (UniqueConstraint("vendor_id", "category", name="uq_vendor_skills_vendor_category"),)

    id = Column(Integer, primary_key=True, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True)
    vendor = relationship("Vendor", back_populates="skills")

    # stored as entered ("Plumbing", "Snow Removal"); compared normalized
    category = Column(String, nullable=False)


class VendorCredential(Base):
    __tablename__ = "vendor_credentials"

    id = Column(Integer, primary_key=True, index=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True)
    vendor = relationship("Vendor", back_populates="credentials")

    type = Column(String, nullable=False)  # TRADE_LICENSE / WSIB / INSURANCE_COI / BUSINESS_LICENSE / OTHER
    credential_number = Column(String, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    verified = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
