from sqlalchemy import Column, String, DateTime, Integer, Float, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)

    # unique: one job per service request, concurrent dispatches collide here
    service_request_id = Column(Integer, ForeignKey("service_requests.id"), nullable=False, unique=True, index=True)
    service_request = relationship("ServiceRequest", back_populates="job")

    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)
    vendor = relationship("Vendor", back_populates="jobs")

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    status = Column(String, nullable=False, default="OFFERED")  # OFFERED/ACCEPTED/EN_ROUTE/IN_PROGRESS/COMPLETED

    # Set by vendor actions, never cleared
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    en_route_at = Column(DateTime(timezone=True), nullable=True)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True, index=True)  # NULL = open job

    vendor_notes = Column(String, nullable=True)
    total_labour_hours = Column(Numeric(10, 2), nullable=True)
    total_materials_cost = Column(Numeric(10, 2), nullable=True)
    total_cost = Column(Numeric(10, 2), nullable=True)

    notes = relationship("JobNote", back_populates="job", order_by="JobNote.created_at", cascade="all, delete-orphan")
    materials = relationship("JobMaterial", back_populates="job", cascade="all, delete-orphan")
    photos = relationship("JobPhoto", back_populates="job", cascade="all, delete-orphan")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now(), nullable=False)


class JobNote(Base):
    __tablename__ = "job_notes"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    job = relationship("Job", back_populates="notes")

    # users live in the identity provider, keep the id/email we got from the token
    author_id = Column(String, nullable=False)
    author_email = Column(String, nullable=True)
    author_role = Column(String, nullable=True)
    text = Column(String, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class JobMaterial(Base):
    __tablename__ = "job_materials"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    job = relationship("Job", back_populates="materials")

    description = Column(String, nullable=False)
    quantity = Column(Numeric(10, 2), nullable=False, default=1)
    unit_cost = Column(Numeric(10, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class JobPhoto(Base):
    __tablename__ = "job_photos"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    job = relationship("Job", back_populates="photos")

    url = Column(String, nullable=False)
    type = Column(String, nullable=False, default="DURING")  # BEFORE/DURING/AFTER
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
