from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional

from app.models.enums import RequestStatus, Urgency
from app.schemas.job import JobDetailOut, JobOut
from app.schemas.property import PropertyOut


class ServiceRequestCreate(BaseModel):
    property_id: int  # REQUIRED - must be one of the operator's properties
    description: str
    category: str     # matched against vendor skills, e.g. "PLUMBING"
    urgency: Urgency = Urgency.MEDIUM

    @field_validator('description', 'category', mode='before')
    @classmethod
    def required_text(cls, v, info):
        if v is None or not isinstance(v, str) or v.strip() == "":
            raise ValueError(f"{info.field_name} is required")
        return v.strip()


class ServiceRequestUpdate(BaseModel):
    """Admin update. ``status`` goes through the transition table, the rest does not."""
    status: Optional[RequestStatus] = None
    urgency: Optional[Urgency] = None
    description: Optional[str] = None
    ai_triage_summary: Optional[str] = None
    ai_urgency_score: Optional[float] = Field(None, ge=0, le=10)
    ai_suggested_category: Optional[str] = None


class DispatchCreate(BaseModel):
    vendor_id: int


class ReconcileResult(BaseModel):
    checked: int
    dispatched: int
    queued_for_manual: int


class ServiceRequestOut(BaseModel):
    id: int
    reference_number: str
    organization_id: int
    property_id: int
    description: str
    category: str
    urgency: str
    status: str
    ai_triage_summary: Optional[str]
    ai_urgency_score: Optional[float]
    ai_suggested_category: Optional[str]
    resolved_at: Optional[datetime]
    job: Optional[JobOut] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ServiceRequestDetailOut(ServiceRequestOut):
    property: Optional[PropertyOut] = None
    job: Optional[JobDetailOut] = None
