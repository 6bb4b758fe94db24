from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import List, Optional

from app.models.enums import CredentialType


class VendorSkillOut(BaseModel):
    id: int
    category: str

    class Config:
        from_attributes = True


class VendorCredentialCreate(BaseModel):
    type: CredentialType
    credential_number: str
    expires_at: Optional[datetime] = None

    @field_validator('credential_number', mode='before')
    @classmethod
    def credential_number_required(cls, v):
        if v is None or str(v).strip() == "":
            raise ValueError("credential_number is required")
        return str(v).strip()


class VendorCredentialOut(BaseModel):
    id: int
    vendor_id: int
    type: str
    credential_number: str
    expires_at: Optional[datetime]
    verified: bool
    created_at: datetime

    class Config:
        from_attributes = True


class VendorCreate(BaseModel):
    company_name: str
    contact_name: str
    email: str
    phone: str
    address: Optional[str] = None
    service_area: Optional[str] = None
    skills: List[str] = []  # service categories, e.g. ["Plumbing", "HVAC"]

    @field_validator('company_name', 'contact_name', 'email', 'phone', mode='before')
    @classmethod
    def required_strings(cls, v, info):
        if v is None or str(v).strip() == "":
            raise ValueError(f"{info.field_name} is required")
        return str(v).strip()

    @field_validator('email')
    @classmethod
    def lower_email(cls, v):
        return v.lower()


class VendorUpdate(BaseModel):
    company_name: Optional[str] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    service_area: Optional[str] = None
    service_radius_km: Optional[int] = None
    is_active: Optional[bool] = None  # admin only, checked in the route

    @field_validator('company_name', 'contact_name', 'phone', mode='before')
    @classmethod
    def strip_strings(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator('service_radius_km')
    @classmethod
    def radius_must_be_positive(cls, v):
        if v is not None and v <= 0:
            raise ValueError("service_radius_km must be positive")
        return v


class VendorSkillsUpdate(BaseModel):
    skills: List[str]


class VendorOut(BaseModel):
    id: int
    company_name: str
    contact_name: str
    email: str
    phone: str
    address: Optional[str]
    service_area: Optional[str]
    service_radius_km: Optional[int]
    is_active: bool
    skills: List[VendorSkillOut] = []
    jobs_count: int = 0        # all jobs ever assigned
    open_jobs_count: int = 0   # jobs with completed_at IS NULL
    created_at: datetime

    class Config:
        from_attributes = True


class VendorDetailOut(VendorOut):
    credentials: List[VendorCredentialOut] = []


class VendorSummaryOut(BaseModel):
    id: int
    company_name: str
    phone: str
    email: str

    class Config:
        from_attributes = True
