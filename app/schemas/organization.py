from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Optional

from app.models.enums import OrganizationType


class OrganizationCreate(BaseModel):
    name: str
    type: OrganizationType = OrganizationType.OPERATOR
    email: Optional[str] = None
    contact_email: Optional[str] = None   # used for operator notifications, falls back to email
    contact_phone: Optional[str] = None

    @field_validator('name', mode='before')
    @classmethod
    def strip_name(cls, v):
        if isinstance(v, str):
            v = v.strip()
            if not v:
                raise ValueError("name is required")
        return v


class OrganizationUpdate(BaseModel):
    # type is intentionally absent, it is fixed at creation
    name: Optional[str] = None
    email: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None


class OrganizationOut(BaseModel):
    id: int
    name: str
    type: str
    email: Optional[str]
    contact_email: Optional[str]
    contact_phone: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
