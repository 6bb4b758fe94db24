from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime


def _required_text(v, field: str):
    if v is None or not isinstance(v, str) or v.strip() == "":
        raise ValueError(f"{field} is required")
    return v.strip()


class PropertyCreate(BaseModel):
    name: str
    address: str
    description: Optional[str] = None

    @field_validator('name', mode='before')
    @classmethod
    def validate_name(cls, v):
        return _required_text(v, "name")

    @field_validator('address', mode='before')
    @classmethod
    def validate_address(cls, v):
        return _required_text(v, "address")

    @field_validator('description', mode='before')
    @classmethod
    def blank_description_to_none(cls, v):
        if isinstance(v, str):
            return v.strip() or None
        return v


class PropertyUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator('name', 'address', mode='before')
    @classmethod
    def not_blank(cls, v, info):
        if v is None:
            return v
        return _required_text(v, info.field_name)


class PropertyOut(BaseModel):
    id: int
    organization_id: int
    name: str
    address: str
    description: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
