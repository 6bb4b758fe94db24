from pydantic import BaseModel, field_validator
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional, Union

from app.models.enums import JobAction, JobPhotoType
from app.schemas.vendor import VendorSummaryOut


class JobUpdate(BaseModel):
    action: Optional[JobAction] = None  # accept / enroute / arrive / complete
    vendor_notes: Optional[str] = None
    total_labour_hours: Optional[Decimal] = None
    total_materials_cost: Optional[Decimal] = None
    total_cost: Optional[Decimal] = None


class JobNoteCreate(BaseModel):
    type: Literal["note"]
    text: str

    @field_validator('text', mode='before')
    @classmethod
    def text_required(cls, v):
        if v is None or str(v).strip() == "":
            raise ValueError("text is required for note type")
        return v


class JobMaterialCreate(BaseModel):
    type: Literal["material"]
    description: str
    quantity: Decimal = Decimal("1")
    unit_cost: Decimal = Decimal("0")

    @field_validator('description', mode='before')
    @classmethod
    def description_required(cls, v):
        if v is None or str(v).strip() == "":
            raise ValueError("description is required for material type")
        return v


class JobPhotoCreate(BaseModel):
    type: Literal["photo"]
    url: str
    photo_type: JobPhotoType = JobPhotoType.DURING
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @field_validator('url', mode='before')
    @classmethod
    def url_required(cls, v):
        if v is None or str(v).strip() == "":
            raise ValueError("url is required for photo type")
        return v


# POST /jobs/{id} body, picked by "type"
JobAppendCreate = Union[JobNoteCreate, JobMaterialCreate, JobPhotoCreate]


class JobNoteOut(BaseModel):
    id: int
    job_id: int
    author_id: str
    author_email: Optional[str]
    author_role: Optional[str]
    text: str
    created_at: datetime

    class Config:
        from_attributes = True


class JobMaterialOut(BaseModel):
    id: int
    job_id: int
    description: str
    quantity: Decimal
    unit_cost: Decimal
    created_at: datetime

    class Config:
        from_attributes = True


class JobPhotoOut(BaseModel):
    id: int
    job_id: int
    url: str
    type: str
    latitude: Optional[float]
    longitude: Optional[float]
    created_at: datetime

    class Config:
        from_attributes = True


class JobOut(BaseModel):
    id: int
    service_request_id: int
    vendor_id: int
    organization_id: int
    status: str
    accepted_at: Optional[datetime]
    en_route_at: Optional[datetime]
    arrived_at: Optional[datetime]
    completed_at: Optional[datetime]
    vendor_notes: Optional[str]
    total_labour_hours: Optional[Decimal]
    total_materials_cost: Optional[Decimal]
    total_cost: Optional[Decimal]
    vendor: Optional[VendorSummaryOut] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class JobDetailOut(JobOut):
    notes: List[JobNoteOut] = []
    materials: List[JobMaterialOut] = []
    photos: List[JobPhotoOut] = []
