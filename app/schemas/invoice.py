from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from app.models.enums import InvoiceStatus


class InvoiceCreate(BaseModel):
    service_request_id: int
    amount: Decimal = Field(..., ge=0)
    due_at: Optional[datetime] = None


class InvoiceUpdate(BaseModel):
    status: Optional[InvoiceStatus] = None
    amount: Optional[Decimal] = Field(None, ge=0)
    due_at: Optional[datetime] = None


class InvoiceOut(BaseModel):
    id: int
    invoice_number: str
    service_request_id: int
    organization_id: int
    vendor_id: Optional[int]
    amount: Decimal
    status: str
    due_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True
