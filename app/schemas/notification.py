from pydantic import BaseModel, field_validator
from datetime import datetime
from typing import Optional


class NotificationOut(BaseModel):
    id: int
    kind: str
    channel: str
    recipient: str
    subject: Optional[str]
    body: str
    status: str
    attempts: int
    error: Optional[str]
    organization_id: Optional[int]
    vendor_id: Optional[int]
    service_request_id: Optional[int]
    job_id: Optional[int]
    is_read: bool
    created_at: datetime
    sent_at: Optional[datetime]

    class Config:
        from_attributes = True


class SmsTestRequest(BaseModel):
    phone: str
    message: str

    @field_validator('phone', 'message', mode='before')
    @classmethod
    def required(cls, v, info):
        if v is None or str(v).strip() == "":
            raise ValueError(f"{info.field_name} is required")
        return str(v).strip()


class SmsTestResult(BaseModel):
    success: bool
    status: str
    notification_id: int
    error: Optional[str] = None
