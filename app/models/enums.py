"""
Closed value sets for the string columns.

Columns persist ``.value``; anything read back from the database or a request
body goes through these enums before it is trusted.
"""
from enum import Enum
from typing import Dict, FrozenSet


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    OPERATOR = "OPERATOR"
    VENDOR = "VENDOR"


class OrganizationType(str, Enum):
    OPERATOR = "OPERATOR"
    VENDOR = "VENDOR"
    ADMIN = "ADMIN"


class Urgency(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EMERGENCY = "EMERGENCY"


class RequestStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    TRIAGING = "TRIAGING"
    NEEDS_CLARIFICATION = "NEEDS_CLARIFICATION"
    READY_TO_DISPATCH = "READY_TO_DISPATCH"
    DISPATCHED = "DISPATCHED"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    VERIFIED = "VERIFIED"
    CANCELLED = "CANCELLED"


class JobStatus(str, Enum):
    OFFERED = "OFFERED"
    ACCEPTED = "ACCEPTED"
    EN_ROUTE = "EN_ROUTE"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class JobAction(str, Enum):
    ACCEPT = "accept"
    ENROUTE = "enroute"
    ARRIVE = "arrive"
    COMPLETE = "complete"


class JobPhotoType(str, Enum):
    BEFORE = "BEFORE"
    DURING = "DURING"
    AFTER = "AFTER"


class CredentialType(str, Enum):
    TRADE_LICENSE = "TRADE_LICENSE"
    WSIB = "WSIB"
    INSURANCE_COI = "INSURANCE_COI"
    BUSINESS_LICENSE = "BUSINESS_LICENSE"
    OTHER = "OTHER"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class NotificationKind(str, Enum):
    VENDOR_DISPATCH = "vendor_dispatch"
    STATUS_UPDATE = "status_update"
    JOB_COMPLETION = "job_completion"
    TEST = "test"


class NotificationChannel(str, Enum):
    SMS = "sms"
    EMAIL = "email"


class NotificationStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


# Admin-driven request status edges. Anything not listed here is rejected.
REQUEST_TRANSITIONS: Dict[RequestStatus, tuple] = {
    RequestStatus.SUBMITTED: (
        RequestStatus.TRIAGING,
        RequestStatus.NEEDS_CLARIFICATION,
        RequestStatus.READY_TO_DISPATCH,
        RequestStatus.CANCELLED,
    ),
    RequestStatus.TRIAGING: (
        RequestStatus.NEEDS_CLARIFICATION,
        RequestStatus.READY_TO_DISPATCH,
        RequestStatus.CANCELLED,
    ),
    RequestStatus.NEEDS_CLARIFICATION: (
        RequestStatus.TRIAGING,
        RequestStatus.READY_TO_DISPATCH,
        RequestStatus.CANCELLED,
    ),
    RequestStatus.READY_TO_DISPATCH: (RequestStatus.DISPATCHED, RequestStatus.CANCELLED),
    RequestStatus.DISPATCHED: (
        RequestStatus.ACCEPTED,
        RequestStatus.READY_TO_DISPATCH,
        RequestStatus.CANCELLED,
    ),
    RequestStatus.ACCEPTED: (
        RequestStatus.IN_PROGRESS,
        RequestStatus.READY_TO_DISPATCH,
        RequestStatus.CANCELLED,
    ),
    RequestStatus.IN_PROGRESS: (RequestStatus.COMPLETED, RequestStatus.CANCELLED),
    RequestStatus.COMPLETED: (RequestStatus.VERIFIED,),
    RequestStatus.VERIFIED: (),
    RequestStatus.CANCELLED: (),
}

TERMINAL_REQUEST_STATUSES: FrozenSet[RequestStatus] = frozenset(
    s for s, targets in REQUEST_TRANSITIONS.items() if not targets
)

# A request with a job may only sit in one of these
REQUEST_STATUSES_WITH_JOB: FrozenSet[RequestStatus] = frozenset({
    RequestStatus.DISPATCHED,
    RequestStatus.ACCEPTED,
    RequestStatus.IN_PROGRESS,
    RequestStatus.COMPLETED,
    RequestStatus.VERIFIED,
    RequestStatus.CANCELLED,
})
