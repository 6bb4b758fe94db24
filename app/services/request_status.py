"""
Admin-driven service request status changes.

Every status change goes through ``REQUEST_TRANSITIONS``. Non-status fields
(urgency, description, triage output) are updated without any gating. Job
actions move the request forward on their own (see ``job_lifecycle``); both
paths may write the status, which keeps admin overrides such as CANCELLED
possible at any open stage. Either path stamps ``resolved_at`` the first time
the request reaches COMPLETED.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Tuple

from sqlalchemy.orm import Session

from app.core.audit import log_audit
from app.core.auth import User
from app.core.errors import InvalidState, InvalidTransition, NotFound
from app.models.enums import REQUEST_STATUSES_WITH_JOB, REQUEST_TRANSITIONS, RequestStatus
from app.models.job import Job
from app.models.service_request import ServiceRequest
from app.schemas.service_request import ServiceRequestUpdate

logger = logging.getLogger(__name__)


def request_status_of(sr: ServiceRequest) -> RequestStatus:
    """Parse the stored status string; unknown values are never trusted."""
    try:
        return RequestStatus(sr.status)
    except ValueError:
        raise InvalidState(f"Service request {sr.id} has unknown status '{sr.status}'")


def allowed_transitions(current: RequestStatus) -> Tuple[RequestStatus, ...]:
    return REQUEST_TRANSITIONS.get(current, ())


def check_transition(current: RequestStatus, requested: RequestStatus) -> None:
    allowed = allowed_transitions(current)
    if requested not in allowed:
        raise InvalidTransition(current.value, requested.value, [s.value for s in allowed])


def _apply_status(db: Session, sr: ServiceRequest, requested: RequestStatus, actor: User, action: str) -> None:
    current = request_status_of(sr)
    check_transition(current, requested)

    # a request that already has a job cannot go back to a pre-dispatch state
    if requested not in REQUEST_STATUSES_WITH_JOB:
        has_job = db.query(Job.id).filter(Job.service_request_id == sr.id).first() is not None
        if has_job:
            raise InvalidState(
                f"Request {sr.reference_number} already has a job; it cannot return to {requested.value}"
            )

    sr.status = requested.value
    if requested == RequestStatus.COMPLETED and sr.resolved_at is None:
        sr.resolved_at = datetime.now(timezone.utc)
    log_audit(
        db,
        actor=actor,
        action=action,
        entity_type="service_request",
        entity_id=sr.id,
        status=sr.status,
        service_request_id=sr.id,
        description=f"{current.value} -> {requested.value}",
    )
    logger.info("Request %s: %s -> %s by %s", sr.id, current.value, requested.value, actor.email)


def update_service_request(db: Session, request_id: int, payload: ServiceRequestUpdate, actor: User) -> ServiceRequest:
    sr = db.get(ServiceRequest, request_id)
    if sr is None:
        raise NotFound("Service request not found")

    data = payload.model_dump(exclude_unset=True)
    requested = data.pop("status", None)

    # validate before touching anything so a rejected transition changes nothing
    if requested is not None:
        _apply_status(db, sr, RequestStatus(requested), actor, action="status_changed")

    for k, v in data.items():
        if k in ("urgency", "description") and v is None:
            continue  # not nullable
        setattr(sr, k, v.value if isinstance(v, Enum) else v)

    db.commit()
    db.refresh(sr)
    return sr


def verify_completion(db: Session, request_id: int, actor: User) -> ServiceRequest:
    """Operator sign-off: only the COMPLETED -> VERIFIED edge."""
    sr = db.get(ServiceRequest, request_id)
    if sr is None:
        raise NotFound("Service request not found")
    if actor.is_operator and sr.organization_id != actor.organization_id:
        raise NotFound("Service request not found")

    _apply_status(db, sr, RequestStatus.VERIFIED, actor, action="verified")
    db.commit()
    db.refresh(sr)
    return sr
