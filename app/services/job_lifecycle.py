"""
Vendor-driven job actions and the request status they imply.

    accept   -> accepted_at,  job ACCEPTED,    request ACCEPTED
    enroute  -> en_route_at,  job EN_ROUTE,    (request unchanged)
    arrive   -> arrived_at,   job IN_PROGRESS, request IN_PROGRESS
    complete -> completed_at, job COMPLETED,   request COMPLETED + resolved_at

Actions are accepted in any order. An action always stamps its timestamp
(repeating it moves the stamp forward, it is never cleared), but the job and
request statuses only ever move forward: an action whose status is not ahead
of the current one leaves it as it is. So a second ``complete`` on a
COMPLETED request is a no-op for the request, and ``accept`` after ``arrive``
does not drag the request back to ACCEPTED.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from app.core.audit import log_audit
from app.core.auth import User
from app.core.errors import Forbidden, InvalidState, NotFound
from app.core.notifications import Notifier
from app.models.enums import (
    TERMINAL_REQUEST_STATUSES,
    JobAction,
    JobStatus,
    RequestStatus,
)
from app.models.job import Job, JobMaterial, JobNote, JobPhoto
from app.schemas.job import JobMaterialCreate, JobNoteCreate, JobPhotoCreate, JobUpdate
from app.services.request_status import request_status_of

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionEffect:
    timestamp_field: str
    job_status: JobStatus
    request_status: Optional[RequestStatus]


ACTION_EFFECTS = {
    JobAction.ACCEPT: ActionEffect("accepted_at", JobStatus.ACCEPTED, RequestStatus.ACCEPTED),
    JobAction.ENROUTE: ActionEffect("en_route_at", JobStatus.EN_ROUTE, None),
    JobAction.ARRIVE: ActionEffect("arrived_at", JobStatus.IN_PROGRESS, RequestStatus.IN_PROGRESS),
    JobAction.COMPLETE: ActionEffect("completed_at", JobStatus.COMPLETED, RequestStatus.COMPLETED),
}

JOB_STATUS_ORDER = [
    JobStatus.OFFERED,
    JobStatus.ACCEPTED,
    JobStatus.EN_ROUTE,
    JobStatus.IN_PROGRESS,
    JobStatus.COMPLETED,
]

# request statuses a job action may advance through
REQUEST_PROGRESS_ORDER = [
    RequestStatus.DISPATCHED,
    RequestStatus.ACCEPTED,
    RequestStatus.IN_PROGRESS,
    RequestStatus.COMPLETED,
]


def _is_ahead(order: list, current, target) -> bool:
    if current not in order:
        return False
    return order.index(target) > order.index(current)


def get_job(db: Session, job_id: int) -> Job:
    job = db.get(Job, job_id)
    if job is None:
        raise NotFound("Job not found")
    return job


def ensure_can_view(job: Job, user: User) -> None:
    if user.is_vendor and job.vendor_id != user.vendor_id:
        raise Forbidden("Forbidden")
    if user.is_operator and job.organization_id != user.organization_id:
        raise Forbidden("Forbidden")


def ensure_can_modify(job: Job, user: User) -> None:
    """Only the assigned vendor or an admin may change a job."""
    if user.is_admin:
        return
    if user.is_vendor and job.vendor_id == user.vendor_id:
        return
    if user.is_operator:
        raise Forbidden("Forbidden: OPERATORs cannot update jobs")
    raise Forbidden("Forbidden")


def _apply_action(db: Session, job: Job, action: JobAction, actor: User) -> Optional[RequestStatus]:
    """Stamp the action and advance statuses. Returns the request status if it changed."""
    sr = job.service_request
    current_request = request_status_of(sr)
    if current_request in TERMINAL_REQUEST_STATUSES:
        raise InvalidState(f"Request {sr.reference_number} is {current_request.value}; job actions are closed")

    effect = ACTION_EFFECTS[action]
    now = datetime.now(timezone.utc)
    setattr(job, effect.timestamp_field, now)

    if _is_ahead(JOB_STATUS_ORDER, JobStatus(job.status), effect.job_status):
        job.status = effect.job_status.value

    changed = None
    target = effect.request_status
    if target is not None and _is_ahead(REQUEST_PROGRESS_ORDER, current_request, target):
        sr.status = target.value
        if target == RequestStatus.COMPLETED:
            sr.resolved_at = now
        changed = target

    log_audit(
        db,
        actor=actor,
        action=action.value,
        entity_type="job",
        entity_id=job.id,
        status=job.status,
        service_request_id=sr.id,
        description=(
            f"Job {job.id} {action.value}; request {current_request.value} -> {changed.value}"
            if changed else f"Job {job.id} {action.value}; request stays {current_request.value}"
        ),
    )
    return changed


def update_job(
    db: Session,
    job_id: int,
    payload: JobUpdate,
    actor: User,
    notifier: Notifier,
    background_tasks: BackgroundTasks,
) -> Tuple[Job, Optional[RequestStatus]]:
    """
    Apply an optional action plus free-form field updates in one commit.

    Notifications go out only when the request status actually moved.
    """
    job = get_job(db, job_id)
    ensure_can_modify(job, actor)

    data = payload.model_dump(exclude_unset=True)
    action = data.pop("action", None)

    changed = None
    if action is not None:
        changed = _apply_action(db, job, JobAction(action), actor)

    for k, v in data.items():
        setattr(job, k, v)

    db.commit()
    db.refresh(job)

    if action is not None:
        logger.info("Job %s: %s by %s (request status %s)",
                    job.id, JobAction(action).value, actor.email, changed.value if changed else "unchanged")

    if changed is not None:
        notifier.job_status_changed(db, background_tasks, job, changed)
    return job, changed


def add_note(db: Session, job_id: int, payload: JobNoteCreate, actor: User) -> JobNote:
    job = get_job(db, job_id)
    # operators of the owning organization may comment, not change the job
    if not (actor.is_operator and job.organization_id == actor.organization_id):
        ensure_can_modify(job, actor)

    note = JobNote(
        job_id=job.id,
        author_id=actor.id,
        author_email=actor.email,
        author_role=actor.role,
        text=payload.text,
    )
    db.add(note)
    db.commit()
    db.refresh(note)
    return note


def add_material(db: Session, job_id: int, payload: JobMaterialCreate, actor: User) -> JobMaterial:
    job = get_job(db, job_id)
    ensure_can_modify(job, actor)

    material = JobMaterial(
        job_id=job.id,
        description=payload.description,
        quantity=payload.quantity,
        unit_cost=payload.unit_cost,
    )
    db.add(material)
    db.commit()
    db.refresh(material)
    return material


def add_photo(db: Session, job_id: int, payload: JobPhotoCreate, actor: User) -> JobPhoto:
    job = get_job(db, job_id)
    ensure_can_modify(job, actor)

    photo = JobPhoto(
        job_id=job.id,
        url=payload.url,
        type=payload.photo_type.value,
        latitude=payload.latitude,
        longitude=payload.longitude,
    )
    db.add(photo)
    db.commit()
    db.refresh(photo)
    return photo
