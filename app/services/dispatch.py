"""
Dispatch engine: pick a vendor for a service request and create its job.

Two entry points share the same job-creation step:

- ``auto_dispatch`` runs right after a request is created. It matches active
  vendors by skill category and hands the request to the least loaded one,
  or parks the request in READY_TO_DISPATCH when nobody matches. It never
  raises; failures are logged and leave the request SUBMITTED, where
  ``reconcile_stalled_requests`` picks it up again.
- ``dispatch_request`` is the admin's manual assignment.

Job insert + request status update are one commit. The unique index on
``jobs.service_request_id`` is what really prevents double dispatch; losing
that race is reported as ``Conflict``.

The "fewest open jobs" choice is a best-effort load balancer: vendor load is
read before the write, so concurrent auto-dispatches can pick the same
vendor. A job counts as open until it is completed, unless its request was
cancelled.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from fastapi import BackgroundTasks
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.core.audit import log_audit
from app.core.auth import User
from app.core.errors import Conflict, InvalidState, NotFound
from app.core.notifications import Notifier
from app.models.enums import JobStatus, RequestStatus
from app.models.job import Job
from app.models.service_request import ServiceRequest
from app.models.vendor import Vendor
from app.services.request_status import request_status_of

logger = logging.getLogger(__name__)

# requests in these states can no longer be handed to a vendor
NON_DISPATCHABLE = {
    RequestStatus.CANCELLED,
    RequestStatus.COMPLETED,
    RequestStatus.VERIFIED,
}


@dataclass
class VendorCandidate:
    vendor: Vendor
    open_jobs: int


def normalize_category(value: Optional[str]) -> str:
    """Case-fold and collapse whitespace/underscores: "Snow  removal" == "SNOW_REMOVAL"."""
    return " ".join((value or "").replace("_", " ").split()).upper()


def open_job_counts(db: Session, vendor_ids: Iterable[int]) -> Dict[int, int]:
    vendor_ids = list(vendor_ids)
    if not vendor_ids:
        return {}
    rows = (
        db.query(Job.vendor_id, func.count(Job.id))
        .join(ServiceRequest, ServiceRequest.id == Job.service_request_id)
        .filter(
            Job.vendor_id.in_(vendor_ids),
            Job.completed_at.is_(None),
            ServiceRequest.status != RequestStatus.CANCELLED.value,
        )
        .group_by(Job.vendor_id)
        .all()
    )
    counts = {vendor_id: 0 for vendor_id in vendor_ids}
    counts.update({vendor_id: int(n) for vendor_id, n in rows})
    return counts


def find_candidate_vendors(db: Session, category: str) -> List[VendorCandidate]:
    """Active vendors with a skill matching ``category``, with their open job counts."""
    wanted = normalize_category(category)
    if not wanted:
        return []

    vendors = (
        db.query(Vendor)
        .options(selectinload(Vendor.skills))
        .filter(Vendor.is_active.is_(True))
        .order_by(Vendor.id.asc())
        .all()
    )
    matching = [
        v for v in vendors
        if any(normalize_category(s.category) == wanted for s in v.skills)
    ]
    counts = open_job_counts(db, [v.id for v in matching])
    return [VendorCandidate(vendor=v, open_jobs=counts[v.id]) for v in matching]


def select_vendor(candidates: List[VendorCandidate]) -> Optional[VendorCandidate]:
    """Fewest open jobs wins; ties go to the longest-registered vendor (lowest id)."""
    if not candidates:
        return None
    return min(candidates, key=lambda c: (c.open_jobs, c.vendor.id))


def _create_job(db: Session, sr: ServiceRequest, vendor: Vendor, actor: Optional[User], action: str) -> Job:
    job = Job(
        service_request_id=sr.id,
        vendor_id=vendor.id,
        organization_id=sr.organization_id,
        status=JobStatus.OFFERED.value,
    )
    db.add(job)
    sr.status = RequestStatus.DISPATCHED.value
    log_audit(
        db,
        actor=actor,
        action=action,
        entity_type="service_request",
        entity_id=sr.id,
        status=sr.status,
        service_request_id=sr.id,
        description=f"Request {sr.reference_number} dispatched to {vendor.company_name}",
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("This request already has a job assigned")
    db.refresh(job)
    return job


def auto_dispatch(
    db: Session,
    service_request_id: int,
    notifier: Notifier,
    background_tasks: BackgroundTasks,
) -> Optional[Job]:
    """
    Try to hand a freshly submitted request to a matching vendor.

    Returns the created job, or None when the request was queued for manual
    dispatch, was skipped, or the attempt failed.
    """
    try:
        sr = db.get(ServiceRequest, service_request_id)
        if sr is None:
            logger.warning("Auto-dispatch: service request %s not found", service_request_id)
            return None
        if sr.job is not None:
            logger.info("Auto-dispatch: request %s already has job %s", sr.id, sr.job.id)
            return None
        if sr.status != RequestStatus.SUBMITTED.value:
            logger.info("Auto-dispatch: request %s is %s, leaving it alone", sr.id, sr.status)
            return None

        best = select_vendor(find_candidate_vendors(db, sr.category))
        if best is None:
            sr.status = RequestStatus.READY_TO_DISPATCH.value
            log_audit(
                db,
                actor=None,
                action="queued_for_manual_dispatch",
                entity_type="service_request",
                entity_id=sr.id,
                status=sr.status,
                service_request_id=sr.id,
                description=f"No active vendor with skill '{sr.category}'",
            )
            db.commit()
            logger.info("Auto-dispatch: no vendor for request %s (%s), queued for manual dispatch",
                        sr.id, sr.category)
            return None

        job = _create_job(db, sr, best.vendor, actor=None, action="auto_dispatched")
        logger.info("Auto-dispatch: request %s -> vendor %s (%s open jobs), job %s",
                    sr.id, best.vendor.id, best.open_jobs, job.id)
    except Exception:
        db.rollback()
        logger.exception("Auto-dispatch failed for service request %s", service_request_id)
        return None

    notifier.vendor_dispatched(db, background_tasks, job)
    return job


def dispatch_request(
    db: Session,
    request_id: int,
    vendor_id: int,
    actor: User,
    notifier: Notifier,
    background_tasks: BackgroundTasks,
) -> Job:
    """Admin assignment of a request to a chosen vendor."""
    sr = db.get(ServiceRequest, request_id)
    if sr is None:
        raise NotFound("Service request not found")

    if request_status_of(sr) in NON_DISPATCHABLE:
        raise InvalidState(f"Cannot dispatch a {sr.status.lower()} request")

    existing = db.query(Job.id).filter(Job.service_request_id == sr.id).first()
    if existing:
        raise Conflict("This request already has a job assigned")

    vendor = db.get(Vendor, vendor_id)
    if vendor is None:
        raise NotFound("Vendor not found")

    job = _create_job(db, sr, vendor, actor=actor, action="dispatched")
    logger.info("Request %s dispatched to vendor %s by %s (job %s)", sr.id, vendor.id, actor.email, job.id)

    notifier.vendor_dispatched(db, background_tasks, job)
    return job


def reconcile_stalled_requests(
    db: Session,
    older_than: timedelta,
    notifier: Notifier,
    background_tasks: BackgroundTasks,
) -> dict:
    """
    Re-run auto-dispatch for requests stuck in SUBMITTED without a job.

    Covers requests whose auto-dispatch crashed before committing. Safe to
    run repeatedly: ``auto_dispatch`` skips anything that already has a job
    or has moved on from SUBMITTED.
    """
    cutoff = datetime.now(timezone.utc) - older_than
    stalled_ids = [
        row.id
        for row in (
            db.query(ServiceRequest.id)
            .outerjoin(Job, Job.service_request_id == ServiceRequest.id)
            .filter(
                ServiceRequest.status == RequestStatus.SUBMITTED.value,
                Job.id.is_(None),
                ServiceRequest.created_at <= cutoff,
            )
            .order_by(ServiceRequest.created_at.asc())
            .all()
        )
    ]

    dispatched = 0
    queued = 0
    for request_id in stalled_ids:
        job = auto_dispatch(db, request_id, notifier, background_tasks)
        if job is not None:
            dispatched += 1
            continue
        status = db.query(ServiceRequest.status).filter(ServiceRequest.id == request_id).scalar()
        if status == RequestStatus.READY_TO_DISPATCH.value:
            queued += 1

    if stalled_ids:
        logger.info("Dispatch reconcile: %s stalled, %s dispatched, %s queued for manual dispatch",
                    len(stalled_ids), dispatched, queued)
    return {"checked": len(stalled_ids), "dispatched": dispatched, "queued_for_manual": queued}
