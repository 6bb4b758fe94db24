import logging
from datetime import timedelta

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session, selectinload
from typing import List, Optional

from app.api.deps import get_db, get_dispatch_config, get_notifier
from app.core.audit import log_audit
from app.core.auth import get_current_user, require_role, User
from app.core.config import DispatchSettings
from app.core.errors import Forbidden, InvalidState, NotFound
from app.core.notifications import Notifier
from app.core.reference import unique_reference_number
from app.models.enums import RequestStatus, UserRole
from app.models.job import Job
from app.models.property import Property
from app.models.service_request import ServiceRequest
from app.schemas.job import JobOut
from app.schemas.service_request import (
    DispatchCreate,
    ReconcileResult,
    ServiceRequestCreate,
    ServiceRequestDetailOut,
    ServiceRequestOut,
    ServiceRequestUpdate,
)
from app.services.dispatch import auto_dispatch, dispatch_request, reconcile_stalled_requests
from app.services.request_status import update_service_request, verify_completion

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requests", tags=["requests"])


def _scoped(q, user: User):
    """Limit a ServiceRequest query to what ``user`` may see."""
    if user.is_admin:
        return q
    if user.is_operator:
        if user.organization_id is None:
            raise Forbidden("No organization linked to this account")
        return q.filter(ServiceRequest.organization_id == user.organization_id)
    if user.vendor_id is None:
        raise Forbidden("No vendor linked to this account")
    return q.join(Job, Job.service_request_id == ServiceRequest.id).filter(Job.vendor_id == user.vendor_id)


@router.get("", response_model=List[ServiceRequestOut])
def list_requests(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    status: Optional[RequestStatus] = Query(None),
    property_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    q = _scoped(db.query(ServiceRequest).options(selectinload(ServiceRequest.job)), current_user)

    if status:
        q = q.filter(ServiceRequest.status == status.value)
    if property_id is not None:
        q = q.filter(ServiceRequest.property_id == property_id)

    return q.order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc()).offset(offset).limit(limit).all()


@router.get("/{request_id}", response_model=ServiceRequestDetailOut)
def get_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    sr = (
        _scoped(db.query(ServiceRequest), current_user)
        .options(
            selectinload(ServiceRequest.property),
            selectinload(ServiceRequest.job).selectinload(Job.notes),
            selectinload(ServiceRequest.job).selectinload(Job.materials),
            selectinload(ServiceRequest.job).selectinload(Job.photos),
        )
        .filter(ServiceRequest.id == request_id)
        .first()
    )
    if not sr:
        raise NotFound("Service request not found")
    return sr


@router.post("", response_model=ServiceRequestOut, status_code=201)
def create_request(
    payload: ServiceRequestCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.OPERATOR)),
    notifier: Notifier = Depends(get_notifier),
    dispatch_config: DispatchSettings = Depends(get_dispatch_config),
):
    """
    Operator submits a request for one of their properties.

    Auto-dispatch runs before the response goes out, so the returned request
    is either DISPATCHED (with ``job``) or READY_TO_DISPATCH. If auto-dispatch
    fails it stays SUBMITTED for the reconcile sweep.
    """
    if current_user.organization_id is None:
        raise Forbidden("No organization linked to this account")

    prop = db.get(Property, payload.property_id)
    if not prop or prop.organization_id != current_user.organization_id:
        raise NotFound("Property not found")
    if not prop.is_active:
        raise InvalidState("Cannot submit a request for an inactive property")

    reference = unique_reference_number(
        dispatch_config.reference_prefix,
        lambda ref: db.query(ServiceRequest.id).filter(ServiceRequest.reference_number == ref).first() is not None,
    )
    sr = ServiceRequest(
        reference_number=reference,
        organization_id=prop.organization_id,
        property_id=prop.id,
        description=payload.description,
        category=payload.category,
        urgency=payload.urgency.value,
        status=RequestStatus.SUBMITTED.value,
    )
    db.add(sr)
    db.flush()
    log_audit(
        db,
        actor=current_user,
        action="created",
        entity_type="service_request",
        entity_id=sr.id,
        status=sr.status,
        service_request_id=sr.id,
        description=f"Request {reference} submitted: {payload.category}",
    )
    db.commit()
    logger.info("Request %s (%s) submitted by %s", sr.id, reference, current_user.email)

    if dispatch_config.auto_dispatch_enabled:
        auto_dispatch(db, sr.id, notifier, background_tasks)

    db.refresh(sr)
    return sr


@router.patch("/{request_id}", response_model=ServiceRequestOut)
def update_request(
    request_id: int,
    payload: ServiceRequestUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    return update_service_request(db, request_id, payload, current_user)


@router.post("/reconcile-dispatch", response_model=ReconcileResult)
def reconcile_dispatch(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    notifier: Notifier = Depends(get_notifier),
    dispatch_config: DispatchSettings = Depends(get_dispatch_config),
    older_than_minutes: Optional[int] = Query(None, ge=0),
):
    """Re-run auto-dispatch for requests stuck in SUBMITTED without a job."""
    minutes = dispatch_config.reconcile_after_minutes if older_than_minutes is None else older_than_minutes
    return reconcile_stalled_requests(db, timedelta(minutes=minutes), notifier, background_tasks)


@router.post("/{request_id}/dispatch", response_model=JobOut, status_code=201)
def dispatch(
    request_id: int,
    payload: DispatchCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    notifier: Notifier = Depends(get_notifier),
):
    return dispatch_request(db, request_id, payload.vendor_id, current_user, notifier, background_tasks)


@router.post("/{request_id}/verify", response_model=ServiceRequestOut)
def verify(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.OPERATOR, UserRole.ADMIN)),
):
    """Operator sign-off on a COMPLETED request."""
    return verify_completion(db, request_id, current_user)
