from fastapi import APIRouter, Depends, Query
from sqlalchemy import and_, case, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from typing import List, Optional

from app.api.deps import get_db
from app.core.auth import get_current_user, require_role, User
from app.core.errors import Conflict, Forbidden, NotFound
from app.models.enums import RequestStatus, UserRole
from app.models.job import Job
from app.models.service_request import ServiceRequest
from app.models.vendor import Vendor, VendorCredential, VendorSkill
from app.schemas.vendor import (
    VendorCreate,
    VendorCredentialCreate,
    VendorCredentialOut,
    VendorDetailOut,
    VendorOut,
    VendorSkillsUpdate,
    VendorUpdate,
)
from app.services.dispatch import normalize_category

router = APIRouter(prefix="/vendors", tags=["vendors"])


def _ensure_self_or_admin(user: User, vendor_id: int) -> None:
    if user.is_admin:
        return
    if user.is_vendor and user.vendor_id == vendor_id:
        return
    raise Forbidden("Forbidden")


def _get_vendor(db: Session, vendor_id: int) -> Vendor:
    vendor = (
        db.query(Vendor)
        .options(selectinload(Vendor.skills), selectinload(Vendor.credentials))
        .filter(Vendor.id == vendor_id)
        .first()
    )
    if not vendor:
        raise NotFound("Vendor not found")
    return vendor


def _dedupe_skills(categories: List[str]) -> List[str]:
    """Trim, drop blanks, keep the first spelling of each normalized category."""
    seen = set()
    result = []
    for raw in categories:
        category = (raw or "").strip()
        key = normalize_category(category)
        if not key or key in seen:
            continue
        seen.add(key)
        result.append(category)
    return result


def _attach_job_counts(db: Session, vendors: List[Vendor]) -> List[Vendor]:
    if not vendors:
        return vendors
    rows = (
        db.query(
            Job.vendor_id,
            func.count(Job.id),
            func.sum(case(
                (and_(Job.completed_at.is_(None), ServiceRequest.status != RequestStatus.CANCELLED.value), 1),
                else_=0,
            )),
        )
        .join(ServiceRequest, ServiceRequest.id == Job.service_request_id)
        .filter(Job.vendor_id.in_([v.id for v in vendors]))
        .group_by(Job.vendor_id)
        .all()
    )
    counts = {vendor_id: (int(total or 0), int(open_ or 0)) for vendor_id, total, open_ in rows}
    for v in vendors:
        v.jobs_count, v.open_jobs_count = counts.get(v.id, (0, 0))
    return vendors


@router.get("", response_model=List[VendorOut])
def list_vendors(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN, UserRole.OPERATOR)),
    active_only: bool = Query(False),
    category: Optional[str] = Query(None, description="only vendors with this skill"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """
    Vendors with:
    - jobs_count (all jobs ever assigned)
    - open_jobs_count (jobs not completed yet)
    """
    q = db.query(Vendor).options(selectinload(Vendor.skills))
    if active_only:
        q = q.filter(Vendor.is_active.is_(True))

    vendors = q.order_by(Vendor.company_name.asc()).offset(offset).limit(limit).all()

    if category:
        wanted = normalize_category(category)
        vendors = [v for v in vendors if any(normalize_category(s.category) == wanted for s in v.skills)]

    return _attach_job_counts(db, vendors)


@router.post("", response_model=VendorDetailOut, status_code=201)
def create_vendor(
    payload: VendorCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    if db.query(Vendor.id).filter(Vendor.email == payload.email).first():
        raise Conflict("A vendor with this email already exists")

    data = payload.model_dump(exclude={"skills"})
    vendor = Vendor(**data)
    vendor.skills = [VendorSkill(category=c) for c in _dedupe_skills(payload.skills)]
    db.add(vendor)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("A vendor with this email already exists")
    db.refresh(vendor)
    return vendor


@router.get("/{vendor_id}", response_model=VendorDetailOut)
def get_vendor(
    vendor_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _ensure_self_or_admin(current_user, vendor_id)
    vendor = _get_vendor(db, vendor_id)
    _attach_job_counts(db, [vendor])
    return vendor


@router.patch("/{vendor_id}", response_model=VendorDetailOut)
def update_vendor(
    vendor_id: int,
    payload: VendorUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _ensure_self_or_admin(current_user, vendor_id)
    vendor = _get_vendor(db, vendor_id)

    data = payload.model_dump(exclude_unset=True)
    if "is_active" in data and not current_user.is_admin:
        raise Forbidden("Only admins can activate or deactivate vendors")

    for k, v in data.items():
        if k in ("company_name", "contact_name", "phone", "is_active") and v is None:
            continue  # not nullable
        setattr(vendor, k, v)

    db.commit()
    db.refresh(vendor)
    _attach_job_counts(db, [vendor])
    return vendor


@router.put("/{vendor_id}/skills", response_model=VendorDetailOut)
def replace_vendor_skills(
    vendor_id: int,
    payload: VendorSkillsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _ensure_self_or_admin(current_user, vendor_id)
    vendor = _get_vendor(db, vendor_id)

    # delete-orphan cascade removes the old rows; flush before the new ones
    # go in so the (vendor_id, category) unique index never sees both
    vendor.skills = []
    db.flush()
    vendor.skills = [VendorSkill(category=c) for c in _dedupe_skills(payload.skills)]

    db.commit()
    db.refresh(vendor)
    _attach_job_counts(db, [vendor])
    return vendor


@router.post("/{vendor_id}/credentials", response_model=VendorCredentialOut, status_code=201)
def add_vendor_credential(
    vendor_id: int,
    payload: VendorCredentialCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _ensure_self_or_admin(current_user, vendor_id)
    vendor = _get_vendor(db, vendor_id)

    credential = VendorCredential(
        vendor_id=vendor.id,
        type=payload.type.value,
        credential_number=payload.credential_number,
        expires_at=payload.expires_at,
        verified=False,
    )
    db.add(credential)
    db.commit()
    db.refresh(credential)
    return credential


@router.delete("/{vendor_id}/credentials/{credential_id}", status_code=204)
def delete_vendor_credential(
    vendor_id: int,
    credential_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _ensure_self_or_admin(current_user, vendor_id)
    credential = db.get(VendorCredential, credential_id)
    if not credential:
        raise NotFound("Credential not found")
    if credential.vendor_id != vendor_id:
        raise Forbidden("Credential belongs to another vendor")

    db.delete(credential)
    db.commit()
    return None


@router.patch("/{vendor_id}/credentials/{credential_id}/verify", response_model=VendorCredentialOut)
def verify_vendor_credential(
    vendor_id: int,
    credential_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    credential = db.get(VendorCredential, credential_id)
    if not credential or credential.vendor_id != vendor_id:
        raise NotFound("Credential not found")

    credential.verified = True
    db.commit()
    db.refresh(credential)
    return credential
