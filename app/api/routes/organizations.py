from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from app.api.deps import get_db
from app.core.auth import require_role, User
from app.core.errors import NotFound
from app.models.enums import UserRole
from app.models.organization import Organization
from app.schemas.organization import OrganizationCreate, OrganizationOut, OrganizationUpdate

router = APIRouter(prefix="/organizations", tags=["organizations"])


@router.get("", response_model=List[OrganizationOut])
def list_organizations(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    return db.query(Organization).order_by(Organization.name.asc()).all()


@router.post("", response_model=OrganizationOut, status_code=201)
def create_organization(
    payload: OrganizationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    data = payload.model_dump()
    data["type"] = payload.type.value
    org = Organization(**data)
    db.add(org)
    db.commit()
    db.refresh(org)
    return org


@router.patch("/{organization_id}", response_model=OrganizationOut)
def update_organization(
    organization_id: int,
    payload: OrganizationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    org = db.get(Organization, organization_id)
    if not org:
        raise NotFound("Organization not found")

    for k, v in payload.model_dump(exclude_unset=True).items():
        setattr(org, k, v)

    db.commit()
    db.refresh(org)
    return org
