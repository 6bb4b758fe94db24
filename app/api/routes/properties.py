from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from app.api.deps import get_db
from app.core.auth import get_current_user, require_role, User
from app.core.errors import Forbidden, NotFound
from app.models.enums import UserRole
from app.models.property import Property
from app.schemas.property import PropertyCreate, PropertyOut, PropertyUpdate

router = APIRouter(prefix="/properties", tags=["properties"])


def _operator_org(user: User) -> int:
    if user.organization_id is None:
        raise Forbidden("No organization linked to this account")
    return user.organization_id


@router.get("", response_model=List[PropertyOut])
def list_properties(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN, UserRole.OPERATOR)),
    organization_id: Optional[int] = Query(None, description="Admin only: filter by organization"),
    search: Optional[str] = Query(None, description="search by name/address"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """
    Operators see their own organization's properties, admins see all.
    Active properties first, then by name.
    """
    q = db.query(Property)

    if current_user.is_operator:
        q = q.filter(Property.organization_id == _operator_org(current_user))
    elif organization_id is not None:
        q = q.filter(Property.organization_id == organization_id)

    if search:
        like = f"%{search.strip()}%"
        q = q.filter(Property.name.ilike(like) | Property.address.ilike(like))

    q = q.order_by(Property.is_active.desc(), Property.name.asc())
    return q.offset(offset).limit(limit).all()


@router.post("", response_model=PropertyOut, status_code=201)
def create_property(
    payload: PropertyCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.OPERATOR)),
):
    prop = Property(organization_id=_operator_org(current_user), **payload.model_dump())
    db.add(prop)
    db.commit()
    db.refresh(prop)
    return prop


@router.patch("/{property_id}", response_model=PropertyOut)
def update_property(
    property_id: int,
    payload: PropertyUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    prop = db.get(Property, property_id)
    if not prop:
        raise NotFound("Property not found")
    if current_user.is_vendor:
        raise Forbidden("Forbidden")
    if current_user.is_operator and prop.organization_id != current_user.organization_id:
        raise NotFound("Property not found")

    for k, v in payload.model_dump(exclude_unset=True).items():
        if k in ("name", "address", "is_active") and v is None:
            continue  # not nullable
        setattr(prop, k, v)

    db.commit()
    db.refresh(prop)
    return prop
