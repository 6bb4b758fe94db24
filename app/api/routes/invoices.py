from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional

from app.api.deps import get_db
from app.core.audit import log_audit
from app.core.auth import require_role, User
from app.core.config import settings
from app.core.errors import Conflict, Forbidden, InvalidState, NotFound
from app.core.reference import unique_reference_number
from app.models.enums import InvoiceStatus, RequestStatus, UserRole
from app.models.invoice import Invoice
from app.models.service_request import ServiceRequest
from app.schemas.invoice import InvoiceCreate, InvoiceOut, InvoiceUpdate

router = APIRouter(prefix="/invoices", tags=["invoices"])

# invoices are raised once the work is done
INVOICEABLE = {RequestStatus.COMPLETED.value, RequestStatus.VERIFIED.value}


@router.get("", response_model=List[InvoiceOut])
def list_invoices(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN, UserRole.OPERATOR)),
    status: Optional[InvoiceStatus] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    q = db.query(Invoice)

    if current_user.is_operator:
        if current_user.organization_id is None:
            raise Forbidden("No organization linked to this account")
        q = q.filter(Invoice.organization_id == current_user.organization_id)
    if status:
        q = q.filter(Invoice.status == status.value)

    return q.order_by(Invoice.created_at.desc(), Invoice.id.desc()).offset(offset).limit(limit).all()


@router.post("", response_model=InvoiceOut, status_code=201)
def create_invoice(
    payload: InvoiceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN, UserRole.OPERATOR)),
):
    sr = db.get(ServiceRequest, payload.service_request_id)
    if not sr:
        raise NotFound("Service request not found")
    if current_user.is_operator and sr.organization_id != current_user.organization_id:
        raise NotFound("Service request not found")
    if sr.status not in INVOICEABLE:
        raise InvalidState(f"Cannot invoice a request that is {sr.status}")
    if db.query(Invoice.id).filter(Invoice.service_request_id == sr.id).first():
        raise Conflict("This request already has an invoice")

    number = unique_reference_number(
        settings.INVOICE_REFERENCE_PREFIX,
        lambda ref: db.query(Invoice.id).filter(Invoice.invoice_number == ref).first() is not None,
    )
    invoice = Invoice(
        invoice_number=number,
        service_request_id=sr.id,
        organization_id=sr.organization_id,
        vendor_id=sr.job.vendor_id if sr.job else None,
        amount=payload.amount,
        status=InvoiceStatus.DRAFT.value,
        due_at=payload.due_at,
    )
    db.add(invoice)
    db.flush()
    log_audit(
        db,
        actor=current_user,
        action="created",
        entity_type="invoice",
        entity_id=invoice.id,
        status=invoice.status,
        service_request_id=sr.id,
        description=f"Invoice {number} for {sr.reference_number}",
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("This request already has an invoice")
    db.refresh(invoice)
    return invoice


@router.patch("/{invoice_id}", response_model=InvoiceOut)
def update_invoice(
    invoice_id: int,
    payload: InvoiceUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
):
    invoice = db.get(Invoice, invoice_id)
    if not invoice:
        raise NotFound("Invoice not found")

    data = payload.model_dump(exclude_unset=True)
    for k, v in data.items():
        if k in ("status", "amount") and v is None:
            continue  # not nullable
        setattr(invoice, k, v.value if isinstance(v, InvoiceStatus) else v)

    if "status" in data and data["status"] is not None:
        log_audit(
            db,
            actor=current_user,
            action="status_changed",
            entity_type="invoice",
            entity_id=invoice.id,
            status=invoice.status,
            service_request_id=invoice.service_request_id,
        )

    db.commit()
    db.refresh(invoice)
    return invoice
