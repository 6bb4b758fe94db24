import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from app.api.deps import get_db, get_notifier
from app.core.auth import get_current_user, require_role, User
from app.core.errors import Forbidden, InvalidState, NotFound
from app.core.notifications import Notifier
from app.models.enums import NotificationChannel, NotificationKind, NotificationStatus, UserRole
from app.models.notification import Notification
from app.schemas.notification import NotificationOut, SmsTestRequest, SmsTestResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _scoped(q, user: User):
    if user.is_admin:
        return q
    if user.is_operator:
        if user.organization_id is None:
            raise Forbidden("No organization linked to this account")
        return q.filter(Notification.organization_id == user.organization_id)
    if user.vendor_id is None:
        raise Forbidden("No vendor linked to this account")
    return q.filter(Notification.vendor_id == user.vendor_id)


@router.get("", response_model=List[NotificationOut])
def list_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    status: Optional[NotificationStatus] = Query(None),
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    q = _scoped(db.query(Notification), current_user)

    if status:
        q = q.filter(Notification.status == status.value)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))

    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit).all()


@router.patch("/{notification_id}/read", response_model=NotificationOut)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    row = _scoped(db.query(Notification), current_user).filter(Notification.id == notification_id).first()
    if not row:
        raise NotFound("Notification not found")

    row.is_read = True
    db.commit()
    db.refresh(row)
    return row


@router.post("/{notification_id}/retry", response_model=NotificationOut)
def retry_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    notifier: Notifier = Depends(get_notifier),
):
    """Deliver a FAILED/SKIPPED/PENDING notification again, synchronously."""
    row = db.get(Notification, notification_id)
    if not row:
        raise NotFound("Notification not found")
    if row.status == NotificationStatus.SENT.value:
        raise InvalidState("Notification was already sent")

    logger.info("Retrying notification %s (%s via %s) for %s",
                row.id, row.kind, row.channel, current_user.email)
    notifier.deliver(row.id)

    db.refresh(row)
    return row


@router.post("/test-sms", response_model=SmsTestResult)
def send_test_sms(
    payload: SmsTestRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    notifier: Notifier = Depends(get_notifier),
):
    """Send one SMS right away to check the Twilio setup."""
    row = Notification(
        kind=NotificationKind.TEST.value,
        channel=NotificationChannel.SMS.value,
        recipient=payload.phone,
        body=payload.message,
        status=NotificationStatus.PENDING.value,
    )
    db.add(row)
    db.commit()
    db.refresh(row)

    status = notifier.deliver(row.id)
    db.refresh(row)
    return SmsTestResult(
        success=status == NotificationStatus.SENT.value,
        status=row.status,
        notification_id=row.id,
        error=row.error,
    )
