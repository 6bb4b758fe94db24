"""
Outbound notifications (SMS + email) for dispatch and job status changes.

Each message is written to the ``notifications`` table first, after the
business transaction has committed, and then handed to a FastAPI background
task that delivers it once the response has gone out. A delivery failure
marks the row FAILED and is logged with the job/request ids; it never reaches
the caller. FAILED rows can be replayed through ``Notifier.deliver``.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core import mailer, sms
from app.core.config import NotificationSettings
from app.core.database import SessionLocal
from app.models.enums import (
    NotificationChannel,
    NotificationKind,
    NotificationStatus,
    RequestStatus,
)
from app.models.job import Job
from app.models.notification import Notification
from app.models.organization import Organization

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(
        self,
        config: NotificationSettings,
        session_factory: sessionmaker = SessionLocal,
        sms_sender: Callable[..., sms.DeliveryResult] = sms.send_sms,
        email_sender: Callable[..., sms.DeliveryResult] = mailer.send_email,
    ):
        self.config = config
        self.session_factory = session_factory
        self.sms_sender = sms_sender
        self.email_sender = email_sender

    # --- building ---

    def _vendor_dispatch_rows(self, job: Job) -> List[Notification]:
        sr = job.service_request
        vendor = job.vendor
        details = dict(
            ref_number=sr.reference_number,
            property_name=sr.property.name if sr.property else "Unknown Property",
            category=sr.category,
            urgency=sr.urgency,
            description=sr.description,
        )
        common = dict(
            kind=NotificationKind.VENDOR_DISPATCH.value,
            vendor_id=vendor.id,
            service_request_id=sr.id,
            job_id=job.id,
        )
        rows = []
        if self.config.sms_enabled and vendor.phone:
            rows.append(Notification(
                channel=NotificationChannel.SMS.value,
                recipient=vendor.phone,
                body=sms.vendor_dispatch_sms(vendor.company_name, **details),
                **common,
            ))
        if self.config.email_enabled and vendor.email:
            subject, body = mailer.vendor_dispatch_email(
                vendor.company_name, app_url=self.config.app_url, **details
            )
            rows.append(Notification(
                channel=NotificationChannel.EMAIL.value,
                recipient=vendor.email,
                subject=subject,
                body=body,
                **common,
            ))
        return rows

    def _operator_rows(self, db: Session, job: Job, new_status: RequestStatus) -> List[Notification]:
        sr = job.service_request
        org = db.get(Organization, job.organization_id)
        if org is None:
            logger.warning("Job %s has no organization %s, nothing to notify", job.id, job.organization_id)
            return []

        vendor_name = job.vendor.company_name if job.vendor else None
        phone = org.contact_phone
        email = org.contact_email or org.email
        ref = sr.reference_number

        if new_status == RequestStatus.COMPLETED:
            if not self.config.notify_operator_on_completion:
                return []
            kind = NotificationKind.JOB_COMPLETION
            sms_body = sms.job_completion_sms(ref, vendor_name or "the vendor")
            subject, html_body = mailer.job_completion_email(ref, vendor_name or "the vendor", self.config.app_url)
        else:
            if not self.config.notify_operator_on_status_change:
                return []
            kind = NotificationKind.STATUS_UPDATE
            sms_body = sms.operator_status_sms(ref, new_status.value, vendor_name)
            subject, html_body = mailer.operator_status_email(ref, new_status.value, vendor_name, self.config.app_url)

        common = dict(
            kind=kind.value,
            organization_id=org.id,
            service_request_id=sr.id,
            job_id=job.id,
        )
        rows = []
        if self.config.sms_enabled and phone:
            rows.append(Notification(channel=NotificationChannel.SMS.value, recipient=phone, body=sms_body, **common))
        if self.config.email_enabled and email:
            rows.append(Notification(
                channel=NotificationChannel.EMAIL.value,
                recipient=email,
                subject=subject,
                body=html_body,
                **common,
            ))
        return rows

    # --- queueing ---

    def _queue(self, db: Session, background_tasks: BackgroundTasks, rows: List[Notification], context: str) -> List[int]:
        if not rows:
            return []
        try:
            db.add_all(rows)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Could not record notifications for %s", context)
            return []

        ids = [row.id for row in rows]
        for notification_id in ids:
            background_tasks.add_task(self.deliver, notification_id)
        return ids

    def vendor_dispatched(self, db: Session, background_tasks: BackgroundTasks, job: Job) -> List[int]:
        """Queue the "new job" message(s) to the vendor a job was dispatched to."""
        if not self.config.notify_vendor_on_dispatch:
            return []
        try:
            rows = self._vendor_dispatch_rows(job)
        except Exception:
            logger.exception("Could not build dispatch notification for job %s", job.id)
            return []
        return self._queue(db, background_tasks, rows, f"dispatch of job {job.id}")

    def job_status_changed(self, db: Session, background_tasks: BackgroundTasks, job: Job,
                           new_status: RequestStatus) -> List[int]:
        """Queue operator messages for ACCEPTED / IN_PROGRESS / COMPLETED."""
        try:
            rows = self._operator_rows(db, job, new_status)
        except Exception:
            logger.exception("Could not build %s notification for job %s", new_status.value, job.id)
            return []
        return self._queue(db, background_tasks, rows, f"job {job.id} -> {new_status.value}")

    # --- delivery ---

    def _send(self, row: Notification) -> sms.DeliveryResult:
        timeout = self.config.timeout_seconds
        if row.channel == NotificationChannel.SMS.value:
            return self.sms_sender(row.recipient, row.body, timeout=timeout, twilio=self.config.twilio)
        return self.email_sender(
            row.recipient, row.subject or "", row.body, timeout=timeout, smtp=self.config.smtp
        )

    def deliver(self, notification_id: int) -> Optional[str]:
        """
        Deliver one queued notification in its own session and record the outcome.

        Returns the resulting status, or None if the row could not be processed.
        Safe to call again for FAILED rows; SENT rows are left alone.
        """
        db = self.session_factory()
        try:
            row = db.get(Notification, notification_id)
            if row is None:
                logger.warning("Notification %s vanished before delivery", notification_id)
                return None
            if row.status == NotificationStatus.SENT.value:
                return row.status

            result = self._send(row)
            row.attempts = (row.attempts or 0) + 1
            if result.success:
                row.status = NotificationStatus.SENT.value
                row.provider_id = result.provider_id
                row.error = None
                row.sent_at = datetime.now(timezone.utc)
            elif result.skipped:
                row.status = NotificationStatus.SKIPPED.value
                row.error = result.error
            else:
                row.status = NotificationStatus.FAILED.value
                row.error = result.error
                logger.error(
                    "Notification %s (%s via %s, job %s, request %s) failed: %s",
                    row.id, row.kind, row.channel, row.job_id, row.service_request_id, result.error,
                )
            db.commit()
            return row.status
        except Exception:
            db.rollback()
            logger.exception("Delivering notification %s failed", notification_id)
            return None
        finally:
            db.close()
