import html
import logging
import re
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Optional, Tuple

from app.core.config import SmtpConfig
from app.core.sms import DeliveryResult

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")


def send_email(to: str, subject: str, html_body: str, text: Optional[str] = None,
               timeout: float = 30.0, smtp: Optional[SmtpConfig] = None) -> DeliveryResult:
    """Send one email over SMTP. Never raises."""
    if smtp is None:
        logger.warning("SMTP not configured, skipping email to %s", to)
        return DeliveryResult(success=False, error="SMTP not configured", skipped=True)

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = smtp.from_address
    msg["To"] = to
    msg["Message-ID"] = make_msgid(domain=smtp.from_address.split("@")[-1])
    msg.attach(MIMEText(text or _TAG_RE.sub("", html_body), "plain"))
    msg.attach(MIMEText(html_body, "html"))

    try:
        with smtplib.SMTP(smtp.host, smtp.port, timeout=timeout) as server:
            if smtp.use_tls:
                server.starttls(context=ssl.create_default_context())
            if smtp.user:
                server.login(smtp.user, smtp.password or "")
            server.sendmail(smtp.from_address, [to], msg.as_string())
        logger.info("Email sent to %s: %s", to, subject)
        return DeliveryResult(success=True, provider_id=msg["Message-ID"])
    except (smtplib.SMTPException, OSError) as e:
        logger.exception("Email send to %s failed", to)
        return DeliveryResult(success=False, error=str(e))


def _layout(title: str, inner: str, color: str = "#1e40af") -> str:
    return (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto">'
        f'<div style="background:{color};color:#fff;padding:20px">'
        '<h1 style="margin:0;font-size:20px">DispatchToGo</h1></div>'
        f'<div style="padding:24px;border:1px solid #e5e7eb;border-top:none">'
        f'<h2 style="margin:0 0 16px">{title}</h2>{inner}</div></div>'
    )


def vendor_dispatch_email(vendor_company_name: str, *, ref_number: str, property_name: str,
                          category: str, urgency: str, description: str,
                          app_url: str) -> Tuple[str, str]:
    rows = "".join(
        f"<tr><td><strong>{label}</strong></td><td>{html.escape(value)}</td></tr>"
        for label, value in (
            ("Reference", ref_number),
            ("Property", property_name),
            ("Category", category),
            ("Urgency", urgency),
        )
    )
    inner = (
        f"<p>Hi {html.escape(vendor_company_name)},</p>"
        "<p>A new job has been dispatched to you:</p>"
        f"<table>{rows}</table>"
        f"<p><strong>Description:</strong></p><p>{html.escape(description)}</p>"
        f'<a href="{app_url}/vendor/jobs">View &amp; Accept Job</a>'
    )
    return f"New Job Dispatched - {ref_number}", _layout("New Job Dispatched", inner)


def operator_status_email(ref_number: str, status: str, vendor_name: Optional[str],
                          app_url: str) -> Tuple[str, str]:
    who = f" by {html.escape(vendor_name)}" if vendor_name else ""
    inner = (
        f"<p>Job <strong>{ref_number}</strong> has been updated to <strong>{status}</strong>{who}.</p>"
        f'<a href="{app_url}/requests">View Details</a>'
    )
    return f"Job {ref_number} - Status: {status}", _layout("Job Status Update", inner)


def job_completion_email(ref_number: str, vendor_name: str, app_url: str) -> Tuple[str, str]:
    inner = (
        f"<p>Job <strong>{ref_number}</strong> has been completed by "
        f"<strong>{html.escape(vendor_name)}</strong>.</p>"
        "<p>You can now review the proof of service packet and approve the work.</p>"
        f'<a href="{app_url}/requests">Review Proof Packet</a>'
    )
    return (
        f"Job {ref_number} - Completed by {vendor_name}",
        _layout("Job Completed", inner, color="#16a34a"),
    )
