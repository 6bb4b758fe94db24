import logging
from dataclasses import dataclass
from typing import Optional

import requests

from app.core.config import TwilioConfig

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


@dataclass
class DeliveryResult:
    success: bool
    provider_id: Optional[str] = None
    error: Optional[str] = None
    skipped: bool = False


def send_sms(to: str, body: str, timeout: float = 30.0, twilio: Optional[TwilioConfig] = None) -> DeliveryResult:
    """Send one SMS through the Twilio REST API. Never raises."""
    if twilio is None:
        logger.warning("Twilio not configured, skipping SMS to %s", to)
        return DeliveryResult(success=False, error="Twilio not configured", skipped=True)

    try:
        response = requests.post(
            TWILIO_MESSAGES_URL.format(sid=twilio.account_sid),
            data={"To": to, "From": twilio.from_number, "Body": body},
            auth=(twilio.account_sid, twilio.auth_token),
            timeout=timeout,
        )
        response.raise_for_status()
        sid = response.json().get("sid")
        logger.info("SMS sent to %s (sid %s)", to, sid)
        return DeliveryResult(success=True, provider_id=sid)
    except (requests.RequestException, ValueError) as e:
        logger.exception("SMS send to %s failed", to)
        return DeliveryResult(success=False, error=str(e))


def truncate(text: str, limit: int = 120) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def vendor_dispatch_sms(vendor_company_name: str, *, ref_number: str, property_name: str,
                        category: str, urgency: str, description: str) -> str:
    return "\n".join([
        f"DispatchToGo: New job dispatched to {vendor_company_name}.",
        f"Ref: {ref_number}",
        f"Property: {property_name}",
        f"Category: {category} | Urgency: {urgency}",
        truncate(description),
        "Please log in to accept the job.",
    ])


def operator_status_sms(ref_number: str, status: str, vendor_name: Optional[str] = None) -> str:
    who = f" by {vendor_name}" if vendor_name else ""
    return f"DispatchToGo: Job {ref_number} status updated to {status}{who}."


def job_completion_sms(ref_number: str, vendor_name: str) -> str:
    return (
        f"DispatchToGo: Job {ref_number} has been completed by {vendor_name}. "
        "Log in to review the proof packet."
    )
