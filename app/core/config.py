from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    APP_URL: str = "https://dispatchtogo.com"

    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Supabase Auth (tokens are issued by Supabase, we only verify them)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_JWT_SECRET: Optional[str] = None
    JWT_AUDIENCE: str = "authenticated"

    # Twilio SMS
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_FROM_NUMBER: Optional[str] = None

    # SMTP email
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM: str = "noreply@dispatchtogo.com"
    SMTP_USE_TLS: bool = True

    # Notification toggles
    NOTIFY_VENDOR_ON_DISPATCH: bool = True
    NOTIFY_OPERATOR_ON_STATUS_CHANGE: bool = True
    NOTIFY_OPERATOR_ON_COMPLETION: bool = True
    NOTIFICATION_TIMEOUT_SECONDS: float = 30.0

    # Dispatch
    AUTO_DISPATCH_ENABLED: bool = True
    DISPATCH_RECONCILE_AFTER_MINUTES: int = 5
    REQUEST_REFERENCE_PREFIX: str = "SR"
    INVOICE_REFERENCE_PREFIX: str = "INV"

    @field_validator("SUPABASE_JWT_SECRET", "TWILIO_ACCOUNT_SID", "SMTP_HOST", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if isinstance(v, str) and v.strip() == "":
            return None
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class TwilioConfig(BaseModel):
    account_sid: str
    auth_token: str
    from_number: str

    model_config = {"frozen": True}


class SmtpConfig(BaseModel):
    host: str
    port: int = 587
    user: Optional[str] = None
    password: Optional[str] = None
    from_address: str = "noreply@dispatchtogo.com"
    use_tls: bool = True

    model_config = {"frozen": True}


class NotificationSettings(BaseModel):
    """Notification switches and provider credentials, resolved once and handed to the notifier."""

    sms_enabled: bool
    email_enabled: bool
    twilio: Optional[TwilioConfig] = None
    smtp: Optional[SmtpConfig] = None
    notify_vendor_on_dispatch: bool = True
    notify_operator_on_status_change: bool = True
    notify_operator_on_completion: bool = True
    timeout_seconds: float = 30.0
    app_url: str = "https://dispatchtogo.com"

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls, s: Settings) -> "NotificationSettings":
        twilio = None
        if s.TWILIO_ACCOUNT_SID and s.TWILIO_AUTH_TOKEN and s.TWILIO_FROM_NUMBER:
            twilio = TwilioConfig(
                account_sid=s.TWILIO_ACCOUNT_SID,
                auth_token=s.TWILIO_AUTH_TOKEN,
                from_number=s.TWILIO_FROM_NUMBER,
            )
        smtp = None
        if s.SMTP_HOST:
            smtp = SmtpConfig(
                host=s.SMTP_HOST,
                port=s.SMTP_PORT,
                user=s.SMTP_USER,
                password=s.SMTP_PASSWORD,
                from_address=s.SMTP_FROM,
                use_tls=s.SMTP_USE_TLS,
            )
        return cls(
            sms_enabled=twilio is not None,
            email_enabled=smtp is not None,
            twilio=twilio,
            smtp=smtp,
            notify_vendor_on_dispatch=s.NOTIFY_VENDOR_ON_DISPATCH,
            notify_operator_on_status_change=s.NOTIFY_OPERATOR_ON_STATUS_CHANGE,
            notify_operator_on_completion=s.NOTIFY_OPERATOR_ON_COMPLETION,
            timeout_seconds=s.NOTIFICATION_TIMEOUT_SECONDS,
            app_url=s.APP_URL,
        )


class DispatchSettings(BaseModel):
    auto_dispatch_enabled: bool = True
    reconcile_after_minutes: int = 5
    reference_prefix: str = "SR"

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls, s: Settings) -> "DispatchSettings":
        return cls(
            auto_dispatch_enabled=s.AUTO_DISPATCH_ENABLED,
            reconcile_after_minutes=s.DISPATCH_RECONCILE_AFTER_MINUTES,
            reference_prefix=s.REQUEST_REFERENCE_PREFIX,
        )


settings = Settings()


@lru_cache
def get_notification_settings() -> NotificationSettings:
    return NotificationSettings.from_settings(settings)


@lru_cache
def get_dispatch_settings() -> DispatchSettings:
    return DispatchSettings.from_settings(settings)
