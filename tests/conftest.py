import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ["AUTO_DISPATCH_ENABLED"] = "true"
os.environ["TWILIO_ACCOUNT_SID"] = ""
os.environ["SMTP_HOST"] = ""

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.main import app  # noqa: E402
from app.api.deps import get_db, get_dispatch_config, get_notifier  # noqa: E402
from app.core.auth import get_current_user, User  # noqa: E402
from app.core.config import DispatchSettings, NotificationSettings  # noqa: E402
from app.core.database import Base  # noqa: E402
from app.core.errors import Unauthorized  # noqa: E402
from app.core.notifications import Notifier  # noqa: E402
from app.core.sms import DeliveryResult  # noqa: E402
from app.models.job import Job  # noqa: E402
from app.models.organization import Organization  # noqa: E402
from app.models.property import Property  # noqa: E402
from app.models.service_request import ServiceRequest  # noqa: E402
from app.models.vendor import Vendor, VendorSkill  # noqa: E402

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

_auth = {"user": None}


class RecordingSender:
    """Stands in for send_sms / send_email and remembers every call."""

    def __init__(self, result=None):
        self.calls = []
        self.result = result or DeliveryResult(success=True, provider_id="fake-id")

    def __call__(self, to, *args, **kwargs):
        self.calls.append({"to": to, "args": args, "kwargs": kwargs})
        return self.result

    @property
    def recipients(self):
        return [c["to"] for c in self.calls]


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def sms_sender():
    return RecordingSender()


@pytest.fixture
def email_sender():
    return RecordingSender()


@pytest.fixture
def notification_config():
    return NotificationSettings(sms_enabled=True, email_enabled=True, app_url="https://test.local")


@pytest.fixture
def notifier(notification_config, sms_sender, email_sender):
    return Notifier(
        notification_config,
        session_factory=TestingSessionLocal,
        sms_sender=sms_sender,
        email_sender=email_sender,
    )


@pytest.fixture
def dispatch_config():
    return DispatchSettings(auto_dispatch_enabled=True, reconcile_after_minutes=5)


@pytest.fixture
def client(db, notifier, dispatch_config):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    def override_current_user():
        if _auth["user"] is None:
            raise Unauthorized("Not authenticated")
        return _auth["user"]

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_current_user
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_dispatch_config] = lambda: dispatch_config
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    _auth["user"] = None


@pytest.fixture
def login():
    def _login(user):
        _auth["user"] = user
        return user
    return _login


# --- users ---

@pytest.fixture
def admin():
    return User("admin-1", "admin@example.com", "ADMIN")


def operator_for(org, user_id="operator-1"):
    return User(user_id, f"{user_id}@example.com", "OPERATOR", organization_id=org.id)


def vendor_user_for(vendor, user_id="vendor-user-1"):
    return User(user_id, f"{user_id}@example.com", "VENDOR", vendor_id=vendor.id)


# --- data ---

class Factory:
    def __init__(self, session):
        self.db = session
        self._seq = 0

    def _next(self):
        self._seq += 1
        return self._seq

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def organization(self, **kwargs):
        n = self._next()
        kwargs.setdefault("name", f"Operator {n}")
        kwargs.setdefault("type", "OPERATOR")
        kwargs.setdefault("contact_email", f"ops{n}@example.com")
        kwargs.setdefault("contact_phone", f"+1555000{n:04d}")
        return self._save(Organization(**kwargs))

    def property(self, org, **kwargs):
        n = self._next()
        kwargs.setdefault("name", f"Property {n}")
        kwargs.setdefault("address", f"{n} Main St")
        return self._save(Property(organization_id=org.id, **kwargs))

    def vendor(self, skills=("Plumbing",), **kwargs):
        n = self._next()
        kwargs.setdefault("company_name", f"Vendor {n}")
        kwargs.setdefault("contact_name", f"Contact {n}")
        kwargs.setdefault("email", f"vendor{n}@example.com")
        kwargs.setdefault("phone", f"+1555100{n:04d}")
        vendor = Vendor(**kwargs)
        vendor.skills = [VendorSkill(category=c) for c in skills]
        return self._save(vendor)

    def service_request(self, prop, category="PLUMBING", status="SUBMITTED", **kwargs):
        n = self._next()
        kwargs.setdefault("reference_number", f"SR-20260101-T{n:03d}")
        kwargs.setdefault("description", "Leaking pipe under the sink")
        kwargs.setdefault("urgency", "MEDIUM")
        return self._save(ServiceRequest(
            organization_id=prop.organization_id,
            property_id=prop.id,
            category=category,
            status=status,
            **kwargs,
        ))

    def job(self, sr, vendor, completed=False, **kwargs):
        if completed:
            kwargs.setdefault("completed_at", datetime.now(timezone.utc) - timedelta(days=1))
            kwargs.setdefault("status", "COMPLETED")
        return self._save(Job(
            service_request_id=sr.id,
            vendor_id=vendor.id,
            organization_id=sr.organization_id,
            **kwargs,
        ))


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def org(factory):
    return factory.organization()


@pytest.fixture
def prop(factory, org):
    return factory.property(org)


@pytest.fixture
def operator(org):
    return operator_for(org)
