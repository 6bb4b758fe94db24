from app.core.config import DispatchSettings, get_dispatch_settings, get_notification_settings
from app.core.database import SessionLocal
from app.core.notifications import Notifier


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_notifier() -> Notifier:
    return Notifier(get_notification_settings())


def get_dispatch_config() -> DispatchSettings:
    return get_dispatch_settings()
