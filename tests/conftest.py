from datetime import time, timedelta
from pathlib import Path
import os
import sys

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-more-than-32-characters")
os.environ.setdefault("APP_TIMEZONE", "UTC")
os.environ.pop("RATE_LIMIT_REDIS_URL", None)

import pytest
from fastapi.testclient import TestClient

from auth import create_access_token
from database import Base, SessionLocal, engine
from time_utils import today_tz
from models import Event, EventFormField, EventStatus, FormFieldType, Profile, UserRole
from payments import RazorpayGateway, get_payment_gateway
from rate_limit import InMemoryRateLimiter, get_rate_limiter


class FakeGateway(RazorpayGateway):
    def __init__(self):
        super().__init__(key_id="rzp_test_key", key_secret="rzp_test_secret")
        self.orders = []

    def create_order(self, amount, currency, receipt, notes=None):
        order = {"id": f"order_{len(self.orders) + 1}", "amount": int(round(amount * 100)), "currency": currency}
        self.orders.append({"amount": amount, "currency": currency, "receipt": receipt, "notes": notes})
        return order


@pytest.fixture(autouse=True)
def reset_db(monkeypatch):
    monkeypatch.delenv("PAYMENTS_ENABLED", raising=False)
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def limiter():
    return InMemoryRateLimiter(max_requests=1000, window_seconds=60)


@pytest.fixture
def client(gateway, limiter):
    from server import app

    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_profile(db, email, role=UserRole.STUDENT, full_name=None):
    profile = Profile(full_name=full_name or email.split("@")[0].title(), email=email, role=role)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def auth_headers(profile):
    token = create_access_token({"sub": str(profile.id), "role": profile.role.value})
    return {"Authorization": f"Bearer {token}"}


def make_event(db, **overrides):
    values = {
        "title": "Hack Night",
        "description": "Overnight hackathon",
        "location": "Main Hall",
        "event_date": today_tz() + timedelta(days=7),
        "start_time": time(10, 0),
        "end_time": time(12, 0),
        "capacity": 10,
        "is_registration_open": True,
        "auto_close_when_full": True,
        "is_paid": False,
        "price": 0,
        "status": EventStatus.APPROVED,
    }
    values.update(overrides)
    event = Event(**values)
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def make_field(db, event, label, field_type=FormFieldType.TEXT, required=False, options=None, position=0, disabled=False):
    field = EventFormField(
        event_id=event.id,
        label=label,
        field_type=field_type,
        required=required,
        options=options,
        position=position,
        disabled=disabled,
        original_required=required,
    )
    db.add(field)
    db.commit()
    db.refresh(field)
    return field
