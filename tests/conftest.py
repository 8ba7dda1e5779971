import datetime as dt
from decimal import Decimal

import pytest

from childcare_backend.app.clock import FixedClock
from childcare_backend.app.db import Base, get_session, init_db
from childcare_backend.app.models import Promotion, ScheduleSlot, Service, Subscription, User
from childcare_backend.app.states import DiscountType, SubscriptionStatus
from childcare_backend.app.utils import make_code

# Monday 10 March 2025, 10:00 local
NOW = dt.datetime(2025, 3, 10, 10, 0)


class FakeEmailSender:
    """Records outgoing mail instead of posting it."""

    def __init__(self, ok: bool = True):
        self.ok = ok
        self.sent = []

    def send(self, recipient, subject, body, attachments=None):
        self.sent.append({
            "to": recipient,
            "subject": subject,
            "body": body,
            "attachments": list(attachments or []),
        })
        if self.ok:
            return {"ok": True}
        return {"ok": False, "error": "relay down"}


def fake_pdf(doc: dict) -> bytes:
    return f"%PDF-fake {doc['invoice_number']}".encode()


def broken_pdf(doc: dict) -> bytes:
    raise RuntimeError("renderer crashed")


@pytest.fixture(autouse=True)
def database():
    """Fresh in-memory database per test."""
    engine = init_db("sqlite://", create_tables=True)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def failing_email_sender():
    return FakeEmailSender(ok=False)


# ─────────────────────────────────────────────────────────────
# Factories
# ─────────────────────────────────────────────────────────────
def _save(obj):
    with get_session() as s:
        s.add(obj)
        s.flush()
    return obj


@pytest.fixture
def make_user():
    def _make(first_name="Ana", last_name="Torres", email="ana@example.com", role="parent"):
        return _save(User(first_name=first_name, last_name=last_name, email=email, role=role))
    return _make


@pytest.fixture
def make_service():
    def _make(name="Early Stimulation", base_price=Decimal("450"), capacity=None,
              duration_minutes=60, is_active=True):
        return _save(Service(
            name=name,
            category="stimulation",
            base_price=base_price,
            capacity=capacity,
            duration_minutes=duration_minutes,
            is_active=is_active,
        ))
    return _make


@pytest.fixture
def make_slot():
    def _make(day_of_week=2, start=dt.time(9, 0), end=dt.time(10, 0), service_id=None, is_active=True):
        return _save(ScheduleSlot(
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
            service_id=service_id,
            is_active=is_active,
        ))
    return _make


@pytest.fixture
def make_promotion():
    def _make(code="WELCOME20", discount_type=DiscountType.percentage, discount_value=Decimal("20"),
              start_date=dt.date(2025, 3, 1), end_date=dt.date(2025, 3, 31), max_uses=None,
              used_count=0, applicable_service_ids=None, min_age=None, max_age=None, is_active=True):
        return _save(Promotion(
            title=f"Promo {code}",
            promo_code=code,
            discount_type=discount_type,
            discount_value=discount_value,
            start_date=start_date,
            end_date=end_date,
            max_uses=max_uses,
            used_count=used_count,
            applicable_service_ids=applicable_service_ids or [],
            min_age=min_age,
            max_age=max_age,
            is_active=is_active,
        ))
    return _make


@pytest.fixture
def make_subscription():
    def _make(user, service, weekly_schedule=None, status=SubscriptionStatus.active,
              start_month=3, start_year=2025, price=Decimal("450"), child_name="Lucía"):
        return _save(Subscription(
            subscription_code=make_code("SUB", NOW),
            user_id=user.id,
            service_id=service.id,
            child_name=child_name,
            child_age=18,
            weekly_schedule=weekly_schedule or {},
            sessions_per_month=8,
            status=status,
            base_monthly_price=price,
            final_monthly_price=price,
            start_month=start_month,
            start_year=start_year,
        ))
    return _make
