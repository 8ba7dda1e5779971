import datetime as dt
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from childcare_backend.app import bookings
from childcare_backend.app.bookings import create_booking, delete_booking, enroll_subscription
from childcare_backend.app.db import get_session
from childcare_backend.app.errors import (
    BookingNotDeletable,
    BookingNotFound,
    EmptySchedule,
    PromotionNotEligible,
    PromotionNotFound,
    ServiceFull,
    ServiceNotFound,
    UnknownScheduleSlot,
)
from childcare_backend.app.models import (
    Booking,
    Invoice,
    InvoiceItem,
    PaymentRecord,
    Promotion,
    Subscription,
)
from childcare_backend.app.payments import submit_payment
from childcare_backend.app.states import (
    BookingPaymentStatus,
    BookingStatus,
    InvoiceType,
    SubscriptionStatus,
)

from conftest import fake_pdf


def _load(model, id_):
    with get_session() as s:
        return s.get(model, id_)


def _count(model):
    with get_session() as s:
        return s.execute(select(func.count()).select_from(model)).scalar()


@pytest.fixture
def catalog(make_user, make_service, make_slot):
    return {
        "user": make_user(),
        "service": make_service(),
        "slot": make_slot(day_of_week=2),
    }


def _enroll(catalog, clock, **kw):
    args = dict(
        user_id=catalog["user"].id,
        service_id=catalog["service"].id,
        child_name="Lucía",
        child_age=18,
        sessions_per_month=12,
        weekly_schedule={"2": catalog["slot"].id},
        start_month=3,
        start_year=2025,
    )
    args.update(kw)
    return enroll_subscription(clock=clock, **args)


class TestEnrollSubscription:
    def test_creates_subscription_booking_and_registration_invoice(self, catalog, clock):
        result = _enroll(catalog, clock)

        sub = _load(Subscription, result.subscription_id)
        assert sub.status == SubscriptionStatus.pending
        assert sub.base_monthly_price == Decimal("540")
        assert sub.final_monthly_price == Decimal("540")
        assert sub.weekly_schedule == {"2": catalog["slot"].id}
        assert sub.sessions_per_month == 12

        booking = _load(Booking, result.booking_id)
        assert booking.status == BookingStatus.pending
        assert booking.payment_status == BookingPaymentStatus.unpaid
        assert booking.subscription_id == sub.id

        invoice = _load(Invoice, result.invoice_id)
        assert invoice.invoice_type == InvoiceType.registration
        assert (invoice.billing_month, invoice.billing_year) == (3, 2025)
        assert invoice.total_amount == Decimal("540")
        assert invoice.due_date == dt.date(2025, 3, 17)
        assert Decimal(result.pricing["total_price"]) == Decimal("540")

    def test_promotion_is_applied_and_redeemed(self, catalog, clock, make_promotion):
        promo = make_promotion(code="WELCOME20", max_uses=10)

        result = _enroll(catalog, clock, promotion_code="WELCOME20")

        sub = _load(Subscription, result.subscription_id)
        assert sub.final_monthly_price == Decimal("432")
        assert sub.discount_amount == Decimal("108")
        assert sub.promotion_id == promo.id
        assert _load(Invoice, result.invoice_id).total_amount == Decimal("432")
        assert _load(Promotion, promo.id).used_count == 1

    def test_ineligible_promotion_writes_nothing(self, catalog, clock, make_promotion):
        make_promotion(code="TODDLERS", min_age=24)

        with pytest.raises(PromotionNotEligible) as err:
            _enroll(catalog, clock, promotion_code="TODDLERS")

        assert "24 months" in err.value.reason
        assert _count(Subscription) == 0
        assert _count(Invoice) == 0

    def test_exhausted_promotion(self, catalog, clock, make_promotion):
        promo = make_promotion(code="ONCE", max_uses=1)
        _enroll(catalog, clock, promotion_code="ONCE")
        with pytest.raises(PromotionNotEligible):
            _enroll(catalog, clock, promotion_code="ONCE", child_name="Mateo")
        assert _load(Promotion, promo.id).used_count == 1

    def test_failure_after_redemption_rolls_the_use_back(self, catalog, clock, make_promotion, monkeypatch):
        promo = make_promotion(code="WELCOME20", max_uses=5)

        def invoice_store_down(*args, **kwargs):
            raise RuntimeError("invoice store down")

        monkeypatch.setattr(bookings, "create_subscription_invoice", invoice_store_down)
        with pytest.raises(RuntimeError):
            _enroll(catalog, clock, promotion_code="WELCOME20")

        assert _load(Promotion, promo.id).used_count == 0
        assert _count(Subscription) == 0
        assert _count(Booking) == 0

    def test_unknown_promotion_code(self, catalog, clock):
        with pytest.raises(PromotionNotFound):
            _enroll(catalog, clock, promotion_code="NOPE")

    def test_capacity_counts_pending_and_active(self, make_user, make_service, make_slot, clock):
        service = make_service(capacity=1)
        slot = make_slot()
        first = make_user()
        second = make_user(email="second@example.com")
        args = dict(child_age=18, sessions_per_month=8, weekly_schedule={"2": slot.id},
                    start_month=4, start_year=2025)

        enroll_subscription(first.id, service.id, "Lucía", clock=clock, **args)
        with pytest.raises(ServiceFull):
            enroll_subscription(second.id, service.id, "Mateo", clock=clock, **args)
        # another month still has room
        enroll_subscription(second.id, service.id, "Mateo", clock=clock, **{**args, "start_month": 5})

    def test_schedule_is_required(self, catalog, clock):
        with pytest.raises(EmptySchedule):
            _enroll(catalog, clock, weekly_schedule={"2": None})

    def test_schedule_keys_are_normalised(self, catalog, clock):
        result = _enroll(catalog, clock, weekly_schedule={"Tuesday": catalog["slot"].id, "fri": None})
        assert _load(Subscription, result.subscription_id).weekly_schedule == {
            "2": catalog["slot"].id,
            "5": None,
        }

    def test_unknown_slot(self, catalog, clock):
        with pytest.raises(UnknownScheduleSlot):
            _enroll(catalog, clock, weekly_schedule={"2": 999})

    def test_inactive_service(self, make_user, make_service, make_slot, clock):
        service = make_service(is_active=False)
        with pytest.raises(ServiceNotFound):
            enroll_subscription(make_user().id, service.id, "Lucía", 18, 8,
                                {"2": make_slot().id}, 3, 2025, clock=clock)

    def test_registration_invoice_is_emailed(self, catalog, clock, email_sender):
        result = _enroll(catalog, clock, pdf_renderer=fake_pdf, email_sender=email_sender)

        assert result.emails_sent == 1
        assert email_sender.sent[0]["to"] == "ana@example.com"
        assert result.invoice_number in email_sender.sent[0]["subject"]


class TestCreateBooking:
    def test_booking_at_service_price(self, catalog, clock):
        booking_id = create_booking(catalog["user"].id, catalog["service"].id, "Lucía", 18, clock=clock)

        booking = _load(Booking, booking_id)
        assert booking.original_price == Decimal("450")
        assert booking.final_price == Decimal("450")
        assert booking.status == BookingStatus.pending
        assert booking.subscription_id is None

    def test_booking_with_promotion(self, catalog, clock, make_promotion):
        promo = make_promotion(code="SPRING")

        booking_id = create_booking(catalog["user"].id, catalog["service"].id, "Lucía", 18,
                                    promotion_code="SPRING", clock=clock)

        booking = _load(Booking, booking_id)
        assert booking.discount_amount == Decimal("90")
        assert booking.final_price == Decimal("360")
        assert booking.promotion_id == promo.id
        assert _load(Promotion, promo.id).used_count == 1

    def test_failure_after_redemption_rolls_the_use_back(self, catalog, clock, make_promotion, monkeypatch):
        promo = make_promotion(code="SPRING", max_uses=5)

        def codes_exhausted(*args, **kwargs):
            raise RuntimeError("no booking code")

        monkeypatch.setattr(bookings, "make_code", codes_exhausted)
        with pytest.raises(RuntimeError):
            create_booking(catalog["user"].id, catalog["service"].id, "Lucía", 18,
                           promotion_code="SPRING", clock=clock)

        assert _load(Promotion, promo.id).used_count == 0
        assert _count(Booking) == 0

    def test_quote_on_request_service_is_free_to_book(self, make_user, make_service, clock):
        service = make_service(base_price=None)
        booking_id = create_booking(make_user().id, service.id, "Lucía", 18, clock=clock)
        assert _load(Booking, booking_id).final_price == 0


class TestDeleteBooking:
    def test_removes_subscription_invoices_and_restores_promotion(self, catalog, clock, make_promotion):
        promo = make_promotion(code="WELCOME20")
        result = _enroll(catalog, clock, promotion_code="WELCOME20")
        submit_payment(result.invoice_id, catalog["user"].id, 432, "yape", "OP-1")

        delete_booking(result.booking_id, user_id=catalog["user"].id)

        assert _load(Booking, result.booking_id) is None
        assert _load(Subscription, result.subscription_id) is None
        assert _count(Invoice) == 0
        assert _count(InvoiceItem) == 0
        assert _count(PaymentRecord) == 0
        assert _load(Promotion, promo.id).used_count == 0

    def test_only_pending_unpaid_bookings(self, catalog, clock):
        booking_id = create_booking(catalog["user"].id, catalog["service"].id, "Lucía", 18, clock=clock)
        with get_session() as s:
            s.get(Booking, booking_id).status = BookingStatus.confirmed

        with pytest.raises(BookingNotDeletable):
            delete_booking(booking_id)
        assert _load(Booking, booking_id) is not None

    def test_other_users_booking_is_not_found(self, catalog, clock, make_user):
        booking_id = create_booking(catalog["user"].id, catalog["service"].id, "Lucía", 18, clock=clock)
        stranger = make_user(email="stranger@example.com")

        with pytest.raises(BookingNotFound):
            delete_booking(booking_id, user_id=stranger.id)

    def test_release_never_goes_negative(self, catalog, clock, make_promotion):
        promo = make_promotion(code="SPRING")
        booking_id = create_booking(catalog["user"].id, catalog["service"].id, "Lucía", 18,
                                    promotion_code="SPRING", clock=clock)
        with get_session() as s:
            s.get(Promotion, promo.id).used_count = 0

        delete_booking(booking_id)

        assert _load(Promotion, promo.id).used_count == 0
