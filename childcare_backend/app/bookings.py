"""
bookings.py
──────────────────────────────
Enrolment (recurring subscription) and single bookings.

enroll_subscription() writes, in ONE transaction:
  pending Subscription → pending Booking → registration Invoice (+ item)
  and redeems the promotion code if one was given.
Any failure rolls everything back, including the promotion use.

delete_booking() is the reverse for a booking nobody has paid yet: the
linked subscription goes with all its invoices / payments / sessions and the
promotion use is given back. Once a subscription is active, or any of its
invoices is paid or has a confirmed payment, the booking stays.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session as OrmSession

from .billing import create_subscription_invoice, deliver_invoice, validate_period
from .clock import Clock, default_clock
from .db import get_session
from .errors import (
    BookingNotDeletable,
    BookingNotFound,
    EmptySchedule,
    PromotionNotEligible,
    ServiceFull,
    ServiceNotFound,
    UnknownScheduleSlot,
    ValidationError,
)
from .invoices import period_label, render_invoice_pdf, snapshot_invoice
from .models import Booking, Invoice, PaymentRecord, Service, Subscription, User
from .pricing import calculate_session_price, to_money
from .promotions import (
    DiscountResult,
    calculate_discount,
    check_promotion_eligibility,
    find_promotion_by_code,
    redeem_promotion,
    release_promotion,
)
from .schedule import has_schedule, resolve_slots
from .states import (
    BookingPaymentStatus,
    BookingStatus,
    InvoicePaymentStatus,
    InvoiceType,
    PaymentStatus,
    SubscriptionStatus,
)
from .utils import make_code, parse_weekday

log = logging.getLogger(__name__)


@dataclass
class EnrolmentResult:
    subscription_id: int
    subscription_code: str
    booking_id: int
    invoice_id: int
    invoice_number: str
    pricing: dict
    discount: dict | None
    final_monthly_price: str
    emails_sent: int = 0
    errors: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


# ─────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────
def _child_age(value) -> int:
    try:
        age = int(value)
    except (TypeError, ValueError):
        raise ValidationError("child_age must be a whole number of months")
    if age < 0:
        raise ValidationError("child_age cannot be negative")
    return age


def _active_service(s: OrmSession, service_id: int, *, lock: bool = False) -> Service:
    q = select(Service).where(Service.id == service_id, Service.is_active.is_(True))
    if lock:
        q = q.with_for_update()
    service = s.execute(q).scalar_one_or_none()
    if service is None:
        raise ServiceNotFound(f"Service {service_id} not found or not available")
    return service


def normalize_weekly_schedule(weekly_schedule) -> dict:
    """Keys → "0".."6" (Sunday-based); values → slot id or None."""
    if not isinstance(weekly_schedule, dict):
        raise EmptySchedule("A weekly schedule is required")
    out = {}
    for key, slot_id in weekly_schedule.items():
        try:
            wday = parse_weekday(key)
        except ValueError as e:
            raise UnknownScheduleSlot(str(e))
        out[str(wday)] = int(slot_id) if slot_id else None
    if not has_schedule(out):
        raise EmptySchedule("Pick at least one weekly slot")
    return out


def _apply_promotion(
    s: OrmSession,
    code: str | None,
    service_id: int,
    child_age: int,
    price,
    today,
) -> tuple[int | None, DiscountResult | None]:
    """Look up, check, price and redeem a promotion code in the caller's transaction."""
    if not code:
        return None, None
    promo = find_promotion_by_code(s, code)
    eligibility = check_promotion_eligibility(promo, service_id, child_age, today=today)
    if not eligibility:
        raise PromotionNotEligible(eligibility.reason)
    discount = calculate_discount(promo, price)
    redeem_promotion(s, promo.id)
    return promo.id, discount


def _subscriptions_in_period(s: OrmSession, service_id: int, month: int, year: int) -> int:
    return s.execute(
        select(func.count(Subscription.id)).where(
            Subscription.service_id == service_id,
            Subscription.start_month == month,
            Subscription.start_year == year,
            Subscription.status.in_([SubscriptionStatus.pending, SubscriptionStatus.active]),
        )
    ).scalar() or 0


# ─────────────────────────────────────────────────────────────
# Enrolment
# ─────────────────────────────────────────────────────────────
def enroll_subscription(
    user_id: int,
    service_id: int,
    child_name: str,
    child_age,
    sessions_per_month: int,
    weekly_schedule: dict,
    start_month,
    start_year,
    promotion_code: str | None = None,
    *,
    clock: Clock = default_clock,
    pdf_renderer=render_invoice_pdf,
    email_sender=None,
) -> EnrolmentResult:
    child_name = (child_name or "").strip()
    if not child_name:
        raise ValidationError("child_name is required")
    age = _child_age(child_age)
    month, year = validate_period(start_month, start_year)
    schedule = normalize_weekly_schedule(weekly_schedule)

    with get_session() as s:
        if s.get(User, user_id) is None:
            raise ValidationError(f"Unknown user {user_id}")
        service = _active_service(s, service_id, lock=True)
        resolve_slots(s, schedule)

        if service.capacity is not None:
            taken = _subscriptions_in_period(s, service.id, month, year)
            if taken >= service.capacity:
                raise ServiceFull(
                    f"No places left for {month}/{year}. Maximum capacity: {service.capacity}"
                )

        pricing = calculate_session_price(service.base_price or 0, sessions_per_month)
        promotion_id, discount = _apply_promotion(
            s, promotion_code, service.id, age, pricing.total_price, clock.today()
        )
        final_price = discount.final_price if discount else pricing.total_price

        now = clock.now()
        sub = Subscription(
            subscription_code=make_code("SUB", now),
            user_id=user_id,
            service_id=service.id,
            child_name=child_name,
            child_age=age,
            weekly_schedule=schedule,
            sessions_per_month=pricing.total_sessions,
            status=SubscriptionStatus.pending,
            base_monthly_price=pricing.total_price,
            final_monthly_price=final_price,
            promotion_id=promotion_id,
            discount_amount=discount.discount_amount if discount else 0,
            start_month=month,
            start_year=year,
        )
        sub.service = service
        s.add(sub)
        s.flush()

        booking = Booking(
            booking_code=make_code("BK", now),
            user_id=user_id,
            service_id=service.id,
            child_name=child_name,
            child_age=age,
            promotion_id=promotion_id,
            original_price=pricing.total_price,
            discount_amount=discount.discount_amount if discount else 0,
            final_price=final_price,
            status=BookingStatus.pending,
            payment_status=BookingPaymentStatus.unpaid,
            subscription_id=sub.id,
        )
        s.add(booking)

        invoice = create_subscription_invoice(
            s, sub,
            invoice_type=InvoiceType.registration,
            month=month,
            year=year,
            description=f"Monthly subscription — {service.name} — {period_label(month, year)}",
            clock=clock,
        )
        doc = snapshot_invoice(invoice)
        result = EnrolmentResult(
            subscription_id=sub.id,
            subscription_code=sub.subscription_code,
            booking_id=booking.id,
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            pricing=pricing.to_dict(),
            discount=discount.to_dict() if discount else None,
            final_monthly_price=str(final_price),
        )
        log.info(
            f"[bookings] enrolment {sub.subscription_code}: {child_name} → {service.name} "
            f"{month}/{year}, {pricing.total_sessions} sessions, {final_price}"
        )

    if email_sender is not None and doc.get("user_email"):
        error = deliver_invoice(doc, pdf_renderer, email_sender)
        if error:
            result.errors.append(error)
        else:
            result.emails_sent += 1
    return result


# ─────────────────────────────────────────────────────────────
# Single bookings
# ─────────────────────────────────────────────────────────────
def create_booking(
    user_id: int,
    service_id: int,
    child_name: str,
    child_age,
    promotion_code: str | None = None,
    *,
    clock: Clock = default_clock,
) -> int:
    child_name = (child_name or "").strip()
    if not child_name:
        raise ValidationError("child_name is required")
    age = _child_age(child_age)

    with get_session() as s:
        if s.get(User, user_id) is None:
            raise ValidationError(f"Unknown user {user_id}")
        service = _active_service(s, service_id)
        original = to_money(service.base_price or 0)
        promotion_id, discount = _apply_promotion(
            s, promotion_code, service.id, age, original, clock.today()
        )
        booking = Booking(
            booking_code=make_code("BK", clock.now()),
            user_id=user_id,
            service_id=service.id,
            child_name=child_name,
            child_age=age,
            promotion_id=promotion_id,
            original_price=original,
            discount_amount=discount.discount_amount if discount else 0,
            final_price=discount.final_price if discount else original,
            status=BookingStatus.pending,
            payment_status=BookingPaymentStatus.unpaid,
        )
        s.add(booking)
        s.flush()
        log.info(f"[bookings] booking {booking.booking_code} created for {child_name}")
        return booking.id


def _ensure_subscription_unsettled(s: OrmSession, sub: Subscription) -> None:
    """A confirmation that only got part way leaves the booking pending; keep it."""
    if sub.status != SubscriptionStatus.pending:
        raise BookingNotDeletable(
            f"Subscription {sub.subscription_code} is {sub.status.value}; booking cannot be deleted"
        )
    settled = s.execute(
        select(func.count(Invoice.id))
        .outerjoin(PaymentRecord, PaymentRecord.invoice_id == Invoice.id)
        .where(
            Invoice.subscription_id == sub.id,
            or_(
                Invoice.payment_status == InvoicePaymentStatus.paid,
                PaymentRecord.status == PaymentStatus.confirmed,
            ),
        )
    ).scalar()
    if settled:
        raise BookingNotDeletable(
            f"Subscription {sub.subscription_code} has a confirmed payment; booking cannot be deleted"
        )


def delete_booking(booking_id: int, *, user_id: int | None = None) -> None:
    """
    Remove a pending, unpaid booking. `user_id` restricts the lookup to the
    owner's bookings (admins pass None).
    """
    with get_session() as s:
        q = select(Booking).where(Booking.id == booking_id)
        if user_id is not None:
            q = q.where(Booking.user_id == user_id)
        booking = s.execute(q.with_for_update()).scalar_one_or_none()
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found")
        if booking.status != BookingStatus.pending or booking.payment_status != BookingPaymentStatus.unpaid:
            raise BookingNotDeletable("Only pending, unpaid bookings can be deleted")

        sub_id, promotion_id = booking.subscription_id, booking.promotion_id
        sub = s.get(Subscription, sub_id) if sub_id is not None else None
        if sub is not None:
            _ensure_subscription_unsettled(s, sub)

        s.delete(booking)
        s.flush()

        if sub is not None:
            # sessions, invoices (+ items, payments) go with it
            s.delete(sub)

        if promotion_id is not None:
            release_promotion(s, promotion_id)

        log.info(f"[bookings] booking #{booking_id} deleted (subscription #{sub_id})")
