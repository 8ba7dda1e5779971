"""
payments.py
──────────────────────────────
Manual payment proofs and their admin reconciliation.

 • submit_payment()       → parent uploads a proof (one pending per invoice)
 • reconcile_payment()    → admin confirms / rejects a pending proof
 • resume_confirmation()  → re-run the post-confirmation cascade

Confirming a payment is one transaction (payment + invoice). The cascade
that follows (activate subscription → generate sessions → confirm booking)
runs as separate idempotent steps after the commit, so a failed step can be
retried with resume_confirmation() without touching the payment again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from .clock import Clock, default_clock
from .config import PAYMENT_METHODS
from .db import get_session
from .errors import (
    InvalidPayment,
    InvalidPrice,
    InvalidTransition,
    InvoiceNotFound,
    InvoiceNotPayable,
    PaymentAlreadyPending,
    PaymentAlreadyProcessed,
    PaymentNotFound,
    PortalError,
)
from .models import Booking, Invoice, PaymentRecord, Subscription, User
from .pricing import to_money
from .schedule import expand_schedule
from .states import (
    BookingPaymentStatus,
    BookingStatus,
    InvoicePaymentStatus,
    PaymentStatus,
    SubscriptionStatus,
    transition,
)

log = logging.getLogger(__name__)

PAYABLE = (InvoicePaymentStatus.unpaid, InvoicePaymentStatus.overdue)

_DECISIONS = {
    "confirm": PaymentStatus.confirmed,
    "confirmed": PaymentStatus.confirmed,
    "reject": PaymentStatus.rejected,
    "rejected": PaymentStatus.rejected,
}


@dataclass
class ReconcileResult:
    payment_id: int
    status: str
    invoice_id: int | None = None
    subscription_id: int | None = None
    steps: dict = field(default_factory=dict)
    errors: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _pending_payment_id(s, invoice_id: int) -> int | None:
    return s.execute(
        select(PaymentRecord.id).where(
            PaymentRecord.invoice_id == invoice_id,
            PaymentRecord.status == PaymentStatus.pending,
        )
    ).scalars().first()


# ─────────────────────────────────────────────────────────────
# Submit
# ─────────────────────────────────────────────────────────────
def submit_payment(
    invoice_id: int,
    user_id: int,
    amount,
    payment_method: str,
    payment_reference: str,
    proof_path: str | None = None,
) -> int:
    """Record a pending payment proof. Returns the PaymentRecord id."""
    try:
        amount = to_money(amount)
    except InvalidPrice:
        raise InvalidPayment(f"Invalid amount: {amount!r}")
    if amount <= 0:
        raise InvalidPayment("Amount must be greater than zero")
    method = (payment_method or "").strip().lower()
    if method not in PAYMENT_METHODS:
        raise InvalidPayment(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")
    reference = (payment_reference or "").strip()
    if not reference:
        raise InvalidPayment("Payment reference is required")

    with get_session() as s:
        invoice = s.execute(
            select(Invoice).where(Invoice.id == invoice_id).with_for_update()
        ).scalar_one_or_none()

        # one proof under review at a time, whatever the invoice says
        if _pending_payment_id(s, invoice_id) is not None:
            raise PaymentAlreadyPending(
                "A payment for this invoice is already waiting for review"
            )

        if invoice is None or invoice.user_id != user_id:
            raise InvoiceNotFound(f"Invoice {invoice_id} not found")
        if invoice.payment_status not in PAYABLE:
            raise InvoiceNotPayable(
                f"Invoice {invoice.invoice_number} is {invoice.payment_status.value}"
            )

        record = PaymentRecord(
            invoice_id=invoice.id,
            user_id=user_id,
            amount=amount,
            payment_method=method,
            payment_reference=reference,
            proof_path=proof_path,
            status=PaymentStatus.pending,
        )
        s.add(record)
        try:
            s.flush()
        except IntegrityError:
            raise PaymentAlreadyPending(
                "A payment for this invoice is already waiting for review"
            )
        if amount != invoice.total_amount:
            log.warning(
                f"[payments] proof #{record.id} amount {amount} differs from "
                f"invoice {invoice.invoice_number} total {invoice.total_amount}"
            )
        log.info(f"[payments] proof #{record.id} submitted for invoice {invoice.invoice_number}")
        return record.id


# ─────────────────────────────────────────────────────────────
# Cascade steps (each idempotent, each in its own transaction)
# ─────────────────────────────────────────────────────────────
def activate_subscription(subscription_id: int) -> str:
    with get_session() as s:
        sub = s.execute(
            select(Subscription).where(Subscription.id == subscription_id).with_for_update()
        ).scalar_one_or_none()
        if sub is None:
            return "missing"
        if sub.status == SubscriptionStatus.active:
            return "already_active"
        transition(sub, "status", SubscriptionStatus.active)
        log.info(f"[payments] subscription #{sub.id} activated")
        return "activated"


def confirm_subscription_booking(subscription_id: int) -> int:
    """Pending booking(s) of the subscription → confirmed / paid. Returns rows changed."""
    with get_session() as s:
        bookings = s.execute(
            select(Booking).where(
                Booking.subscription_id == subscription_id,
                Booking.status == BookingStatus.pending,
            ).with_for_update()
        ).scalars().all()
        for b in bookings:
            transition(b, "status", BookingStatus.confirmed)
            if b.payment_status != BookingPaymentStatus.paid:
                transition(b, "payment_status", BookingPaymentStatus.paid)
        return len(bookings)


def _run_cascade(result: ReconcileResult, clock: Clock) -> ReconcileResult:
    sub_id = result.subscription_id
    if sub_id is None:
        result.steps["subscription"] = "none"
        return result

    try:
        result.steps["subscription"] = activate_subscription(sub_id)
    except PortalError as e:
        log.warning(f"[payments] activate subscription #{sub_id} failed: {e.reason}")
        result.steps["subscription"] = "error"
        result.errors.append(f"Activate subscription {sub_id}: {e.reason}")
        # sessions and booking depend on an active subscription
        return result
    except Exception as e:
        log.exception(f"[payments] activate subscription #{sub_id} failed")
        result.steps["subscription"] = "error"
        result.errors.append(f"Activate subscription {sub_id}: {e}")
        return result

    try:
        result.steps["sessions_created"] = expand_schedule(sub_id, clock=clock)
    except Exception as e:
        log.error(f"❌ [payments] session generation for subscription #{sub_id} failed → {e}")
        result.steps["sessions_created"] = 0
        result.errors.append(f"Generate sessions for subscription {sub_id}: {e}")

    try:
        result.steps["bookings_confirmed"] = confirm_subscription_booking(sub_id)
    except Exception as e:
        log.error(f"❌ [payments] booking confirmation for subscription #{sub_id} failed → {e}")
        result.steps["bookings_confirmed"] = 0
        result.errors.append(f"Confirm booking for subscription {sub_id}: {e}")

    return result


# ─────────────────────────────────────────────────────────────
# Reconcile
# ─────────────────────────────────────────────────────────────
def parse_decision(decision) -> PaymentStatus:
    key = str(getattr(decision, "value", decision) or "").strip().lower()
    if key not in _DECISIONS:
        raise InvalidPayment("Decision must be 'confirmed' or 'rejected'")
    return _DECISIONS[key]


def reconcile_payment(
    payment_id: int,
    decision,
    admin_notes: str | None = None,
    *,
    admin_id: int | None = None,
    clock: Clock = default_clock,
) -> ReconcileResult:
    new_status = parse_decision(decision)

    with get_session() as s:
        payment = s.execute(
            select(PaymentRecord).where(PaymentRecord.id == payment_id).with_for_update()
        ).scalar_one_or_none()
        if payment is None:
            raise PaymentNotFound(f"Payment {payment_id} not found")
        if payment.status != PaymentStatus.pending:
            raise PaymentAlreadyProcessed(
                f"Payment {payment_id} was already {payment.status.value}"
            )

        invoice = s.execute(
            select(Invoice).where(Invoice.id == payment.invoice_id).with_for_update()
        ).scalar_one()

        if admin_id is not None and s.get(User, admin_id) is None:
            log.warning(f"[payments] unknown admin #{admin_id}, confirmed_by left empty")
            admin_id = None

        now = clock.now()
        transition(payment, "status", new_status)
        payment.admin_notes = admin_notes or None
        payment.confirmed_by = admin_id
        payment.confirmed_at = now

        if new_status == PaymentStatus.confirmed:
            transition(invoice, "payment_status", InvoicePaymentStatus.paid)
            invoice.paid_amount = invoice.total_amount or Decimal("0")
            invoice.paid_at = now
            invoice.payment_method = payment.payment_method
            invoice.payment_reference = payment.payment_reference
        elif admin_notes:
            invoice.admin_notes = admin_notes

        result = ReconcileResult(
            payment_id=payment.id,
            status=new_status.value,
            invoice_id=invoice.id,
            subscription_id=invoice.subscription_id,
        )
        log.info(f"[payments] payment #{payment.id} {new_status.value} (invoice {invoice.invoice_number})")

    if new_status == PaymentStatus.confirmed:
        _run_cascade(result, clock)
    return result


def resume_confirmation(payment_id: int, *, clock: Clock = default_clock) -> ReconcileResult:
    """Re-run the cascade for an already confirmed payment."""
    with get_session() as s:
        payment = s.get(PaymentRecord, payment_id)
        if payment is None:
            raise PaymentNotFound(f"Payment {payment_id} not found")
        if payment.status != PaymentStatus.confirmed:
            raise InvalidTransition(f"Payment {payment_id} is {payment.status.value}, not confirmed")
        result = ReconcileResult(
            payment_id=payment.id,
            status=payment.status.value,
            invoice_id=payment.invoice_id,
            subscription_id=payment.invoice.subscription_id if payment.invoice else None,
        )
    log.info(f"[payments] resuming confirmation cascade for payment #{payment_id}")
    return _run_cascade(result, clock)
