"""
billing.py
──────────────────────────────
Monthly billing run.

For a target (month, year) every active subscription with a reachable
subscriber gets exactly one invoice for that period. An invoice of ANY type
(registration, monthly, additional) already covering the period means the
subscription is skipped; the (subscription_id, billing_month, billing_year)
unique constraint backs this up when two runs overlap.

Invoice creation is one transaction per subscription. The PDF and the
email are sent after the commit: their failure is reported in the run
summary but never removes the invoice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, asdict
from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as OrmSession

from .clock import Clock, default_clock
from .config import INVOICE_DUE_DAYS
from .db import get_session
from .errors import InvalidBillingPeriod, SubscriptionNotFound
from .invoices import period_label, render_invoice_pdf, snapshot_invoice
from .models import Invoice, InvoiceItem, Subscription, User
from .notify import invoice_email
from .states import InvoiceType, SubscriptionStatus
from .tokens import invoice_view_url
from .utils import make_code

log = logging.getLogger(__name__)


@dataclass
class BillingRunResult:
    target_month: int
    target_year: int
    generated_count: int = 0
    emails_sent: int = 0
    total_subscriptions: int = 0
    skipped: list = field(default_factory=list)
    errors: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def validate_period(month, year) -> tuple[int, int]:
    try:
        month, year = int(month), int(year)
    except (TypeError, ValueError):
        raise InvalidBillingPeriod("targetMonth and targetYear must be numbers")
    if not 1 <= month <= 12:
        raise InvalidBillingPeriod("targetMonth must be between 1 and 12")
    if not 2000 <= year <= 2100:
        raise InvalidBillingPeriod("targetYear is out of range")
    return month, year


def find_period_invoice(s: OrmSession, subscription_id: int, month: int, year: int) -> Invoice | None:
    return s.execute(
        select(Invoice).where(
            Invoice.subscription_id == subscription_id,
            Invoice.billing_month == month,
            Invoice.billing_year == year,
        )
    ).scalar_one_or_none()


def create_subscription_invoice(
    s: OrmSession,
    sub: Subscription,
    *,
    invoice_type: InvoiceType,
    month: int,
    year: int,
    description: str,
    clock: Clock,
) -> Invoice:
    """Invoice + its single item for one subscription period (caller's transaction)."""
    amount = sub.final_monthly_price
    invoice = Invoice(
        invoice_number=make_code("INV", clock.now()),
        subscription_id=sub.id,
        user_id=sub.user_id,
        invoice_type=invoice_type,
        billing_month=month,
        billing_year=year,
        due_date=clock.today() + timedelta(days=INVOICE_DUE_DAYS),
        subtotal=amount,
        tax_amount=0,
        total_amount=amount,
    )
    invoice.items.append(InvoiceItem(
        description=description,
        quantity=1,
        unit_price=amount,
        total_price=amount,
        service_id=sub.service_id,
        service_name=sub.service.name if sub.service else None,
    ))
    s.add(invoice)
    s.flush()
    return invoice


def _billable_subscription_ids(s: OrmSession) -> list[int]:
    return s.execute(
        select(Subscription.id)
        .join(User, Subscription.user_id == User.id)
        .where(
            Subscription.status == SubscriptionStatus.active,
            User.email.is_not(None),
        )
        .order_by(Subscription.created_at, Subscription.id)
    ).scalars().all()


def _bill_one(sub_id: int, month: int, year: int, clock: Clock) -> tuple[str, object]:
    """
    One subscription's invoice-or-skip decision, atomically.
    Returns ("created", snapshot) or ("skipped", reason).
    """
    with get_session() as s:
        sub = s.execute(
            select(Subscription).where(Subscription.id == sub_id).with_for_update()
        ).scalar_one_or_none()
        if sub is None:
            raise SubscriptionNotFound(f"Subscription {sub_id} not found")

        if (year, month) < (sub.start_year, sub.start_month):
            return "skipped", (
                f"Subscription {sub.id} starts {period_label(sub.start_month, sub.start_year)}"
            )

        existing = find_period_invoice(s, sub.id, month, year)
        if existing is not None:
            return "skipped", (
                f"Subscription {sub.id} already has invoice {existing.invoice_number} "
                f"({existing.invoice_type.value}) for {month}/{year}"
            )

        service_name = sub.service.name if sub.service else "Service"
        invoice = create_subscription_invoice(
            s, sub,
            invoice_type=InvoiceType.monthly,
            month=month,
            year=year,
            description=f"Monthly fee — {service_name} — {period_label(month, year)}",
            clock=clock,
        )
        log.info(f"[billing] invoice {invoice.invoice_number} created for subscription #{sub.id}")
        return "created", snapshot_invoice(invoice)


def deliver_invoice(doc: dict, pdf_renderer, email_sender) -> str | None:
    """Render + email one invoice. Returns an error string or None."""
    recipient = doc.get("user_email")
    try:
        pdf = pdf_renderer(doc)
    except Exception as e:
        log.error(f"❌ PDF for invoice {doc['invoice_number']} failed → {e}")
        return f"PDF generation failed for {recipient} ({doc['invoice_number']}): {e}"

    subject, body = invoice_email(
        doc.get("user_first_name"), doc["invoice_number"], doc["total_amount"], doc["due_date"],
        view_url=invoice_view_url(doc["id"], doc["user_id"]),
    )
    try:
        sent = email_sender.send(
            recipient, subject, body,
            attachments=[(f"{doc['invoice_number']}.pdf", pdf, "application/pdf")],
        )
    except Exception as e:
        sent = {"ok": False, "error": str(e)}
    if not sent or not sent.get("ok"):
        error = (sent or {}).get("error", "unknown error")
        log.warning(f"⚠️ [billing] email to {recipient} failed: {error}")
        return f"Email to {recipient} failed: {error}"
    return None


# ─────────────────────────────────────────────────────────────
# Monthly run
# ─────────────────────────────────────────────────────────────
def generate_monthly_invoices(
    target_month,
    target_year,
    *,
    clock: Clock = default_clock,
    pdf_renderer=render_invoice_pdf,
    email_sender=None,
) -> BillingRunResult:
    month, year = validate_period(target_month, target_year)
    result = BillingRunResult(target_month=month, target_year=year)

    with get_session() as s:
        ids = _billable_subscription_ids(s)
    result.total_subscriptions = len(ids)
    log.info(f"[billing] run {month}/{year}: {len(ids)} billable subscriptions")

    for sub_id in ids:
        try:
            outcome, payload = _bill_one(sub_id, month, year, clock)
        except IntegrityError as e:
            with get_session() as s:
                existing = find_period_invoice(s, sub_id, month, year)
                existing_number = existing.invoice_number if existing else None
            if existing_number:
                # another run inserted the same period between our check and insert
                log.warning(f"[billing] subscription #{sub_id}: period {month}/{year} billed concurrently")
                result.skipped.append(
                    f"Subscription {sub_id} was billed for {month}/{year} by a concurrent run "
                    f"(invoice {existing_number})"
                )
            else:
                log.error(f"❌ [billing] subscription #{sub_id}: integrity error → {e.orig}")
                result.errors.append(f"Error processing subscription {sub_id}: {e.orig}")
            continue
        except Exception as e:
            log.exception(f"[billing] subscription #{sub_id} failed")
            result.errors.append(f"Error processing subscription {sub_id}: {e}")
            continue

        if outcome == "skipped":
            log.info(f"[billing] ⏭️ {payload}")
            result.skipped.append(payload)
            continue

        result.generated_count += 1
        if email_sender is None:
            continue
        error = deliver_invoice(payload, pdf_renderer, email_sender)
        if error:
            result.errors.append(error)
        else:
            result.emails_sent += 1

    log.info(
        f"[billing] run {month}/{year} done: {result.generated_count} invoices, "
        f"{result.emails_sent} emails, {len(result.errors)} errors"
    )
    return result


def billing_status(*, clock: Clock = default_clock) -> dict:
    """Quick probe for the admin billing page."""
    with get_session() as s:
        count = s.execute(
            select(func.count(Subscription.id))
            .join(User, Subscription.user_id == User.id)
            .where(Subscription.status == SubscriptionStatus.active, User.email.is_not(None))
        ).scalar()
    today = clock.today()
    return {
        "active_subscriptions": count or 0,
        "current_month": today.month,
        "current_year": today.year,
    }
