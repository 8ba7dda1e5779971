"""
states.py
──────────────────────────────
Status enums for every stateful entity plus the single transition table
that all status changes go through.
"""

import enum
import logging
from .errors import InvalidTransition

log = logging.getLogger(__name__)


class PaymentStatus(str, enum.Enum):
    pending = "pending"        # proof submitted, waiting for admin review
    confirmed = "confirmed"
    rejected = "rejected"


class InvoicePaymentStatus(str, enum.Enum):
    unpaid = "unpaid"
    paid = "paid"
    overdue = "overdue"
    cancelled = "cancelled"


class InvoiceType(str, enum.Enum):
    registration = "registration"
    monthly = "monthly"
    additional = "additional"


class SubscriptionStatus(str, enum.Enum):
    pending = "pending"        # created at enrolment, waiting for first payment
    active = "active"
    cancelled = "cancelled"


class SessionStatus(str, enum.Enum):
    scheduled = "scheduled"
    completed = "completed"
    cancelled = "cancelled"
    rescheduled = "rescheduled"


class BookingStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"
    completed = "completed"


class BookingPaymentStatus(str, enum.Enum):
    unpaid = "unpaid"
    paid = "paid"


class DiscountType(str, enum.Enum):
    percentage = "percentage"
    fixed_amount = "fixed_amount"
    free_service = "free_service"


# ─────────────────────────────────────────────────────────────
# Allowed transitions (anything not listed is rejected)
# ─────────────────────────────────────────────────────────────
TRANSITIONS = {
    PaymentStatus: {
        PaymentStatus.pending: {PaymentStatus.confirmed, PaymentStatus.rejected},
    },
    InvoicePaymentStatus: {
        InvoicePaymentStatus.unpaid: {
            InvoicePaymentStatus.paid,
            InvoicePaymentStatus.overdue,
            InvoicePaymentStatus.cancelled,
        },
        InvoicePaymentStatus.overdue: {InvoicePaymentStatus.paid, InvoicePaymentStatus.cancelled},
    },
    SubscriptionStatus: {
        SubscriptionStatus.pending: {SubscriptionStatus.active, SubscriptionStatus.cancelled},
        SubscriptionStatus.active: {SubscriptionStatus.cancelled},
    },
    SessionStatus: {
        SessionStatus.scheduled: {
            SessionStatus.completed,
            SessionStatus.cancelled,
            SessionStatus.rescheduled,
        },
        SessionStatus.rescheduled: {
            SessionStatus.completed,
            SessionStatus.cancelled,
            SessionStatus.rescheduled,
        },
    },
    BookingStatus: {
        BookingStatus.pending: {BookingStatus.confirmed, BookingStatus.cancelled},
        BookingStatus.confirmed: {BookingStatus.completed, BookingStatus.cancelled},
    },
    BookingPaymentStatus: {
        BookingPaymentStatus.unpaid: {BookingPaymentStatus.paid},
    },
}


def can_transition(current, new) -> bool:
    table = TRANSITIONS.get(type(new), {})
    return new in table.get(current, set())


def transition(obj, attr: str, new):
    """Validate and apply `obj.<attr> = new`; raises InvalidTransition."""
    current = getattr(obj, attr)
    if not can_transition(current, new):
        raise InvalidTransition(
            f"{type(obj).__name__} #{getattr(obj, 'id', '?')}: "
            f"{attr} cannot go from {getattr(current, 'value', current)} to {new.value}"
        )
    setattr(obj, attr, new)
    log.debug(f"[state] {type(obj).__name__} #{getattr(obj, 'id', '?')} {attr}: {current} → {new}")
    return obj
