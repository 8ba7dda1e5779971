"""
errors.py
──────────────────────────────
Exception taxonomy for the billing & scheduling core.

 • ValidationError → bad input, nothing written
 • NotFoundError   → referenced row does not exist
 • ConflictError   → state/uniqueness conflict (benign no-op in batch runs)

Every error carries a human readable `reason`, which is what the routers
return as `{"ok": false, "error": reason}`.
"""


class PortalError(Exception):
    """Base class for all core errors."""

    status_code = 500

    def __init__(self, reason: str = ""):
        self.reason = reason or self.__class__.__name__
        super().__init__(self.reason)


# ── Validation ────────────────────────────────────────────────
class ValidationError(PortalError):
    status_code = 400


class InvalidSessionCount(ValidationError):
    pass


class InvalidPrice(ValidationError):
    pass


class InvalidPromotion(ValidationError):
    pass


class InvalidBillingPeriod(ValidationError):
    pass


class InvalidPayment(ValidationError):
    pass


class EmptySchedule(ValidationError):
    pass


class UnknownScheduleSlot(ValidationError):
    pass


# ── Not found ─────────────────────────────────────────────────
class NotFoundError(PortalError):
    status_code = 404


class ServiceNotFound(NotFoundError):
    pass


class PromotionNotFound(NotFoundError):
    pass


class SubscriptionNotFound(NotFoundError):
    pass


class InvoiceNotFound(NotFoundError):
    pass


class PaymentNotFound(NotFoundError):
    pass


class BookingNotFound(NotFoundError):
    pass


# ── Conflicts ─────────────────────────────────────────────────
class ConflictError(PortalError):
    status_code = 409


class InvalidTransition(ConflictError):
    pass


class PaymentAlreadyProcessed(ConflictError):
    pass


class PaymentAlreadyPending(ConflictError):
    pass


class InvoiceNotPayable(ConflictError):
    pass


class PromotionExhausted(ConflictError):
    pass


class PromotionNotEligible(ConflictError):
    pass


class BookingNotDeletable(ConflictError):
    pass


class ServiceFull(ConflictError):
    pass


class SubscriptionNotSchedulable(ConflictError):
    pass
