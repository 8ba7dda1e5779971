"""
promotions.py
──────────────────────────────
Promotion eligibility, discount maths and redemption.

Eligibility and discount are pure. Redemption / release mutate
`used_count` and must run inside the caller's booking transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import update, select
from sqlalchemy.orm import Session as OrmSession

from .errors import InvalidPromotion, PromotionExhausted, PromotionNotFound
from .models import Promotion
from .pricing import format_price, round_money, to_money
from .states import DiscountType

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Eligibility:
    valid: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


@dataclass(frozen=True)
class DiscountResult:
    original_price: Decimal
    discount_amount: Decimal
    final_price: Decimal
    is_free_service: bool

    def to_dict(self) -> dict:
        return {
            "original_price": str(self.original_price),
            "discount_amount": str(self.discount_amount),
            "final_price": str(self.final_price),
            "is_free_service": self.is_free_service,
        }


def validate_promotion_dates(promotion: Promotion) -> None:
    if promotion.start_date is None or promotion.end_date is None:
        raise InvalidPromotion("Promotion needs a start and end date")
    if promotion.end_date < promotion.start_date:
        raise InvalidPromotion("Promotion end date is before its start date")


# ─────────────────────────────────────────────────────────────
# Eligibility
# ─────────────────────────────────────────────────────────────
def check_promotion_eligibility(
    promotion: Promotion,
    service_id: int,
    child_age: Optional[int],
    *,
    today: date,
) -> Eligibility:
    """First failing rule wins; order matters for the reason shown to parents."""
    validate_promotion_dates(promotion)

    if not promotion.is_active:
        return Eligibility(False, "Promotion is not active")

    if today < promotion.start_date:
        return Eligibility(False, "Promotion has not started yet")
    if today > promotion.end_date:
        return Eligibility(False, "Promotion has expired")

    if promotion.max_uses is not None and (promotion.used_count or 0) >= promotion.max_uses:
        return Eligibility(False, "Promotion usage limit reached")

    services = promotion.applicable_service_ids or []
    if services and service_id not in services:
        return Eligibility(False, "Promotion does not apply to this service")

    if child_age is not None:
        if promotion.min_age is not None and child_age < promotion.min_age:
            return Eligibility(False, f"Promotion is for children from {promotion.min_age} months")
        if promotion.max_age is not None and child_age > promotion.max_age:
            return Eligibility(False, f"Promotion is for children up to {promotion.max_age} months")

    return Eligibility(True)


# ─────────────────────────────────────────────────────────────
# Discount
# ─────────────────────────────────────────────────────────────
def calculate_discount(promotion: Promotion, original_price) -> DiscountResult:
    original = to_money(original_price)
    value = to_money(promotion.discount_value or 0)
    kind = DiscountType(promotion.discount_type)
    is_free = False

    if kind == DiscountType.percentage:
        final = original - original * value / 100
    elif kind == DiscountType.fixed_amount:
        final = original - min(value, original)
    else:
        final = Decimal("0")
        is_free = True

    final = round_money(max(Decimal("0"), final))
    return DiscountResult(
        original_price=round_money(original),
        discount_amount=round_money(original) - final,
        final_price=final,
        is_free_service=is_free,
    )


def format_discount(promotion: Promotion) -> str:
    kind = DiscountType(promotion.discount_type)
    if kind == DiscountType.percentage:
        return f"{to_money(promotion.discount_value).normalize():f}% off"
    if kind == DiscountType.fixed_amount:
        return f"{format_price(promotion.discount_value)} off"
    return "Free service"


def promotion_status(promotion: Promotion, today: date) -> str:
    """active | scheduled | expired | inactive"""
    if not promotion.is_active:
        return "inactive"
    if today < promotion.start_date:
        return "scheduled"
    if today > promotion.end_date:
        return "expired"
    return "active"


def is_expiring_soon(promotion: Promotion, today: date, days: int = 7) -> bool:
    left = (promotion.end_date - today).days
    return 0 < left <= days


# ─────────────────────────────────────────────────────────────
# Lookup & redemption (transactional)
# ─────────────────────────────────────────────────────────────
def find_promotion_by_code(s: OrmSession, code: str) -> Promotion:
    code = (code or "").strip()
    promo = s.execute(
        select(Promotion).where(Promotion.promo_code == code, Promotion.is_active.is_(True))
    ).scalar_one_or_none()
    if promo is None:
        raise PromotionNotFound("Invalid promotion code")
    return promo


def redeem_promotion(s: OrmSession, promotion_id: int) -> None:
    """
    Compare-and-increment used_count. Zero matched rows means the limit was
    reached by a concurrent redemption.
    """
    res = s.execute(
        update(Promotion)
        .where(
            Promotion.id == promotion_id,
            (Promotion.max_uses.is_(None)) | (Promotion.used_count < Promotion.max_uses),
        )
        .values(used_count=Promotion.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise PromotionExhausted("Promotion usage limit reached")
    log.info(f"[promotions] redeemed promotion #{promotion_id}")


def release_promotion(s: OrmSession, promotion_id: int) -> None:
    """Give back one use (never below zero)."""
    s.execute(
        update(Promotion)
        .where(Promotion.id == promotion_id, Promotion.used_count > 0)
        .values(used_count=Promotion.used_count - 1)
        .execution_options(synchronize_session=False)
    )
    log.info(f"[promotions] released one use of promotion #{promotion_id}")
