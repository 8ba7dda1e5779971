"""
pricing.py
──────────────────────────────
Monthly price by number of sessions.

 • 8 sessions / month is the base tier (service base price)
 • every extra block of 4 sessions adds 20% of the base price
 • fewer than 8 sessions are charged proportionally
"""

import math
from dataclasses import dataclass, asdict
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from .config import CURRENCY_SYMBOL
from .errors import InvalidPrice, InvalidSessionCount

# ──────────────────────────────────────────────────────────────
# Tier settings
# ──────────────────────────────────────────────────────────────
BASE_SESSIONS = 8
SESSION_BLOCK = 4
BLOCK_SURCHARGE = Decimal("0.20")   # per extra block, share of base price
MIN_SESSIONS = 4

SESSION_OPTIONS = (4, 8, 12, 16, 20)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class PricingResult:
    """
    base_price is always the service's monthly price for 8 sessions.
    additional_price is the adjustment on top of it: the block surcharge
    above 8 sessions, or a negative reduction for smaller packs.
    """
    base_sessions: int
    additional_sessions: int
    base_price: Decimal
    additional_price: Decimal
    total_price: Decimal
    total_sessions: int

    def to_dict(self) -> dict:
        return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in asdict(self).items()}


def to_money(value) -> Decimal:
    """Coerce int/float/str/Decimal into a Decimal without float noise."""
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidPrice(f"Invalid amount: {value!r}")
    if not value.is_finite():
        raise InvalidPrice(f"Invalid amount: {value!r}")
    return value


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def validate_session_count(total_sessions) -> int:
    if isinstance(total_sessions, bool) or not isinstance(total_sessions, int):
        raise InvalidSessionCount("Session count must be a whole number")
    if total_sessions % SESSION_BLOCK != 0:
        raise InvalidSessionCount(f"Session count must be a multiple of {SESSION_BLOCK}")
    if total_sessions < MIN_SESSIONS:
        raise InvalidSessionCount(f"The minimum is {MIN_SESSIONS} sessions per month")
    return total_sessions


def calculate_session_price(base_price, total_sessions: int) -> PricingResult:
    """Price breakdown for `total_sessions` per month of a service priced at `base_price`."""
    base = to_money(base_price)
    if base < 0:
        raise InvalidPrice("Base price cannot be negative")
    sessions = validate_session_count(total_sessions)

    if sessions < BASE_SESSIONS:
        total = round_money(base * sessions / BASE_SESSIONS)
        return PricingResult(
            base_sessions=sessions,
            additional_sessions=0,
            base_price=round_money(base),
            additional_price=total - round_money(base),
            total_price=total,
            total_sessions=sessions,
        )

    additional_sessions = sessions - BASE_SESSIONS
    blocks = math.ceil(additional_sessions / SESSION_BLOCK)
    additional_price = round_money(base * BLOCK_SURCHARGE * blocks)
    return PricingResult(
        base_sessions=BASE_SESSIONS,
        additional_sessions=additional_sessions,
        base_price=round_money(base),
        additional_price=additional_price,
        total_price=round_money(base) + additional_price,
        total_sessions=sessions,
    )


def format_price(price) -> str:
    return f"{CURRENCY_SYMBOL} {to_money(price):.2f}"


def describe_pricing(total_sessions: int, base_price) -> str:
    result = calculate_session_price(base_price, total_sessions)
    if total_sessions == BASE_SESSIONS:
        return f"Base price: {format_price(result.total_price)}"
    if total_sessions < BASE_SESSIONS:
        pct = round(total_sessions * 100 / BASE_SESSIONS)
        return f"{pct}% of base price: {format_price(result.total_price)}"
    blocks = math.ceil((total_sessions - BASE_SESSIONS) / SESSION_BLOCK)
    return f"Base price + {blocks * 20}%: {format_price(result.total_price)}"


def session_options() -> list[dict]:
    """Options offered on the enrolment form."""
    out = []
    for n in SESSION_OPTIONS:
        per_week = n // SESSION_BLOCK
        if n < BASE_SESSIONS:
            note = f"{n * 100 // BASE_SESSIONS}% of base price"
        elif n == BASE_SESSIONS:
            note = "base price"
        else:
            note = f"+{(n - BASE_SESSIONS) // SESSION_BLOCK * 20}% of base price"
        out.append({
            "value": n,
            "label": f"{n} sessions",
            "description": f"{per_week} per week ({note})",
        })
    return out
