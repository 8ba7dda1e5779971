"""
pricing_router.py
────────────────────────────────────────────
Public price quotes and promotion-code checks for the enrolment form.
────────────────────────────────────────────
"""

import logging
from flask import Blueprint, jsonify, request

from .db import get_session
from .errors import ValidationError
from .pricing import calculate_session_price, describe_pricing, session_options, to_money
from .promotions import (
    calculate_discount,
    check_promotion_eligibility,
    find_promotion_by_code,
    format_discount,
)
from .router_helpers import get_clock, json_body, require

bp = Blueprint("pricing_bp", __name__)
log = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# GET /pricing?base_price=450&sessions=12
# ─────────────────────────────────────────────────────────────
@bp.route("/pricing", methods=["GET"])
def pricing_quote():
    base_price = request.args.get("base_price")
    sessions = request.args.get("sessions", "8")
    if base_price is None:
        raise ValidationError("base_price is required")
    try:
        sessions = int(sessions)
    except ValueError:
        raise ValidationError("sessions must be a whole number")

    result = calculate_session_price(base_price, sessions)
    return jsonify({
        "ok": True,
        "pricing": result.to_dict(),
        "description": describe_pricing(sessions, base_price),
    })


@bp.route("/pricing/options", methods=["GET"])
def pricing_options():
    return jsonify({"ok": True, "options": session_options()})


# ─────────────────────────────────────────────────────────────
# POST /promotions/validate
# {code, service_id, child_age?, price}
# ─────────────────────────────────────────────────────────────
@bp.route("/promotions/validate", methods=["POST"])
def validate_promotion():
    data = json_body()
    require(data, "code", "service_id", "price")
    try:
        service_id = int(data["service_id"])
        child_age = int(data["child_age"]) if data.get("child_age") not in (None, "") else None
    except (TypeError, ValueError):
        raise ValidationError("service_id and child_age must be numbers")
    price = to_money(data["price"])

    with get_session() as s:
        promo = find_promotion_by_code(s, data["code"])
        eligibility = check_promotion_eligibility(promo, service_id, child_age, today=get_clock().today())
        if not eligibility:
            return jsonify({"ok": True, "valid": False, "reason": eligibility.reason})
        discount = calculate_discount(promo, price)
        payload = {
            "id": promo.id,
            "title": promo.title,
            "discount_type": promo.discount_type.value,
            "label": format_discount(promo),
        }

    return jsonify({"ok": True, "valid": True, "promotion": payload, "discount": discount.to_dict()})
