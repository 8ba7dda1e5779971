"""
bookings_router.py
────────────────────────────────────────────
Parent-facing enrolment and single bookings.

 • POST   /subscriptions   → recurring enrolment + registration invoice
 • POST   /bookings        → single booking
 • DELETE /bookings/<id>   → remove a pending, unpaid booking
────────────────────────────────────────────
"""

import logging
from flask import Blueprint, jsonify

from .bookings import create_booking, delete_booking, enroll_subscription
from .errors import ValidationError
from .router_helpers import (
    current_user_id,
    get_clock,
    get_email_sender,
    get_pdf_renderer,
    is_admin,
    json_body,
    require,
)

bp = Blueprint("bookings_bp", __name__)
log = logging.getLogger(__name__)


def _int(data: dict, key: str) -> int:
    try:
        return int(data[key])
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")


@bp.route("/subscriptions", methods=["POST"])
def create_subscription():
    user_id = current_user_id()
    data = json_body()
    require(data, "service_id", "child_name", "child_age", "sessions_per_month",
            "weekly_schedule", "start_month", "start_year")

    result = enroll_subscription(
        user_id,
        _int(data, "service_id"),
        data["child_name"],
        data["child_age"],
        _int(data, "sessions_per_month"),
        data["weekly_schedule"],
        data["start_month"],
        data["start_year"],
        promotion_code=data.get("promotion_code") or None,
        clock=get_clock(),
        pdf_renderer=get_pdf_renderer(),
        email_sender=get_email_sender(),
    )
    return jsonify({"ok": True, "subscription": result.to_dict()}), 201


@bp.route("/bookings", methods=["POST"])
def create_single_booking():
    user_id = current_user_id()
    data = json_body()
    require(data, "service_id", "child_name", "child_age")
    booking_id = create_booking(
        user_id,
        _int(data, "service_id"),
        data["child_name"],
        data["child_age"],
        promotion_code=data.get("promotion_code") or None,
        clock=get_clock(),
    )
    return jsonify({"ok": True, "booking_id": booking_id}), 201


@bp.route("/bookings/<int:booking_id>", methods=["DELETE"])
def remove_booking(booking_id: int):
    owner = None if is_admin() else current_user_id()
    delete_booking(booking_id, user_id=owner)
    return jsonify({"ok": True, "message": "Booking deleted"})
