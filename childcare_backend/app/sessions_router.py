"""
sessions_router.py
────────────────────────────────────────────
Admin triggers for the schedule expander.
────────────────────────────────────────────
"""

import logging
from flask import Blueprint, jsonify

from .router_helpers import admin_required, get_clock, get_email_sender
from .schedule import expand_schedule, generate_all_sessions

bp = Blueprint("sessions_bp", __name__)
log = logging.getLogger(__name__)


@bp.route("/admin/sessions/generate-all", methods=["POST"])
@admin_required
def generate_all():
    result = generate_all_sessions(clock=get_clock(), email_sender=get_email_sender())
    return jsonify({
        "ok": True,
        "message": (
            f"{result.total_sessions_created} sessions created for "
            f"{result.subscriptions_processed} subscriptions"
        ),
        "result": result.to_dict(),
    })


@bp.route("/admin/subscriptions/<int:subscription_id>/sessions", methods=["POST"])
@admin_required
def generate_for_subscription(subscription_id: int):
    created = expand_schedule(subscription_id, clock=get_clock())
    return jsonify({"ok": True, "subscription_id": subscription_id, "sessions_created": created})
