"""
payments_router.py
────────────────────────────────────────────
Payment proofs (parents) and their reconciliation (admin).

 • POST /payments                        → submit a proof for an invoice
 • PUT  /admin/payments/<id>             → {status: confirmed|rejected, admin_notes?}
 • POST /admin/payments/<id>/resume      → re-run the confirmation cascade
────────────────────────────────────────────
"""

import logging
from flask import Blueprint, jsonify

from .errors import ValidationError
from .payments import reconcile_payment, resume_confirmation, submit_payment
from .router_helpers import admin_required, current_user_id, get_clock, json_body, optional_user_id, require

bp = Blueprint("payments_bp", __name__)
log = logging.getLogger(__name__)


@bp.route("/payments", methods=["POST"])
def submit():
    user_id = current_user_id()
    data = json_body()
    require(data, "invoice_id", "amount", "payment_method", "payment_reference")
    try:
        invoice_id = int(data["invoice_id"])
    except (TypeError, ValueError):
        raise ValidationError("invoice_id must be a number")

    payment_id = submit_payment(
        invoice_id,
        user_id,
        data["amount"],
        data["payment_method"],
        data["payment_reference"],
        proof_path=data.get("proof_path"),
    )
    return jsonify({
        "ok": True,
        "payment_id": payment_id,
        "message": "Payment received. Our team will review it shortly.",
    }), 201


@bp.route("/admin/payments/<int:payment_id>", methods=["PUT"])
@admin_required
def reconcile(payment_id: int):
    data = json_body()
    require(data, "status")
    result = reconcile_payment(
        payment_id,
        data["status"],
        data.get("admin_notes"),
        admin_id=optional_user_id(),
        clock=get_clock(),
    )
    return jsonify({"ok": True, "result": result.to_dict()})


@bp.route("/admin/payments/<int:payment_id>/resume", methods=["POST"])
@admin_required
def resume(payment_id: int):
    result = resume_confirmation(payment_id, clock=get_clock())
    return jsonify({"ok": True, "result": result.to_dict()})
