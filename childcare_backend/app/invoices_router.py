"""
invoices_router.py
────────────────────────────────────────────────────────────
Monthly billing run and invoice PDF links.

✅ Includes:
 • POST /invoices/generate-monthly  → bill every active subscription (admin)
 • GET  /invoices/generate-monthly  → billing status probe (admin)
 • GET  /invoices/view/<token>      → secure PDF viewer (link from the email)
────────────────────────────────────────────────────────────
"""

import io
import logging
from flask import Blueprint, jsonify, send_file

from .billing import billing_status, generate_monthly_invoices
from .invoices import load_invoice_document
from .router_helpers import (
    Forbidden,
    admin_required,
    get_clock,
    get_email_sender,
    get_pdf_renderer,
    json_body,
    require,
)
from .tokens import verify_invoice_token

bp = Blueprint("invoices_bp", __name__)
log = logging.getLogger(__name__)


@bp.route("/generate-monthly", methods=["POST"])
@admin_required
def generate_monthly():
    data = json_body()
    require(data, "targetMonth", "targetYear")
    result = generate_monthly_invoices(
        data["targetMonth"],
        data["targetYear"],
        clock=get_clock(),
        pdf_renderer=get_pdf_renderer(),
        email_sender=get_email_sender(),
    )
    return jsonify({
        "ok": True,
        "message": (
            f"Billing {result.target_month}/{result.target_year}: "
            f"{result.generated_count} invoices created, {result.emails_sent} emails sent"
        ),
        "result": result.to_dict(),
    })


@bp.route("/generate-monthly", methods=["GET"])
@admin_required
def generate_monthly_status():
    return jsonify({"ok": True, **billing_status(clock=get_clock())})


@bp.route("/view/<token>", methods=["GET"])
def view_invoice(token):
    """Secure PDF viewer."""
    check = verify_invoice_token(token)
    if not check.get("ok"):
        raise Forbidden(check.get("error") or "Invalid link")

    doc = load_invoice_document(int(check["invoice"]))
    if doc["user_id"] != check.get("user"):
        raise Forbidden("Invalid link")

    pdf = get_pdf_renderer()(doc)
    log.info(f"[invoices] PDF {doc['invoice_number']} viewed")
    return send_file(
        io.BytesIO(pdf),
        mimetype="application/pdf",
        as_attachment=False,
        download_name=f"{doc['invoice_number']}.pdf",
    )
