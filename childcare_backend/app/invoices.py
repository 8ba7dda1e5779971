"""
invoices.py
───────────────────────────────────────────────
Invoice snapshots and PDF rendering.

snapshot_invoice() copies everything the PDF / email need out of the ORM
rows while the transaction is still open; render_invoice_pdf() works on
that plain dict, so rendering never touches the database.
"""

import calendar
from io import BytesIO
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas
from .config import PORTAL_NAME
from .db import get_session
from .errors import InvoiceNotFound
from .models import Invoice
from .pricing import format_price


def period_label(month: int | None, year: int | None) -> str:
    if not month or not year:
        return "-"
    return f"{calendar.month_name[month]} {year}"


def snapshot_invoice(invoice: Invoice) -> dict:
    """Plain-data copy of an invoice (+ items, subscriber, child)."""
    sub = invoice.subscription
    user = invoice.user
    return {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "user_id": invoice.user_id,
        "invoice_type": invoice.invoice_type.value,
        "billing_month": invoice.billing_month,
        "billing_year": invoice.billing_year,
        "due_date": invoice.due_date,
        "subtotal": invoice.subtotal,
        "tax_amount": invoice.tax_amount or 0,
        "total_amount": invoice.total_amount,
        "payment_status": invoice.payment_status.value,
        "user_name": user.full_name if user else "",
        "user_first_name": user.first_name if user else "",
        "user_email": user.email if user else None,
        "child_name": sub.child_name if sub else None,
        "subscription_code": sub.subscription_code if sub else None,
        "items": [
            {
                "description": it.description,
                "quantity": it.quantity,
                "unit_price": it.unit_price,
                "total_price": it.total_price,
            }
            for it in invoice.items
        ],
    }


# ──────────────────────────────────────────────
# PDF GENERATOR
# ──────────────────────────────────────────────
def render_invoice_pdf(doc: dict) -> bytes:
    """A4 single-page invoice: header, billing details, item lines, totals."""
    buffer = BytesIO()
    p = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4
    p.setTitle(f"Invoice {doc['invoice_number']}")

    p.setFont("Helvetica-Bold", 16)
    p.drawString(50, height - 50, f"{PORTAL_NAME} – Invoice {doc['invoice_number']}")
    p.setFont("Helvetica", 11)
    y = height - 80
    header = [
        f"Billed to: {doc.get('user_name') or '-'}",
        f"Child: {doc.get('child_name') or '-'}",
        f"Subscription: {doc.get('subscription_code') or '-'}",
        f"Period: {period_label(doc.get('billing_month'), doc.get('billing_year'))}",
        f"Type: {doc['invoice_type']}",
        f"Due date: {doc['due_date']:%Y-%m-%d}",
    ]
    for line in header:
        p.drawString(50, y, line)
        y -= 16
    p.line(50, y, width - 50, y)
    y -= 20

    p.setFont("Helvetica-Bold", 11)
    p.drawString(50, y, "Description")
    p.drawString(360, y, "Qty")
    p.drawString(400, y, "Unit")
    p.drawString(480, y, "Total")
    y -= 18
    p.setFont("Helvetica", 10)
    for item in doc["items"]:
        p.drawString(50, y, str(item["description"])[:60])
        p.drawString(360, y, str(item["quantity"]))
        p.drawString(400, y, format_price(item["unit_price"]))
        p.drawString(480, y, format_price(item["total_price"]))
        y -= 16

    y -= 10
    p.line(50, y, width - 50, y)
    y -= 20
    p.setFont("Helvetica", 11)
    p.drawString(380, y, f"Subtotal: {format_price(doc['subtotal'])}")
    y -= 16
    p.drawString(380, y, f"Tax: {format_price(doc['tax_amount'])}")
    y -= 16
    p.setFont("Helvetica-Bold", 12)
    p.drawString(380, y, f"Total: {format_price(doc['total_amount'])}")

    p.showPage()
    p.save()
    buffer.seek(0)
    return buffer.read()


def load_invoice_document(invoice_id: int) -> dict:
    with get_session() as s:
        invoice = s.get(Invoice, invoice_id)
        if invoice is None:
            raise InvoiceNotFound(f"Invoice {invoice_id} not found")
        return snapshot_invoice(invoice)
