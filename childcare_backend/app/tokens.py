"""
tokens.py – Secure, Expiring Link Utility
────────────────────────────────────────────
Signed, short-lived tokens for the invoice PDF links sent by email.
────────────────────────────────────────────
"""

from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from .config import BASE_URL, INVOICE_LINK_MAX_AGE, SECRET_KEY

SALT = "childcare-invoice"


def _serializer():
    return URLSafeTimedSerializer(SECRET_KEY, salt=SALT)


def generate_invoice_token(invoice_id: int, user_id: int) -> str:
    """Return signed token encoding invoice + owner."""
    return _serializer().dumps({"invoice": invoice_id, "user": user_id})


def invoice_view_url(invoice_id: int, user_id: int) -> str:
    return f"{BASE_URL.rstrip('/')}/invoices/view/{generate_invoice_token(invoice_id, user_id)}"


def verify_invoice_token(token: str, max_age: int = INVOICE_LINK_MAX_AGE) -> dict:
    """
    Returns {"ok": True, "invoice": id, "user": id} or {"ok": False, "error": ...}.
    Default expiry = 7 days.
    """
    try:
        data = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        return {"ok": False, "error": "Expired link"}
    except BadSignature:
        return {"ok": False, "error": "Invalid link"}
    if not isinstance(data, dict) or "invoice" not in data:
        return {"ok": False, "error": "Invalid link"}
    return {"ok": True, **data}
