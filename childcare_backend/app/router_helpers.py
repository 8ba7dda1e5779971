"""
router_helpers.py
──────────────────
Shared helper functions for router modules.

 • admin_required    → X-Admin-Token gate for /admin routes
 • current_user_id() → caller identity from X-User-Id
 • get_clock() / get_email_sender() → collaborators configured on the app
"""

import hmac
import logging
from functools import wraps
from flask import current_app, jsonify, request
from werkzeug.exceptions import HTTPException
from .errors import PortalError, ValidationError

log = logging.getLogger(__name__)


class Unauthorized(PortalError):
    status_code = 401


class Forbidden(PortalError):
    status_code = 403


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object body")
    return data


def require(data: dict, *fields):
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def current_user_id() -> int:
    raw = (request.headers.get("X-User-Id") or "").strip()
    if not raw.isdigit():
        raise Unauthorized("Sign in required")
    return int(raw)


def optional_user_id():
    raw = (request.headers.get("X-User-Id") or "").strip()
    return int(raw) if raw.isdigit() else None


def is_admin() -> bool:
    expected = current_app.config.get("ADMIN_TOKEN") or ""
    given = request.headers.get("X-Admin-Token") or ""
    return bool(expected) and hmac.compare_digest(given, expected)


def admin_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not is_admin():
            log.warning(f"[auth] admin route {request.path} refused")
            raise Forbidden("Administrators only")
        return view(*args, **kwargs)
    return wrapper


def get_clock():
    return current_app.config["CLOCK"]


def get_email_sender():
    return current_app.config.get("EMAIL_SENDER")


def get_pdf_renderer():
    return current_app.config["PDF_RENDERER"]


def handle_portal_error(e: PortalError):
    if e.status_code >= 500:
        log.error(f"❌ {request.method} {request.path} → {e.reason}")
    else:
        log.info(f"[{e.status_code}] {request.method} {request.path} → {e.reason}")
    return jsonify({"ok": False, "error": e.reason}), e.status_code


def handle_unexpected(e: Exception):
    if isinstance(e, HTTPException):
        return jsonify({"ok": False, "error": e.description}), e.code
    log.exception(f"❌ {request.method} {request.path} failed")
    return jsonify({"ok": False, "error": "Internal server error"}), 500
