"""
__init__.py – Childcare Portal Backend
────────────────────────────────────────────────────────────
Initialises the Flask app and registers all feature blueprints.

✅ Includes:
 • pricing_router    → price quotes + promotion code check
 • bookings_router   → enrolment, single bookings, deletion
 • payments_router   → payment proofs + admin reconciliation
 • sessions_router   → session generation (admin)
 • invoices_router   → monthly billing run + secure PDF links
────────────────────────────────────────────────────────────
"""

import os
import logging
from flask import Flask

from . import config
from .clock import default_clock
from .db import init_db
from .errors import PortalError
from .invoices import render_invoice_pdf
from .notify import EmailSender
from .router_helpers import handle_portal_error, handle_unexpected


# ─────────────────────────────────────────────────────────────
# Flask App Factory
# ─────────────────────────────────────────────────────────────
def create_app(overrides: dict | None = None):
    """Create and configure the Flask application."""
    app = Flask(__name__)

    # ── Configure logging ───────────────────────────────
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    app.config.update(
        DATABASE_URL=config.DATABASE_URL,
        CREATE_TABLES=True,
        ADMIN_TOKEN=config.ADMIN_TOKEN,
        CLOCK=default_clock,
        EMAIL_SENDER=EmailSender(),
        PDF_RENDERER=render_invoice_pdf,
    )
    app.config.update(overrides or {})

    if app.config.get("DATABASE_URL"):
        init_db(app.config["DATABASE_URL"], create_tables=app.config["CREATE_TABLES"])

    # ── Register Blueprints ─────────────────────────────
    from .pricing_router import bp as pricing_bp
    from .bookings_router import bp as bookings_bp
    from .payments_router import bp as payments_bp
    from .sessions_router import bp as sessions_bp
    from .invoices_router import bp as invoices_bp

    app.register_blueprint(pricing_bp)
    app.register_blueprint(bookings_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(invoices_bp, url_prefix="/invoices")

    app.register_error_handler(PortalError, handle_portal_error)
    app.register_error_handler(Exception, handle_unexpected)

    # ── Root health check ───────────────────────────────
    @app.route("/health", methods=["GET"])
    def health_root():
        return {"status": "ok", "service": config.PORTAL_NAME}, 200

    return app


if __name__ == "__main__":
    port = int(os.getenv("PORT", 5000))
    create_app().run(host="0.0.0.0", port=port, debug=False)
