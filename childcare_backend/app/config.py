# app/config.py
import os, logging


# ── Helpers ───────────────────────────────────────────────────────────────────
def _split_csv(env_val: str) -> list[str]:
    return [x.strip() for x in (env_val or "").split(",") if x.strip()]


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


# ── Database ─────────────────────────────────────────────────────────────────
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///early_stimulation.db")

# ── Local timezone ───────────────────────────────────────────────────────────
TZ_NAME = os.environ.get("TZ_NAME", "America/Lima")

# ── Admin gate (real auth lives in front of this service) ────────────────────
ADMIN_TOKEN = os.environ.get("ADMIN_TOKEN", "")

# ── Outbound email (webhook relay) ───────────────────────────────────────────
EMAIL_WEBHOOK_URL = os.environ.get("EMAIL_WEBHOOK_URL", "")
EMAIL_FROM        = os.environ.get("EMAIL_FROM", "no-reply@example.com")
EMAIL_TIMEOUT     = _int_env("EMAIL_TIMEOUT", 15)
EMAIL_RETRIES     = _int_env("EMAIL_RETRIES", 2)

# ── Portal branding ──────────────────────────────────────────────────────────
PORTAL_NAME     = os.environ.get("PORTAL_NAME", "Early Stimulation Center")
BASE_URL        = os.environ.get("BASE_URL", "http://localhost:5000")
SECRET_KEY      = os.environ.get("SECRET_KEY", "dev-secret-change-me")
INVOICE_LINK_MAX_AGE = _int_env("INVOICE_LINK_MAX_AGE", 7 * 24 * 3600)
CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "S/")

# ── Billing & scheduling ─────────────────────────────────────────────────────
INVOICE_DUE_DAYS        = _int_env("INVOICE_DUE_DAYS", 7)
SCHEDULE_HORIZON_MONTHS = _int_env("SCHEDULE_HORIZON_MONTHS", 3)
DEFAULT_SESSION_MINUTES = _int_env("DEFAULT_SESSION_MINUTES", 60)

# Accepted manual payment channels (proof uploaded, admin attests)
PAYMENT_METHODS = _split_csv(os.environ.get("PAYMENT_METHODS", "yape,transfer")) or ["transfer"]

# ── Startup logging ──────────────────────────────────────────────────────────
logger = logging.getLogger(__name__)
logger.info(
    f"[CONFIG] TZ_NAME={TZ_NAME} INVOICE_DUE_DAYS={INVOICE_DUE_DAYS} "
    f"SCHEDULE_HORIZON_MONTHS={SCHEDULE_HORIZON_MONTHS} PAYMENT_METHODS={PAYMENT_METHODS} "
    f"email_webhook_set={bool(EMAIL_WEBHOOK_URL)}"
)
