"""
utils.py – shared helpers
────────────────────────────────────────────────────────────
 • post_with_retry()  → webhook POST with retries and backoff
 • make_code()        → human friendly reference codes (INV…, SUB…, BK…)
 • weekday helpers for weekly schedules (0=Sunday … 6=Saturday)
────────────────────────────────────────────────────────────
"""

import logging
import secrets
import time
from datetime import date, datetime

import requests

log = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────
# Reliable Webhook Poster with Retries
# ─────────────────────────────────────────────────────────────
def post_with_retry(url: str, payload: dict, retries: int = 3, delay: float = 2.0, timeout: int = 10):
    """POST to a webhook with automatic retries and backoff. Returns the response or None."""
    for attempt in range(1, retries + 1):
        try:
            resp = requests.post(url, json=payload, timeout=timeout)
            if resp.ok:
                log.info(f"✅ [RETRY OK] {url} ({attempt}/{retries}) → {resp.status_code}")
                return resp
            log.warning(f"⚠️ [RETRY WARN] {url} attempt {attempt}/{retries} → {resp.status_code}")
            if resp.status_code < 500:
                return resp
        except requests.RequestException as e:
            log.warning(f"⚠️ [RETRY ERR] {url} attempt {attempt}/{retries} → {e}")
        if attempt < retries:
            time.sleep(delay * attempt)
    log.error(f"❌ [RETRY FAIL] All attempts failed for {url}")
    return None

# ─────────────────────────────────────────────────────────────
# Reference codes
# ─────────────────────────────────────────────────────────────
def make_code(prefix: str, now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%y%m%d")
    return f"{prefix}{stamp}{secrets.token_hex(3).upper()}"

# ─────────────────────────────────────────────────────────────
# Weekday helpers
# ─────────────────────────────────────────────────────────────
_WDAY = {
    "sun": 0, "sunday": 0,
    "mon": 1, "monday": 1,
    "tue": 2, "tues": 2, "tuesday": 2,
    "wed": 3, "wednesday": 3,
    "thu": 4, "thurs": 4, "thursday": 4,
    "fri": 5, "friday": 5,
    "sat": 6, "saturday": 6,
}

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def parse_weekday(key) -> int:
    """'2', 2, 'tue', 'Tuesday' → 2 (Sunday-based, as stored in weekly schedules)."""
    s = str(key).strip().lower()
    if s.isdigit() and 0 <= int(s) <= 6:
        return int(s)
    if s in _WDAY:
        return _WDAY[s]
    raise ValueError(f"Unrecognised weekday: {key!r}")


def sunday_weekday(d: date) -> int:
    """Python's Monday=0 weekday, shifted so Sunday=0."""
    return (d.weekday() + 1) % 7
