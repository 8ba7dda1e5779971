"""
notify.py – outbound email
────────────────────────────────────────────
Emails leave through an HTTP relay (EMAIL_WEBHOOK_URL) that accepts
{to, from, subject, body, attachments[]} as JSON. Attachments are sent
base64 encoded.

send() never raises: it returns {"ok": True} or {"ok": False, "error": ...}
so callers can record the failure and carry on.
────────────────────────────────────────────
"""

import base64
import logging
from datetime import time as dtime, datetime, timedelta

from .config import EMAIL_FROM, EMAIL_RETRIES, EMAIL_TIMEOUT, EMAIL_WEBHOOK_URL, PORTAL_NAME
from .pricing import format_price
from .utils import DAY_NAMES, post_with_retry, sunday_weekday

log = logging.getLogger(__name__)


class EmailSender:
    def __init__(self, url: str = EMAIL_WEBHOOK_URL, sender: str = EMAIL_FROM,
                 retries: int = EMAIL_RETRIES, timeout: int = EMAIL_TIMEOUT):
        self.url = url
        self.sender = sender
        self.retries = max(1, retries)
        self.timeout = timeout

    def send(self, recipient: str, subject: str, body: str, attachments=None) -> dict:
        """attachments: list of (filename, bytes, mimetype)."""
        if not recipient:
            return {"ok": False, "error": "missing recipient"}
        if not self.url:
            log.warning("⚠️ EMAIL_WEBHOOK_URL not set, cannot send email.")
            return {"ok": False, "error": "missing EMAIL_WEBHOOK_URL"}

        payload = {
            "action": "send_email",
            "from": self.sender,
            "to": recipient,
            "subject": subject,
            "body": body,
            "attachments": [
                {
                    "filename": name,
                    "mimetype": mimetype,
                    "content": base64.b64encode(content).decode("ascii"),
                }
                for name, content, mimetype in (attachments or [])
            ],
        }

        log.info(f"📧 Sending email → {recipient}: {subject}")
        resp = post_with_retry(self.url, payload, retries=self.retries, timeout=self.timeout)
        if resp is None:
            return {"ok": False, "error": "email relay unreachable"}
        if not resp.ok:
            return {"ok": False, "error": f"email relay HTTP {resp.status_code}"}
        try:
            js = resp.json() if resp.text else {}
        except ValueError:
            js = {}
        if isinstance(js, dict) and js.get("ok") is False:
            return {"ok": False, "error": js.get("error") or "email relay refused message"}
        return {"ok": True}


# ─────────────────────────────────────────────────────────────
# Message builders
# ─────────────────────────────────────────────────────────────
def _end_time(start: dtime, minutes: int) -> str:
    end = datetime.combine(datetime.min, start) + timedelta(minutes=minutes or 0)
    return end.strftime("%H:%M")


def invoice_email(first_name: str, invoice_number: str, amount, due_date, view_url: str | None = None) -> tuple[str, str]:
    subject = f"{PORTAL_NAME} – Invoice {invoice_number}"
    link = f"You can also view it online: {view_url}\n" if view_url else ""
    body = (
        f"Hi {first_name or 'there'},\n\n"
        f"Your invoice {invoice_number} for {format_price(amount)} is attached.\n"
        f"{link}"
        f"Please pay before {due_date:%d %B %Y} and upload your proof of payment in the portal.\n\n"
        f"Thank you,\n{PORTAL_NAME}"
    )
    return subject, body


def itinerary_email(child_name: str, service_name: str, sessions) -> tuple[str, str]:
    """sessions: iterable of Session rows, already ordered by date."""
    lines = [
        f"• {DAY_NAMES[sunday_weekday(s.session_date)]} {s.session_date:%d/%m/%Y} "
        f"{s.session_time:%H:%M}–{_end_time(s.session_time, s.duration_minutes)}"
        for s in sessions
    ]
    subject = f"{PORTAL_NAME} – Session itinerary for {child_name}"
    body = (
        f"Here is the session itinerary for {child_name} ({service_name}):\n\n"
        + "\n".join(lines)
        + f"\n\nSee you soon!\n{PORTAL_NAME}"
    )
    return subject, body
