"""
schedule.py
──────────────────────────────
Turns a subscription's weekly template into dated Session rows.

weekly_schedule maps a weekday (0=Sunday … 6=Saturday, or an English day
name) to a schedule slot id, or null for "no session that day":

    {"2": 14, "4": 15, "0": null}

Expansion covers today (or the subscription's first month, whichever is
later) through the last day of the 3rd following month. It is per-date
idempotent: a date that already holds a session for the subscription is
never generated again, so the expander can be re-run at activation time,
from the bulk admin action, or after a schedule change.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field, asdict
from datetime import date, time, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session as OrmSession

from .clock import Clock, add_months, default_clock
from .config import DEFAULT_SESSION_MINUTES, SCHEDULE_HORIZON_MONTHS
from .db import get_session
from .errors import PortalError, SubscriptionNotFound, SubscriptionNotSchedulable, UnknownScheduleSlot
from .models import ScheduleSlot, Session, Subscription
from .notify import itinerary_email
from .states import SessionStatus, SubscriptionStatus
from .utils import parse_weekday, sunday_weekday

log = logging.getLogger(__name__)


@dataclass
class BulkScheduleResult:
    subscriptions_processed: int = 0
    subscriptions_skipped: int = 0
    total_sessions_created: int = 0
    emails_sent: int = 0
    details: list = field(default_factory=list)
    errors: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


# ──────────────────────────────────────────────────────────────────────────────
# Utilities
# ──────────────────────────────────────────────────────────────────────────────
def has_schedule(weekly_schedule: dict | None) -> bool:
    return any(slot_id for slot_id in (weekly_schedule or {}).values())


def schedule_horizon(today: date, start_year: int, start_month: int) -> tuple[date, date]:
    """(first, last) date to generate; first > last means nothing to do yet."""
    first = max(today, date(start_year, start_month, 1))
    y, m = add_months(today.year, today.month, SCHEDULE_HORIZON_MONTHS)
    last = date(y, m, calendar.monthrange(y, m)[1])
    return first, last


def resolve_slots(s: OrmSession, weekly_schedule: dict) -> dict[int, time]:
    """weekday → session start time, from the referenced schedule slots."""
    out: dict[int, time] = {}
    for key, slot_id in (weekly_schedule or {}).items():
        if not slot_id:
            continue
        try:
            wday = parse_weekday(key)
        except ValueError as e:
            raise UnknownScheduleSlot(str(e))
        slot = s.get(ScheduleSlot, int(slot_id))
        if slot is None or not slot.is_active:
            raise UnknownScheduleSlot(f"Schedule slot {slot_id} does not exist or is inactive")
        if slot.day_of_week != wday:
            log.warning(f"[schedule] slot #{slot.id} is for weekday {slot.day_of_week}, used on {wday}")
        out[wday] = slot.start_time
    return out


def _taken_dates(s: OrmSession, subscription_id: int) -> set[date]:
    rows = s.execute(
        select(Session.session_date, Session.original_date).where(Session.subscription_id == subscription_id)
    ).all()
    taken = set()
    for session_date, original_date in rows:
        taken.add(session_date)
        if original_date:
            taken.add(original_date)
    return taken


def _next_session_number(s: OrmSession, subscription_id: int) -> int:
    last = s.execute(
        select(func.max(Session.session_number)).where(Session.subscription_id == subscription_id)
    ).scalar()
    return (last or 0) + 1


def lock_subscription(s: OrmSession, subscription_id: int) -> Subscription:
    sub = s.execute(
        select(Subscription).where(Subscription.id == subscription_id).with_for_update()
    ).scalar_one_or_none()
    if sub is None:
        raise SubscriptionNotFound(f"Subscription {subscription_id} not found")
    return sub


# ──────────────────────────────────────────────────────────────────────────────
# Core expansion
# ──────────────────────────────────────────────────────────────────────────────
def expand_in_session(s: OrmSession, sub: Subscription, today: date) -> list[Session]:
    """Insert the missing sessions for `sub` using the caller's transaction."""
    if sub.status == SubscriptionStatus.cancelled:
        raise SubscriptionNotSchedulable(f"Subscription {sub.id} is cancelled")
    if not has_schedule(sub.weekly_schedule):
        log.info(f"[schedule] subscription #{sub.id}: no schedule configured")
        return []

    slots = resolve_slots(s, sub.weekly_schedule)
    first, last = schedule_horizon(today, sub.start_year, sub.start_month)
    taken = _taken_dates(s, sub.id)
    number = _next_session_number(s, sub.id)
    duration = (sub.service.duration_minutes if sub.service else None) or DEFAULT_SESSION_MINUTES

    created = []
    day = first
    while day <= last:
        start = slots.get(sunday_weekday(day))
        if start is not None and day not in taken:
            created.append(Session(
                subscription_id=sub.id,
                session_date=day,
                session_time=start,
                session_number=number,
                duration_minutes=duration,
                status=SessionStatus.scheduled,
            ))
            number += 1
        day += timedelta(days=1)

    if created:
        s.add_all(created)
        s.flush()
    log.info(f"[schedule] subscription #{sub.id}: {len(created)} sessions created ({first} → {last})")
    return created


def expand_schedule(subscription_id: int, *, clock: Clock = default_clock) -> int:
    """Generate missing sessions for one subscription. Returns rows inserted."""
    with get_session() as s:
        sub = lock_subscription(s, subscription_id)
        created = expand_in_session(s, sub, clock.today())
        return len(created)


# ──────────────────────────────────────────────────────────────────────────────
# Bulk "generate all" (admin)
# ──────────────────────────────────────────────────────────────────────────────
def generate_all_sessions(*, clock: Clock = default_clock, email_sender=None) -> BulkScheduleResult:
    """
    Expand every active subscription, each in its own transaction.
    A subscription receiving its first sessions here also gets an itinerary email.
    """
    result = BulkScheduleResult()
    with get_session() as s:
        ids = s.execute(
            select(Subscription.id)
            .where(Subscription.status == SubscriptionStatus.active)
            .order_by(Subscription.created_at, Subscription.id)
        ).scalars().all()

    for sub_id in ids:
        detail = {"subscription_id": sub_id, "child_name": None, "sessions_created": 0}
        itinerary = None
        try:
            with get_session() as s:
                sub = lock_subscription(s, sub_id)
                detail["child_name"] = sub.child_name
                if not has_schedule(sub.weekly_schedule):
                    detail.update(status="skipped", message="No schedule configured")
                else:
                    first_run = _next_session_number(s, sub.id) == 1
                    created = expand_in_session(s, sub, clock.today())
                    detail["sessions_created"] = len(created)
                    if created:
                        detail["status"] = "success"
                        if first_run and sub.user and sub.user.email:
                            subject, body = itinerary_email(
                                sub.child_name,
                                sub.service.name if sub.service else "",
                                sorted(created, key=lambda x: x.session_date),
                            )
                            itinerary = (sub.user.email, subject, body)
                    else:
                        detail.update(status="skipped", message="Already scheduled for the horizon")
        except PortalError as e:
            log.warning(f"[schedule] subscription #{sub_id} skipped: {e.reason}")
            detail.update(status="error", message=e.reason)
            result.errors.append(f"Subscription {sub_id}: {e.reason}")
        except Exception as e:
            log.exception(f"[schedule] subscription #{sub_id} failed")
            detail.update(status="error", message=str(e))
            result.errors.append(f"Subscription {sub_id}: {e}")

        if detail["status"] == "success":
            result.subscriptions_processed += 1
            result.total_sessions_created += detail["sessions_created"]
        else:
            result.subscriptions_skipped += 1

        if itinerary and email_sender is not None:
            sent = _send_itinerary(email_sender, *itinerary)
            if sent.get("ok"):
                result.emails_sent += 1
            else:
                result.errors.append(f"Itinerary email to {itinerary[0]} failed: {sent.get('error')}")
        result.details.append(detail)

    log.info(
        f"[schedule] generate-all: {result.total_sessions_created} sessions, "
        f"{result.subscriptions_processed} processed, {result.subscriptions_skipped} skipped"
    )
    return result


def _send_itinerary(email_sender, recipient: str, subject: str, body: str) -> dict:
    try:
        return email_sender.send(recipient, subject, body) or {"ok": False, "error": "no response"}
    except Exception as e:
        log.error(f"❌ itinerary email to {recipient} failed → {e}")
        return {"ok": False, "error": str(e)}
