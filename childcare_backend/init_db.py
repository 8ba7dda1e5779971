# init_db.py
import datetime as dt

from sqlalchemy import select

from childcare_backend.app.db import get_session, init_db
from childcare_backend.app.models import ScheduleSlot

# Weekday mornings and afternoons, Monday (1) to Saturday (6)
DEFAULT_HOURS = [(9, 10), (10, 11), (11, 12), (15, 16), (16, 17)]
DEFAULT_DAYS = range(1, 7)


def seed_schedule_slots(session, days=DEFAULT_DAYS, hours=DEFAULT_HOURS):
    """
    Upsert the general weekly slot grid (slots not tied to a service).
    Returns how many slots were created.
    """
    existing = {
        (slot.day_of_week, slot.start_time)
        for slot in session.scalars(
            select(ScheduleSlot).where(ScheduleSlot.service_id.is_(None))
        ).all()
    }
    created = 0
    for day in days:
        for start_hour, end_hour in hours:
            start = dt.time(start_hour, 0)
            if (day, start) in existing:
                continue
            session.add(ScheduleSlot(
                day_of_week=day,
                start_time=start,
                end_time=dt.time(end_hour, 0),
                max_capacity=1,
                is_active=True,
            ))
            created += 1
    return created


def main(url=None):
    init_db(url, create_tables=True)
    with get_session() as s:
        created = seed_schedule_slots(s)
    print(f"✅ DB schema created, {created} schedule slots seeded")
    return created


if __name__ == "__main__":
    main()
