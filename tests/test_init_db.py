from sqlalchemy import func, select

from childcare_backend.app.db import get_session
from childcare_backend.app.models import ScheduleSlot
from childcare_backend.init_db import seed_schedule_slots


def _slot_count():
    with get_session() as s:
        return s.execute(select(func.count(ScheduleSlot.id))).scalar()


def test_seeds_the_weekly_grid():
    with get_session() as s:
        created = seed_schedule_slots(s)

    assert created == 30
    assert _slot_count() == 30


def test_seeding_twice_adds_nothing(make_slot):
    make_slot(day_of_week=2)  # Tuesday 9:00 already exists

    with get_session() as s:
        first = seed_schedule_slots(s)
    with get_session() as s:
        second = seed_schedule_slots(s)

    assert first == 29
    assert second == 0
    assert _slot_count() == 30
