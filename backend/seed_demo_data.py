"""
Demo Setup Script - Create courts and the hourly time slot grid.

Run from backend/:
    python seed_demo_data.py

Idempotent: courts are matched by slug and slots by order, existing rows
are left untouched.
"""
from datetime import time

from sqlalchemy import select

from arena.lib.db import get_db_context, init_db
from arena.models import Court, CourtType, TimeSlot, User, UserRole


COURTS = [
    {
        "name": "Football 5 - Terrain A",
        "slug": "football-a",
        "type": CourtType.FOOTBALL,
        "description": "Synthetic turf, 5-a-side, floodlit",
        "price": 25000,
    },
    {
        "name": "Football 5 - Terrain B",
        "slug": "football-b",
        "type": CourtType.FOOTBALL,
        "description": "Synthetic turf, 5-a-side",
        "price": 25000,
    },
    {
        "name": "Padel 1",
        "slug": "padel-1",
        "type": CourtType.PADEL,
        "description": "Panoramic glass court",
        "price": 20000,
    },
]

# 08:00 to midnight, one hour each. The last slot ends at 00:00 next day.
FIRST_HOUR = 8
LAST_HOUR = 23

STAFF = {"phone": "+221770000000", "first_name": "Venue", "last_name": "Manager"}


def seed_courts(db) -> int:
    created = 0
    for data in COURTS:
        exists = db.execute(select(Court).where(Court.slug == data["slug"])).scalar_one_or_none()
        if exists:
            continue
        db.add(Court(**data))
        created += 1
    return created


def seed_time_slots(db) -> int:
    created = 0
    for order, hour in enumerate(range(FIRST_HOUR, LAST_HOUR + 1), start=1):
        exists = db.execute(select(TimeSlot).where(TimeSlot.slot_order == order)).scalar_one_or_none()
        if exists:
            continue
        db.add(TimeSlot(
            start_time=time(hour, 0),
            end_time=time((hour + 1) % 24, 0),
            slot_order=order,
        ))
        created += 1
    return created


def seed_staff(db) -> bool:
    exists = db.execute(select(User).where(User.phone == STAFF["phone"])).scalar_one_or_none()
    if exists:
        return False
    db.add(User(role=UserRole.MANAGER, **STAFF))
    return True


def run_demo_setup():
    """Create tables and seed reference data."""
    print("Starting demo setup...")
    init_db()

    with get_db_context() as db:
        courts = seed_courts(db)
        slots = seed_time_slots(db)
        staff = seed_staff(db)

    print(f"Courts created: {courts}")
    print(f"Time slots created: {slots}")
    print(f"Manager account created: {'yes' if staff else 'already present'}")
    print("Demo setup complete!")


if __name__ == "__main__":
    run_demo_setup()
