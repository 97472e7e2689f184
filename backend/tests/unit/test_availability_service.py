"""Tests for slot status resolution."""
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from arena.api.middleware.error_handler import ErrorCode, NotFoundException
from arena.models import BookingStatus, Court, CourtType
from arena.services.availability_service import (
    SLOT_FREE,
    SLOT_PAID,
    SLOT_PAST,
    SLOT_UNPAID,
    AvailabilityService,
)


@pytest.fixture
def availability(db_session, clock):
    return AvailabilityService(db_session, now_fn=clock)


def _by_slot(slots):
    return {s.slot_id: s for s in slots}


@pytest.mark.unit
def test_all_free_in_slot_order(availability, court, slots, tomorrow):
    resolved = availability.get_available_slots(court.id, tomorrow)

    assert [s.slot_id for s in resolved] == [slots["morning"].id, slots["evening"].id, slots["late"].id]
    assert {s.status for s in resolved} == {SLOT_FREE}
    assert not any(s.can_override for s in resolved)


@pytest.mark.unit
def test_booked_slots(availability, make_booking, court, slots, customer, other_customer, tomorrow):
    unpaid = make_booking(other_customer, slots["morning"])
    paid = make_booking(other_customer, slots["evening"], status=BookingStatus.PAID)

    resolved = _by_slot(availability.get_available_slots(court.id, tomorrow, customer_id=customer.id))

    morning = resolved[slots["morning"].id]
    assert morning.status == SLOT_UNPAID
    assert morning.can_override is True
    assert morning.booking_id == unpaid.id

    evening = resolved[slots["evening"].id]
    assert evening.status == SLOT_PAID
    assert evening.can_override is False
    assert evening.booking_id == paid.id


@pytest.mark.unit
def test_own_unpaid_hold_is_not_overridable(availability, make_booking, court, slots, customer, tomorrow):
    make_booking(customer, slots["morning"])

    resolved = _by_slot(availability.get_available_slots(court.id, tomorrow, customer_id=customer.id))

    assert resolved[slots["morning"].id].status == SLOT_UNPAID
    assert resolved[slots["morning"].id].can_override is False


@pytest.mark.unit
def test_terminal_bookings_leave_slot_free(availability, make_booking, court, slots, customer, tomorrow):
    make_booking(customer, slots["morning"], status=BookingStatus.CANCELLED)
    make_booking(customer, slots["morning"], status=BookingStatus.CANCELLED_BY_OVERRIDE)

    resolved = _by_slot(availability.get_available_slots(court.id, tomorrow))

    assert resolved[slots["morning"].id].status == SLOT_FREE


@pytest.mark.unit
def test_started_slots(availability, make_booking, court, slots, other_customer, clock, tomorrow):
    make_booking(other_customer, slots["morning"])
    clock.set(datetime(2026, 3, 11, 19, 30, tzinfo=timezone.utc))

    resolved = _by_slot(availability.get_available_slots(court.id, tomorrow))

    # A started unpaid hold stays visible but can no longer be overridden
    assert resolved[slots["morning"].id].status == SLOT_UNPAID
    assert resolved[slots["morning"].id].can_override is False
    assert resolved[slots["evening"].id].status == SLOT_PAST
    assert resolved[slots["late"].id].status == SLOT_FREE


@pytest.mark.unit
def test_unknown_court(availability, tomorrow):
    with pytest.raises(NotFoundException) as exc_info:
        availability.get_available_slots(uuid4(), tomorrow)

    assert exc_info.value.error_code == ErrorCode.COURT_NOT_FOUND


@pytest.mark.unit
def test_day_schedule_covers_active_courts(availability, db_session, make_booking, court, slots, customer, tomorrow):
    football = Court(name="Football A", slug="football-a", type=CourtType.FOOTBALL, price=25000)
    closed = Court(name="Closed", slug="closed", type=CourtType.PADEL, price=1000, is_active=False)
    db_session.add_all([football, closed])
    db_session.commit()
    make_booking(customer, slots["evening"], status=BookingStatus.PAID)

    schedule = availability.get_day_schedule(tomorrow)

    assert [entry.court.name for entry in schedule] == ["Football A", "Padel 1"]
    padel = _by_slot(schedule[1].slots)
    assert padel[slots["evening"].id].status == SLOT_PAID
    assert padel[slots["evening"].id].customer_id == customer.id
    assert {s.status for s in schedule[0].slots} == {SLOT_FREE}
