"""
Availability resolver.

Joins a day's active bookings against the time slot templates to give
each slot of a court a status: free, unpaid, paid or past.
"""
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from arena.api.middleware.error_handler import ErrorCode, NotFoundException
from arena.lib.timeutils import slot_datetime, utc_now
from arena.models.bookings import ACTIVE_STATUSES, Booking
from arena.models.courts import Court, TimeSlot


SLOT_FREE = "free"
SLOT_UNPAID = "unpaid"
SLOT_PAID = "paid"
SLOT_PAST = "past"


@dataclass
class SlotAvailability:
    slot_id: UUID
    start_time: time
    end_time: time
    status: str
    can_override: bool = False
    booking_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None


@dataclass
class CourtSchedule:
    court: Court
    slots: List[SlotAvailability]


class AvailabilityService:
    """Read-only slot status views."""

    def __init__(self, session: Session, now_fn: Callable[[], datetime] = utc_now):
        self.session = session
        self.now_fn = now_fn

    def list_courts(self) -> List[Court]:
        """Active courts ordered by name."""
        stmt = select(Court).where(Court.is_active.is_(True)).order_by(Court.name)
        return list(self.session.execute(stmt).scalars().all())

    def list_time_slots(self) -> List[TimeSlot]:
        stmt = select(TimeSlot).order_by(TimeSlot.slot_order)
        return list(self.session.execute(stmt).scalars().all())

    def get_active_booking(self, court_id: UUID, time_slot_id: UUID, slot_date: date) -> Optional[Booking]:
        """The booking occupying a slot, if any."""
        stmt = select(Booking).where(
            Booking.court_id == court_id,
            Booking.time_slot_id == time_slot_id,
            Booking.date == slot_date,
            Booking.status.in_(ACTIVE_STATUSES),
        )
        return self.session.execute(stmt).scalars().first()

    def _active_bookings_by_slot(self, slot_date: date, court_ids: List[UUID]) -> Dict[tuple, Booking]:
        stmt = select(Booking).where(
            Booking.date == slot_date,
            Booking.court_id.in_(court_ids),
            Booking.status.in_(ACTIVE_STATUSES),
        )
        return {
            (b.court_id, b.time_slot_id): b
            for b in self.session.execute(stmt).scalars().all()
        }

    def _resolve(
        self,
        court_id: UUID,
        slot_date: date,
        time_slots: List[TimeSlot],
        bookings: Dict[tuple, Booking],
        customer_id: Optional[UUID],
    ) -> List[SlotAvailability]:
        now = self.now_fn()
        resolved = []
        for slot in time_slots:
            started = slot_datetime(slot_date, slot.start_time) <= now
            booking = bookings.get((court_id, slot.id))

            if booking is None:
                resolved.append(SlotAvailability(
                    slot_id=slot.id,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    status=SLOT_PAST if started else SLOT_FREE,
                ))
                continue

            status = booking.status.value
            resolved.append(SlotAvailability(
                slot_id=slot.id,
                start_time=slot.start_time,
                end_time=slot.end_time,
                status=status,
                can_override=(
                    status == SLOT_UNPAID
                    and not started
                    and booking.customer_id != customer_id
                ),
                booking_id=booking.id,
                customer_id=booking.customer_id,
            ))
        return resolved

    def get_available_slots(
        self,
        court_id: UUID,
        slot_date: date,
        customer_id: Optional[UUID] = None,
    ) -> List[SlotAvailability]:
        """
        Status of every time slot of a court on a date.

        Args:
            court_id: Court to resolve
            slot_date: Calendar date
            customer_id: Viewer; their own unpaid holds are not overridable

        Raises:
            NotFoundException: COURT_NOT_FOUND
        """
        court = self.session.get(Court, court_id)
        if court is None or not court.is_active:
            raise NotFoundException("Court", str(court_id), error_code=ErrorCode.COURT_NOT_FOUND)

        bookings = self._active_bookings_by_slot(slot_date, [court_id])
        return self._resolve(court_id, slot_date, self.list_time_slots(), bookings, customer_id)

    def get_day_schedule(self, slot_date: date) -> List[CourtSchedule]:
        """Every active court with its resolved slots (staff planning view)."""
        courts = self.list_courts()
        if not courts:
            return []

        time_slots = self.list_time_slots()
        bookings = self._active_bookings_by_slot(slot_date, [c.id for c in courts])
        return [
            CourtSchedule(
                court=court,
                slots=self._resolve(court.id, slot_date, time_slots, bookings, None),
            )
            for court in courts
        ]
