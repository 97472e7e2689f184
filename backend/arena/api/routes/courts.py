"""
Courts API routes.
"""
from datetime import date as date_type, datetime, time
from typing import Callable, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from arena.api.dependencies import get_clock, get_current_user, get_db
from arena.models.users import User
from arena.services.availability_service import AvailabilityService


# Pydantic schemas
class CourtResponse(BaseModel):
    id: UUID
    name: str
    slug: str
    type: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    price: int
    duration: int


class SlotResponse(BaseModel):
    """A time slot of a court on a given date."""
    slot_id: UUID
    start_time: time
    end_time: time
    status: str
    can_override: bool = False
    booking_id: Optional[UUID] = None
    is_mine: bool = False


# Router
router = APIRouter(prefix="/courts", tags=["courts"])


@router.get("", response_model=List[CourtResponse])
def list_courts(db: Session = Depends(get_db)) -> List[CourtResponse]:
    """Active courts."""
    courts = AvailabilityService(db).list_courts()
    return [
        CourtResponse(
            id=c.id,
            name=c.name,
            slug=c.slug,
            type=c.type.value,
            description=c.description,
            image_url=c.image_url,
            price=c.price,
            duration=c.duration,
        )
        for c in courts
    ]


@router.get("/{court_id}/slots", response_model=List[SlotResponse])
def get_available_slots(
    court_id: UUID,
    date: date_type = Query(..., description="Calendar date (YYYY-MM-DD)"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> List[SlotResponse]:
    """
    Status of each slot of a court on `date`.

    Statuses: free, unpaid, paid, past. `can_override` is true on another
    customer's unpaid hold that has not started; paying for it takes it over.
    """
    slots = AvailabilityService(db, now_fn=clock).get_available_slots(court_id, date, customer_id=user.id)
    return [
        SlotResponse(
            slot_id=s.slot_id,
            start_time=s.start_time,
            end_time=s.end_time,
            status=s.status,
            can_override=s.can_override,
            booking_id=s.booking_id if s.customer_id == user.id else None,
            is_mine=s.customer_id == user.id,
        )
        for s in slots
    ]
