"""
Staff routes: close bookings, cancel on a customer's behalf, planning views.

All routes require a manager or admin token.
"""
from datetime import date as date_type, datetime, time
from typing import Callable, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from arena.api.dependencies import get_clock, get_db, require_staff
from arena.api.routes.bookings import BookingResponse, BookingResultResponse, CancellationResponse
from arena.api.routes.fines import FineResponse
from arena.lib.logging import get_logger
from arena.models.bookings import Booking, BookingStatus
from arena.models.users import User
from arena.services.availability_service import AvailabilityService
from arena.services.client_service import ClientService, ClientSummary
from arena.services.reservation_service import ReservationService


logger = get_logger(__name__)


class ScheduleSlotResponse(BaseModel):
    slot_id: UUID
    start_time: time
    end_time: time
    status: str
    booking_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None


class CourtScheduleResponse(BaseModel):
    """One court's day, slot by slot."""
    court_id: UUID
    court_name: str
    court_type: str
    slots: List[ScheduleSlotResponse]



class ClientInfo(BaseModel):
    id: UUID
    phone: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class AdminBookingResponse(BookingResponse):
    """A booking with the client it belongs to."""
    client: ClientInfo

    @classmethod
    def from_booking(cls, booking: Booking) -> "AdminBookingResponse":
        customer = booking.customer
        return cls(
            **BookingResponse.from_booking(booking).model_dump(),
            client=ClientInfo(
                id=customer.id,
                phone=customer.phone,
                first_name=customer.first_name,
                last_name=customer.last_name,
            ),
        )


class StaffBookingRequest(BaseModel):
    """Book a slot for a client identified by phone."""
    court_id: UUID
    time_slot_id: UUID
    date: date_type
    client_phone: str = Field(..., min_length=6, max_length=20)
    client_first_name: Optional[str] = Field(default=None, max_length=100)
    client_last_name: Optional[str] = Field(default=None, max_length=100)
    force: bool = Field(default=False, description="Book even if the client has pending fines")


class StaffBookingResponse(BookingResultResponse):
    client: ClientInfo
    client_created: bool = False
    pending_fines_total: int = 0
    fines: List[FineResponse] = []


class ClientSummaryResponse(BaseModel):
    id: UUID
    phone: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    bookings_count: int
    last_booking_date: Optional[date_type] = None
    pending_fines_total: int
    credit_balance: int
    created_at: datetime

    @classmethod
    def from_summary(cls, summary: ClientSummary) -> "ClientSummaryResponse":
        return cls(
            id=summary.client.id,
            phone=summary.client.phone,
            first_name=summary.client.first_name,
            last_name=summary.client.last_name,
            bookings_count=summary.bookings_count,
            last_booking_date=summary.last_booking_date,
            pending_fines_total=summary.pending_fines_total,
            credit_balance=summary.credit_balance,
            created_at=summary.created_at,
        )

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/bookings/{booking_id}/no-show", response_model=BookingResponse)
def mark_no_show(
    booking_id: UUID,
    staff: User = Depends(require_staff),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BookingResponse:
    """
    Mark a paid booking as a no-show once its slot has ended.

    The payment is forfeited; no refund and no fine.
    """
    booking = ReservationService(db, now_fn=clock).mark_no_show(booking_id)
    logger.info(
        "No-show recorded",
        extra={"booking_id": str(booking_id), "staff_id": str(staff.id)},
    )
    return BookingResponse.from_booking(booking)


@router.post("/bookings/{booking_id}/complete", response_model=BookingResponse)
def mark_completed(
    booking_id: UUID,
    staff: User = Depends(require_staff),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BookingResponse:
    """Mark a paid booking as played once its slot has ended."""
    booking = ReservationService(db, now_fn=clock).mark_completed(booking_id)
    return BookingResponse.from_booking(booking)


@router.post("/bookings/{booking_id}/cancel", response_model=CancellationResponse)
def staff_cancel_booking(
    booking_id: UUID,
    staff: User = Depends(require_staff),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> CancellationResponse:
    """Cancel any active booking with the same refund/fine rules as the customer."""
    result = ReservationService(db, now_fn=clock).cancel_booking(
        booking_id, requester_id=staff.id, by_staff=True
    )
    return CancellationResponse.from_result(result)


@router.get("/bookings/pending-no-shows", response_model=List[BookingResponse])
def list_pending_no_shows(
    date: date_type = Query(..., description="Calendar date (YYYY-MM-DD)"),
    staff: User = Depends(require_staff),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> List[BookingResponse]:
    """Paid bookings on `date` whose slot is over and still await closing."""
    bookings = ReservationService(db, now_fn=clock).list_pending_no_shows(date)
    return [BookingResponse.from_booking(b) for b in bookings]


@router.get("/schedule", response_model=List[CourtScheduleResponse])
def day_schedule(
    date: date_type = Query(..., description="Calendar date (YYYY-MM-DD)"),
    staff: User = Depends(require_staff),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> List[CourtScheduleResponse]:
    """Every active court with the status of each of its slots."""
    schedule = AvailabilityService(db, now_fn=clock).get_day_schedule(date)
    return [
        CourtScheduleResponse(
            court_id=entry.court.id,
            court_name=entry.court.name,
            court_type=entry.court.type.value,
            slots=[
                ScheduleSlotResponse(
                    slot_id=s.slot_id,
                    start_time=s.start_time,
                    end_time=s.end_time,
                    status=s.status,
                    booking_id=s.booking_id,
                    customer_id=s.customer_id,
                )
                for s in entry.slots
            ],
        )
        for entry in schedule
    ]


@router.post("/bookings", response_model=StaffBookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking_for_client(
    request: StaffBookingRequest,
    response: Response,
    staff: User = Depends(require_staff),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> StaffBookingResponse:
    """
    Book a slot for a client, paid in cash at the venue.

    Unknown phone numbers get an account when first and last name are
    given. A client with pending fines comes back with
    CLIENT_HAS_PENDING_FINES (200, nothing booked); resend with
    `force=true` to book anyway.
    """
    client, created = ClientService(db).get_or_create_client(
        request.client_phone, request.client_first_name, request.client_last_name
    )
    result = ReservationService(db, now_fn=clock).create_booking_for_client(
        client.id,
        request.court_id,
        request.time_slot_id,
        request.date,
        staff_id=staff.id,
        force=request.force,
    )
    if not result.success:
        response.status_code = status.HTTP_200_OK

    return StaffBookingResponse(
        **BookingResultResponse.from_result(result).model_dump(),
        client=ClientInfo(
            id=client.id,
            phone=client.phone,
            first_name=client.first_name,
            last_name=client.last_name,
        ),
        client_created=created,
        pending_fines_total=result.pending_fines_total,
        fines=[FineResponse.from_view(f) for f in result.fines],
    )


@router.get("/bookings", response_model=List[AdminBookingResponse])
def list_bookings(
    date: Optional[date_type] = Query(None, description="Calendar date (YYYY-MM-DD)"),
    court_id: Optional[UUID] = Query(None),
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    user_id: Optional[UUID] = Query(None, description="Client id"),
    limit: int = Query(100, ge=1, le=500),
    staff: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> List[AdminBookingResponse]:
    """All bookings, most recent slot first, filtered by date, court, status or client."""
    bookings = ReservationService(db).list_bookings(
        slot_date=date,
        court_id=court_id,
        status=booking_status,
        customer_id=user_id,
        limit=limit,
    )
    return [AdminBookingResponse.from_booking(b) for b in bookings]


@router.get("/clients", response_model=List[ClientSummaryResponse])
def search_clients(
    search: Optional[str] = Query(None, description="Phone or name fragment"),
    limit: int = Query(50, ge=1, le=200),
    staff: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> List[ClientSummaryResponse]:
    """Clients with their bookings count, pending fines and credit balance."""
    return [ClientSummaryResponse.from_summary(s) for s in ClientService(db).search_clients(search, limit)]


@router.get("/clients/{client_id}", response_model=ClientSummaryResponse)
def get_client(
    client_id: UUID,
    staff: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> ClientSummaryResponse:
    service = ClientService(db)
    return ClientSummaryResponse.from_summary(service.summarize(service.get_client(client_id)))
