"""
Customer booking routes: create, pay, cancel, list.
"""
from datetime import date as date_type, datetime, time
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from arena.api.dependencies import get_clock, get_current_user, get_db
from arena.models.bookings import Booking, BookingStatus, MobilePaymentMethod, PaymentMethod
from arena.models.users import User
from arena.services.reservation_service import BookingResult, CancellationResult, ReservationService


# Pydantic schemas
class BookingResponse(BaseModel):
    """A booking as returned to clients."""
    id: UUID
    customer_id: UUID
    court_id: UUID
    court_name: str
    time_slot_id: UUID
    start_time: time
    end_time: time
    date: date_type
    status: BookingStatus
    payment_method: Optional[PaymentMethod] = None
    payment_status: str
    total_amount: int
    credit_used: int
    overridden_booking_id: Optional[UUID] = None
    created_at: datetime
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            customer_id=booking.customer_id,
            court_id=booking.court_id,
            court_name=booking.court.name,
            time_slot_id=booking.time_slot_id,
            start_time=booking.time_slot.start_time,
            end_time=booking.time_slot.end_time,
            date=booking.date,
            status=booking.status,
            payment_method=booking.payment_method,
            payment_status=booking.payment_status.value,
            total_amount=booking.total_amount,
            credit_used=booking.credit_used,
            overridden_booking_id=booking.overridden_booking_id,
            created_at=booking.created_at,
            cancelled_at=booking.cancelled_at,
        )


class CreateBookingRequest(BaseModel):
    """Book a slot, paying now or holding it unpaid."""
    court_id: UUID
    time_slot_id: UUID
    date: date_type
    is_paying: bool = Field(default=False, description="Pay now (may override an unpaid hold)")
    payment_method: Optional[PaymentMethod] = None
    use_credit: bool = False
    mobile_method: Optional[MobilePaymentMethod] = Field(
        default=None,
        description="Wallet topping up a partial credit payment",
    )


class PayBookingRequest(BaseModel):
    payment_method: Optional[PaymentMethod] = None
    use_credit: bool = False
    mobile_method: Optional[MobilePaymentMethod] = None


class BookingResultResponse(BaseModel):
    """Outcome of a create or pay request."""
    success: bool
    booking: Optional[BookingResponse] = None
    payment_breakdown: Optional[Dict[str, Any]] = None
    overridden_booking_id: Optional[UUID] = None
    notification_sent: bool = False
    own_unpaid_booking: bool = False
    booking_id: Optional[UUID] = None
    error_code: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_result(cls, result: BookingResult) -> "BookingResultResponse":
        return cls(
            success=result.success,
            booking=BookingResponse.from_booking(result.booking) if result.booking else None,
            payment_breakdown=result.payment_breakdown.to_dict() if result.payment_breakdown else None,
            overridden_booking_id=result.overridden_booking_id,
            notification_sent=result.notification_sent,
            own_unpaid_booking=result.own_unpaid_booking,
            booking_id=result.booking_id,
            error_code=result.error_code.value if result.error_code else None,
            message=result.message,
        )


class CancellationResponse(BaseModel):
    booking: BookingResponse
    refund_amount: int
    fine_amount: int
    late_cancellation: bool
    hours_until_start: float

    @classmethod
    def from_result(cls, result: CancellationResult) -> "CancellationResponse":
        return cls(
            booking=BookingResponse.from_booking(result.booking),
            refund_amount=result.refund_amount,
            fine_amount=result.fine_amount,
            late_cancellation=result.late_cancellation,
            hours_until_start=round(result.hours_until_start, 2),
        )


# Router
router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingResultResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: CreateBookingRequest,
    response: Response,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BookingResultResponse:
    """
    Create a booking.

    - `is_paying=false`: hold the slot unpaid (only if it is free).
    - `is_paying=true`: pay now; another customer's unpaid hold on the
      slot is overridden and its owner notified.

    When the caller already holds the slot unpaid, the answer is a 200
    with `own_unpaid_booking=true` pointing at that booking.
    """
    service = ReservationService(db, now_fn=clock)
    result = service.create_booking(
        customer_id=user.id,
        court_id=request.court_id,
        time_slot_id=request.time_slot_id,
        slot_date=request.date,
        is_paying=request.is_paying,
        payment_method=request.payment_method,
        use_credit=request.use_credit,
        mobile_method=request.mobile_method,
    )
    if not result.success:
        response.status_code = status.HTTP_200_OK
    return BookingResultResponse.from_result(result)


@router.get("", response_model=List[BookingResponse])
def list_my_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status", description="Filter by status"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[BookingResponse]:
    """The caller's bookings, most recent slot first."""
    bookings = ReservationService(db).list_customer_bookings(user.id, status=status_filter)
    return [BookingResponse.from_booking(b) for b in bookings]


@router.post("/{booking_id}/pay", response_model=BookingResultResponse)
def pay_booking(
    booking_id: UUID,
    request: PayBookingRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BookingResultResponse:
    """Pay for one of the caller's unpaid bookings."""
    result = ReservationService(db, now_fn=clock).pay_existing_booking(
        customer_id=user.id,
        booking_id=booking_id,
        payment_method=request.payment_method,
        use_credit=request.use_credit,
        mobile_method=request.mobile_method,
    )
    return BookingResultResponse.from_result(result)


@router.post("/{booking_id}/cancel", response_model=CancellationResponse)
def cancel_booking(
    booking_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> CancellationResponse:
    """
    Cancel one of the caller's active bookings.

    Refunds go to the credit balance; late cancellations of unpaid
    bookings are fined.
    """
    result = ReservationService(db, now_fn=clock).cancel_booking(booking_id, requester_id=user.id)
    return CancellationResponse.from_result(result)
