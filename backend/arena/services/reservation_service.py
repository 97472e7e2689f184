"""
Reservation state machine.

Owns every booking status transition:

    unpaid -> paid -> completed | no_show
    unpaid -> cancelled, paid -> cancelled
    unpaid -> cancelled_by_override   (another customer paid for the slot)

Correctness comes from re-reading the slot's active booking right before
writing and from conditional status updates (`WHERE status = <expected>`),
with the partial unique index on active bookings as the final guard. The
slot lock only keeps two payers out of the override branch at once.
"""
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from arena.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    ErrorCode,
    ForbiddenException,
    NotFoundException,
)
from arena.lib.logging import get_logger
from arena.lib.metrics import get_metrics_collector
from arena.lib.settings import settings
from arena.lib.timeutils import hours_between, slot_datetime, slot_end_datetime, utc_now
from arena.models.bookings import (
    Booking,
    BookingStatus,
    MobilePaymentMethod,
    PaymentMethod,
    PaymentStatus,
)
from arena.models.courts import Court, TimeSlot
from arena.models.ledger import LedgerReason
from arena.models.notifications import NotificationType
from arena.models.users import User
from arena.services.availability_service import AvailabilityService
from arena.services.eligibility_service import EligibilityService, FineView
from arena.services.ledger_service import LedgerService
from arena.services.notification_service import NotificationDispatcher
from arena.services.payment_breakdown import PaymentBreakdown, compute_breakdown
from arena.services.slot_lock_service import SlotLockService


logger = get_logger(__name__)


@dataclass
class BookingResult:
    """Outcome of a create or pay request."""
    success: bool
    booking: Optional[Booking] = None
    payment_breakdown: Optional[PaymentBreakdown] = None
    overridden_booking_id: Optional[UUID] = None
    notification_sent: bool = False
    own_unpaid_booking: bool = False
    booking_id: Optional[UUID] = None
    error_code: Optional[ErrorCode] = None
    message: Optional[str] = None
    pending_fines_total: int = 0
    fines: List[FineView] = field(default_factory=list)


@dataclass
class CancellationResult:
    booking: Booking
    refund_amount: int
    fine_amount: int
    late_cancellation: bool
    hours_until_start: float


class ReservationService:
    """
    Booking creation, payment, cancellation and closing.

    One instance per request/session. Collaborators default to instances
    bound to the same session and can be injected for tests.
    """

    def __init__(
        self,
        session: Session,
        now_fn: Callable[[], datetime] = utc_now,
        locks: Optional[SlotLockService] = None,
        ledger: Optional[LedgerService] = None,
        eligibility: Optional[EligibilityService] = None,
        availability: Optional[AvailabilityService] = None,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        self.session = session
        self.now_fn = now_fn
        self.ledger = ledger or LedgerService(session)
        self.locks = locks or SlotLockService(session, now_fn=now_fn)
        self.eligibility = eligibility or EligibilityService(session, self.ledger)
        self.availability = availability or AvailabilityService(session, now_fn=now_fn)
        self.notifier = notifier or NotificationDispatcher(session)
        self.metrics = get_metrics_collector()

    # ===== Lookups =====

    def get_booking(self, booking_id: UUID) -> Booking:
        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundException("Booking", str(booking_id), error_code=ErrorCode.BOOKING_NOT_FOUND)
        return booking

    def list_customer_bookings(
        self,
        customer_id: UUID,
        status: Optional[BookingStatus] = None,
        limit: int = 100,
    ) -> List[Booking]:
        """A customer's bookings, most recent slot first."""
        stmt = select(Booking).where(Booking.customer_id == customer_id)
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        stmt = stmt.order_by(Booking.date.desc(), Booking.created_at.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars().all())

    def list_bookings(
        self,
        slot_date: Optional[date] = None,
        court_id: Optional[UUID] = None,
        status: Optional[BookingStatus] = None,
        customer_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> List[Booking]:
        """All bookings matching the given filters, most recent slot first (staff view)."""
        stmt = select(Booking)
        if slot_date is not None:
            stmt = stmt.where(Booking.date == slot_date)
        if court_id is not None:
            stmt = stmt.where(Booking.court_id == court_id)
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        if customer_id is not None:
            stmt = stmt.where(Booking.customer_id == customer_id)
        stmt = stmt.order_by(Booking.date.desc(), Booking.created_at.desc()).limit(limit)
        return list(self.session.execute(stmt).scalars().all())

    def list_pending_no_shows(self, slot_date: date) -> List[Booking]:
        """Paid bookings on `slot_date` whose slot has ended (staff worklist)."""
        stmt = (
            select(Booking)
            .where(Booking.date == slot_date, Booking.status == BookingStatus.PAID)
            .order_by(Booking.created_at.desc())
        )
        now = self.now_fn()
        return [
            booking
            for booking in self.session.execute(stmt).scalars().all()
            if self._slot_end(booking) <= now
        ]

    def _slot_start(self, booking: Booking) -> datetime:
        return slot_datetime(booking.date, booking.time_slot.start_time)

    def _slot_end(self, booking: Booking) -> datetime:
        slot = booking.time_slot
        return slot_end_datetime(booking.date, slot.start_time, slot.end_time)

    # ===== Create =====

    def create_booking(
        self,
        customer_id: UUID,
        court_id: UUID,
        time_slot_id: UUID,
        slot_date: date,
        is_paying: bool,
        payment_method: Optional[PaymentMethod] = None,
        use_credit: bool = False,
        mobile_method: Optional[MobilePaymentMethod] = None,
    ) -> BookingResult:
        """
        Create a booking for a slot, overriding another customer's unpaid
        hold when the requester pays.

        Raises:
            ForbiddenException: PENDING_FINES
            NotFoundException: COURT_NOT_FOUND, TIME_SLOT_NOT_FOUND
            BadRequestException: SLOT_IN_PAST, ALREADY_PAID_BY_SELF, MOBILE_METHOD_REQUIRED
            ConflictException: SLOT_LOCKED, SLOT_ALREADY_BOOKED
        """
        eligibility = self.eligibility.check_can_book(customer_id)
        if not eligibility.can_book:
            raise ForbiddenException(
                "You have pending fines",
                error_code=ErrorCode.PENDING_FINES,
                details={"pending_fines": eligibility.pending_fines_total},
            )

        return self._book(
            customer_id, court_id, time_slot_id, slot_date,
            is_paying, payment_method, use_credit, mobile_method,
        )

    def _book(
        self,
        customer_id: UUID,
        court_id: UUID,
        time_slot_id: UUID,
        slot_date: date,
        is_paying: bool,
        payment_method: Optional[PaymentMethod],
        use_credit: bool,
        mobile_method: Optional[MobilePaymentMethod],
    ) -> BookingResult:
        court = self.session.get(Court, court_id)
        if court is None or not court.is_active:
            raise NotFoundException("Court", str(court_id), error_code=ErrorCode.COURT_NOT_FOUND)

        time_slot = self.session.get(TimeSlot, time_slot_id)
        if time_slot is None:
            raise NotFoundException("Time slot", str(time_slot_id), error_code=ErrorCode.TIME_SLOT_NOT_FOUND)

        if slot_datetime(slot_date, time_slot.start_time) <= self.now_fn():
            raise BadRequestException("This slot has already started", error_code=ErrorCode.SLOT_IN_PAST)

        if not is_paying:
            return self._create_unpaid(customer_id, court, time_slot, slot_date)

        with self.locks.hold(court_id, time_slot_id, slot_date, customer_id):
            result, displaced = self._create_paid(
                customer_id, court, time_slot, slot_date,
                payment_method, use_credit, mobile_method,
            )

        if displaced is not None:
            result.notification_sent = self.notifier.dispatch(
                customer_id=displaced.customer_id,
                type=NotificationType.BOOKING_OVERRIDDEN.value,
                title="Booking taken",
                message=(
                    f"Your unpaid booking for {court.name} on {slot_date.isoformat()} "
                    f"was taken by a customer who paid."
                ),
                data={
                    "booking_id": str(displaced.id),
                    "court_name": court.name,
                    "date": slot_date.isoformat(),
                },
            )
        return result

    def create_booking_for_client(
        self,
        client_id: UUID,
        court_id: UUID,
        time_slot_id: UUID,
        slot_date: date,
        staff_id: UUID,
        force: bool = False,
    ) -> BookingResult:
        """
        Book a slot on a client's behalf, paid in cash at the venue.

        A staff booking is a paying request: it overrides another
        customer's unpaid hold and settles the client's own unpaid hold
        for the slot. A client with pending fines is reported back
        (CLIENT_HAS_PENDING_FINES, nothing written) unless `force`.
        """
        if not force:
            eligibility = self.eligibility.check_can_book(client_id)
            if not eligibility.can_book:
                return BookingResult(
                    success=False,
                    error_code=ErrorCode.CLIENT_HAS_PENDING_FINES,
                    pending_fines_total=eligibility.pending_fines_total,
                    fines=eligibility.fines,
                    message="This client has pending fines. Confirm to book anyway.",
                )

        result = self._book(
            client_id, court_id, time_slot_id, slot_date,
            is_paying=True,
            payment_method=PaymentMethod.CASH,
            use_credit=False,
            mobile_method=None,
        )
        if result.own_unpaid_booking:
            result = self.pay_existing_booking(
                client_id, result.booking_id, payment_method=PaymentMethod.CASH
            )

        logger.info(
            "Booking created by staff",
            extra={
                "booking_id": str(result.booking.id),
                "client_id": str(client_id),
                "staff_id": str(staff_id),
                "forced": force,
            },
        )
        return result

    def _check_existing(
        self,
        existing: Optional[Booking],
        customer_id: UUID,
        is_paying: bool,
    ) -> Optional[BookingResult]:
        """
        Apply the decision table to the slot's current active booking.

        Returns a result to hand back as-is, or None when the request may
        proceed (empty slot, or an override of someone else's unpaid hold).
        """
        if existing is None:
            return None

        if existing.customer_id == customer_id:
            if existing.status == BookingStatus.PAID:
                raise BadRequestException(
                    "You already have a paid booking for this slot",
                    error_code=ErrorCode.ALREADY_PAID_BY_SELF,
                )
            return BookingResult(
                success=False,
                own_unpaid_booking=True,
                booking_id=existing.id,
                error_code=ErrorCode.OWN_UNPAID_BOOKING,
                message="You already have an unpaid booking for this slot. Pay it from your bookings.",
            )

        if existing.status == BookingStatus.PAID or not is_paying:
            raise ConflictException(
                "This slot is already booked by another customer",
                error_code=ErrorCode.SLOT_ALREADY_BOOKED,
            )

        return None

    def _insert(self, booking: Booking) -> None:
        """Insert and commit; losing the active-slot index race is SLOT_ALREADY_BOOKED."""
        self.session.add(booking)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info(
                "Active booking conflict on insert",
                extra={
                    "court_id": str(booking.court_id),
                    "time_slot_id": str(booking.time_slot_id),
                    "date": booking.date.isoformat(),
                },
            )
            raise ConflictException(
                "This slot is already booked by another customer",
                error_code=ErrorCode.SLOT_ALREADY_BOOKED,
            )

    def _create_unpaid(
        self,
        customer_id: UUID,
        court: Court,
        time_slot: TimeSlot,
        slot_date: date,
    ) -> BookingResult:
        existing = self.availability.get_active_booking(court.id, time_slot.id, slot_date)
        outcome = self._check_existing(existing, customer_id, is_paying=False)
        if outcome is not None:
            return outcome

        booking = Booking(
            customer_id=customer_id,
            court_id=court.id,
            time_slot_id=time_slot.id,
            date=slot_date,
            status=BookingStatus.UNPAID,
            payment_method=None,
            payment_status=PaymentStatus.PENDING,
            total_amount=court.price,
            credit_used=0,
        )
        self._insert(booking)

        self.metrics.increment_bookings_created(BookingStatus.UNPAID.value)
        logger.info(
            "Unpaid booking created",
            extra={"booking_id": str(booking.id), "customer_id": str(customer_id)},
        )
        return BookingResult(success=True, booking=booking)

    def _create_paid(
        self,
        customer_id: UUID,
        court: Court,
        time_slot: TimeSlot,
        slot_date: date,
        payment_method: Optional[PaymentMethod],
        use_credit: bool,
        mobile_method: Optional[MobilePaymentMethod],
    ) -> Tuple[BookingResult, Optional[Booking]]:
        """Runs under the slot lock. Returns the result and the displaced booking, if any."""
        # Fresh read inside the critical section
        existing = self.availability.get_active_booking(court.id, time_slot.id, slot_date)
        outcome = self._check_existing(existing, customer_id, is_paying=True)
        if outcome is not None:
            return outcome, None

        credit_balance = self.ledger.get_credit_balance(customer_id) if use_credit else 0
        breakdown = compute_breakdown(
            court.price, credit_balance, use_credit, mobile_method, payment_method
        )

        if existing is not None:
            displaced = self.session.execute(
                update(Booking)
                .where(Booking.id == existing.id, Booking.status == BookingStatus.UNPAID)
                .values(status=BookingStatus.CANCELLED_BY_OVERRIDE, updated_at=self.now_fn())
            )
            if not displaced.rowcount:
                # The holder paid or cancelled between our read and write
                self.session.rollback()
                raise ConflictException(
                    "This slot is already booked by another customer",
                    error_code=ErrorCode.SLOT_ALREADY_BOOKED,
                )

        booking = Booking(
            customer_id=customer_id,
            court_id=court.id,
            time_slot_id=time_slot.id,
            date=slot_date,
            status=BookingStatus.PAID,
            payment_method=breakdown.payment_method,
            payment_status=PaymentStatus.COMPLETED,
            total_amount=court.price,
            credit_used=breakdown.credit_amount,
            overridden_booking_id=existing.id if existing is not None else None,
        )
        self._insert(booking)

        breakdown = self._debit_credit(booking, breakdown)

        override = existing is not None
        self.metrics.increment_bookings_created(BookingStatus.PAID.value, override=override)
        logger.info(
            "Paid booking created",
            extra={
                "booking_id": str(booking.id),
                "customer_id": str(customer_id),
                "payment_method": breakdown.payment_method.value,
                "credit_amount": breakdown.credit_amount,
                "overridden_booking_id": str(existing.id) if override else None,
            },
        )

        result = BookingResult(
            success=True,
            booking=booking,
            payment_breakdown=breakdown,
            overridden_booking_id=existing.id if override else None,
        )
        return result, existing

    # ===== Pay =====

    def pay_existing_booking(
        self,
        customer_id: UUID,
        booking_id: UUID,
        payment_method: Optional[PaymentMethod] = None,
        use_credit: bool = False,
        mobile_method: Optional[MobilePaymentMethod] = None,
    ) -> BookingResult:
        """
        Pay for the caller's own unpaid booking.

        No slot lock: the booking row (owner + unpaid status) is the
        anchor. The transition is conditional on the row still being
        unpaid, so a concurrent override that committed first wins.

        Raises:
            NotFoundException: BOOKING_NOT_FOUND
            ForbiddenException: NOT_BOOKING_OWNER
            BadRequestException: BOOKING_ALREADY_PAID, BOOKING_NOT_PAYABLE,
                SLOT_IN_PAST, PAYMENT_METHOD_REQUIRED, MOBILE_METHOD_REQUIRED
            ConflictException: BOOKING_NOT_PAYABLE (lost a race)
        """
        booking = self.get_booking(booking_id)

        if booking.customer_id != customer_id:
            raise ForbiddenException("This booking does not belong to you", error_code=ErrorCode.NOT_BOOKING_OWNER)

        if booking.status == BookingStatus.PAID:
            raise BadRequestException("This booking is already paid", error_code=ErrorCode.BOOKING_ALREADY_PAID)
        if booking.status != BookingStatus.UNPAID:
            raise BadRequestException(
                "This booking can no longer be paid",
                details={"status": booking.status.value},
                error_code=ErrorCode.BOOKING_NOT_PAYABLE,
            )

        if self._slot_start(booking) <= self.now_fn():
            raise BadRequestException("This booking is in the past", error_code=ErrorCode.SLOT_IN_PAST)

        if not use_credit and payment_method is None:
            raise BadRequestException("A payment method is required", error_code=ErrorCode.PAYMENT_METHOD_REQUIRED)

        credit_balance = self.ledger.get_credit_balance(customer_id) if use_credit else 0
        breakdown = compute_breakdown(
            booking.total_amount, credit_balance, use_credit, mobile_method, payment_method
        )

        result = self.session.execute(
            update(Booking)
            .where(
                Booking.id == booking.id,
                Booking.customer_id == customer_id,
                Booking.status == BookingStatus.UNPAID,
            )
            .values(
                status=BookingStatus.PAID,
                payment_method=breakdown.payment_method,
                payment_status=PaymentStatus.COMPLETED,
                credit_used=breakdown.credit_amount,
                updated_at=self.now_fn(),
            )
        )
        if not result.rowcount:
            self.session.rollback()
            raise ConflictException(
                "This booking can no longer be paid",
                error_code=ErrorCode.BOOKING_NOT_PAYABLE,
            )
        self.session.commit()
        self.session.refresh(booking)

        breakdown = self._debit_credit(booking, breakdown)

        self.metrics.increment_bookings_created(BookingStatus.PAID.value)
        logger.info(
            "Unpaid booking paid",
            extra={
                "booking_id": str(booking.id),
                "customer_id": str(customer_id),
                "payment_method": breakdown.payment_method.value,
                "credit_amount": breakdown.credit_amount,
            },
        )

        self.notifier.dispatch(
            customer_id=customer_id,
            type=NotificationType.BOOKING_PAID.value,
            title="Payment confirmed",
            message=(
                f"Your booking for {booking.court.name} on {booking.date.isoformat()} "
                f"is now confirmed and locked."
            ),
            data={"booking_id": str(booking.id)},
        )

        return BookingResult(
            success=True,
            booking=booking,
            payment_breakdown=breakdown,
            message="Payment succeeded. Your booking is now locked.",
        )

    # ===== Cancel =====

    def cancel_booking(
        self,
        booking_id: UUID,
        requester_id: UUID,
        by_staff: bool = False,
    ) -> CancellationResult:
        """
        Cancel an active booking and settle its economics.

        At least `late_cancellation_hours` before start: a paid booking
        is refunded in full as credit, an unpaid one costs nothing.
        Later than that: a paid booking gets `late_cancellation_percent`
        back as credit, an unpaid one is fined that share.

        Raises:
            NotFoundException: BOOKING_NOT_FOUND
            ForbiddenException: NOT_BOOKING_OWNER
            BadRequestException: BOOKING_NOT_CANCELLABLE, SLOT_IN_PAST
        """
        booking = self.get_booking(booking_id)

        if not by_staff and booking.customer_id != requester_id:
            raise ForbiddenException("This booking does not belong to you", error_code=ErrorCode.NOT_BOOKING_OWNER)

        if not booking.is_active:
            raise BadRequestException(
                "This booking cannot be cancelled",
                details={"status": booking.status.value},
                error_code=ErrorCode.BOOKING_NOT_CANCELLABLE,
            )

        now = self.now_fn()
        hours_until_start = hours_between(now, self._slot_start(booking))
        if hours_until_start <= 0:
            raise BadRequestException("This booking has already started", error_code=ErrorCode.SLOT_IN_PAST)

        late = hours_until_start < settings.late_cancellation_hours
        previous_status = booking.status
        late_share = booking.total_amount * settings.late_cancellation_percent // 100

        refund_amount = 0
        fine_amount = 0
        if previous_status == BookingStatus.PAID:
            refund_amount = late_share if late else booking.total_amount
        elif late:
            fine_amount = late_share

        values = {
            "status": BookingStatus.CANCELLED,
            "cancelled_at": now,
            "updated_at": now,
        }
        if refund_amount:
            values["payment_status"] = PaymentStatus.REFUNDED

        result = self.session.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status == previous_status)
            .values(**values)
        )
        if not result.rowcount:
            self.session.rollback()
            raise ConflictException(
                "This booking changed while cancelling, reload and try again",
                error_code=ErrorCode.BOOKING_NOT_CANCELLABLE,
            )
        self.session.commit()
        self.session.refresh(booking)

        if refund_amount:
            with self._ledger_write("credit_refund", booking.customer_id, booking.id, refund_amount):
                self.ledger.record_credit(
                    booking.customer_id, refund_amount, LedgerReason.CANCELLATION_REFUND, booking.id,
                )
        if fine_amount:
            with self._ledger_write("fine", booking.customer_id, booking.id, fine_amount):
                self.ledger.record_fine(
                    booking.customer_id, fine_amount, LedgerReason.LATE_CANCELLATION, booking.id,
                )

        self.metrics.increment_cancellations(previous_status.value, late)
        logger.info(
            "Booking cancelled",
            extra={
                "booking_id": str(booking.id),
                "requester_id": str(requester_id),
                "by_staff": by_staff,
                "previous_status": previous_status.value,
                "hours_until_start": round(hours_until_start, 2),
                "refund_amount": refund_amount,
                "fine_amount": fine_amount,
            },
        )

        return CancellationResult(
            booking=booking,
            refund_amount=refund_amount,
            fine_amount=fine_amount,
            late_cancellation=late,
            hours_until_start=hours_until_start,
        )

    # ===== Close (staff) =====

    def mark_no_show(self, booking_id: UUID) -> Booking:
        """
        Record that a paid customer never showed up. The amount paid is
        forfeited: no refund, no fine.

        Raises:
            NotFoundException: BOOKING_NOT_FOUND
            BadRequestException: BOOKING_NOT_NO_SHOW_ELIGIBLE, SLOT_NOT_ENDED
        """
        return self._close_paid_booking(
            booking_id, BookingStatus.NO_SHOW, ErrorCode.BOOKING_NOT_NO_SHOW_ELIGIBLE
        )

    def mark_completed(self, booking_id: UUID) -> Booking:
        """Record that a paid booking was played."""
        return self._close_paid_booking(
            booking_id, BookingStatus.COMPLETED, ErrorCode.BOOKING_NOT_COMPLETABLE
        )

    def _close_paid_booking(
        self,
        booking_id: UUID,
        target: BookingStatus,
        ineligible_code: ErrorCode,
    ) -> Booking:
        booking = self.get_booking(booking_id)

        if booking.status != BookingStatus.PAID:
            raise BadRequestException(
                f"Only paid bookings can be marked {target.value}",
                details={"status": booking.status.value},
                error_code=ineligible_code,
            )

        now = self.now_fn()
        if self._slot_end(booking) > now:
            raise BadRequestException("This slot has not ended yet", error_code=ErrorCode.SLOT_NOT_ENDED)

        result = self.session.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status == BookingStatus.PAID)
            .values(status=target, updated_at=now)
        )
        if not result.rowcount:
            self.session.rollback()
            raise BadRequestException(
                f"Only paid bookings can be marked {target.value}",
                error_code=ineligible_code,
            )
        self.session.commit()
        self.session.refresh(booking)

        self.metrics.increment_status_changes(target.value)
        logger.info(
            "Booking closed",
            extra={"booking_id": str(booking.id), "status": target.value},
        )
        return booking

    # ===== Ledger side effects =====

    def _debit_credit(self, booking: Booking, breakdown: PaymentBreakdown) -> PaymentBreakdown:
        """
        Write the credit debit for a committed paid booking.

        The balance is re-read under a row lock on the customer, so two
        paid bookings racing on different slots cannot both spend the
        same credit. If the balance dropped since the breakdown was
        computed, only what is left is debited, the booking's
        `credit_used` follows, and the shortfall moves to the mobile
        amount of the returned breakdown.
        """
        if breakdown.credit_amount <= 0:
            return breakdown

        with self._ledger_write("credit_debit", booking.customer_id, booking.id, -breakdown.credit_amount):
            self.session.execute(
                select(User.id).where(User.id == booking.customer_id).with_for_update()
            )
            available = max(self.ledger.get_credit_balance(booking.customer_id), 0)
            if available < breakdown.credit_amount:
                shortfall = breakdown.credit_amount - available
                self.metrics.increment_ledger_failures("credit_shortfall")
                logger.warning(
                    "Credit balance changed before debit, debiting what is left",
                    extra={
                        "booking_id": str(booking.id),
                        "customer_id": str(booking.customer_id),
                        "credit_amount": breakdown.credit_amount,
                        "available": available,
                        "shortfall": shortfall,
                    },
                )
                booking.credit_used = available
                breakdown = replace(
                    breakdown,
                    credit_amount=available,
                    mobile_amount=breakdown.mobile_amount + shortfall,
                )

            if breakdown.credit_amount > 0:
                # Commits the credit_used change with the debit row
                self.ledger.record_credit(
                    booking.customer_id,
                    -breakdown.credit_amount,
                    LedgerReason.BOOKING_PAYMENT,
                    booking.id,
                )
            else:
                self.session.commit()

        return breakdown

    @contextmanager
    def _ledger_write(self, kind: str, customer_id: UUID, booking_id: UUID, amount: int):
        """
        Guard a ledger write that follows a committed booking change.

        Failures are logged and counted, not raised: the booking stands
        and the ledger row can be replayed from the log.
        """
        try:
            yield
        except SQLAlchemyError as e:
            self.session.rollback()
            self.metrics.increment_ledger_failures(kind)
            logger.error(
                f"Ledger write failed after booking commit: {e}",
                extra={
                    "kind": kind,
                    "customer_id": str(customer_id),
                    "booking_id": str(booking_id),
                    "amount": amount,
                },
                exc_info=True,
            )
