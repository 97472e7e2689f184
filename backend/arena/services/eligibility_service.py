"""Eligibility gate: customers with unpaid fines may not book.

The check is advisory and fails open: if the fine ledger cannot be read
the customer is allowed through rather than blocking legitimate traffic.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from arena.api.middleware.error_handler import ErrorCode, ForbiddenException, NotFoundException
from arena.lib.logging import get_logger
from arena.lib.timeutils import ensure_utc
from arena.models.ledger import FineEntry, FineStatus
from arena.services.ledger_service import LedgerService


logger = get_logger(__name__)


@dataclass
class FineView:
    """A levied fine as shown to the customer."""
    id: UUID
    booking_id: Optional[UUID]
    amount: int
    reason: str
    status: FineStatus
    created_at: datetime
    paid_at: Optional[datetime] = None

    @classmethod
    def from_entry(cls, fine: FineEntry, settlement: Optional[FineEntry] = None) -> "FineView":
        return cls(
            id=fine.id,
            booking_id=fine.booking_id,
            amount=fine.amount,
            reason=fine.reason,
            status=FineStatus.PAID if settlement else FineStatus.PENDING,
            created_at=ensure_utc(fine.created_at),
            paid_at=ensure_utc(settlement.created_at) if settlement else None,
        )


@dataclass
class EligibilityResult:
    can_book: bool
    pending_fines_total: int = 0
    fines: List[FineView] = field(default_factory=list)


class EligibilityService:
    """Pending-fines gate and fine settlement."""

    def __init__(self, session: Session, ledger: Optional[LedgerService] = None):
        self.session = session
        self.ledger = ledger or LedgerService(session)

    def check_can_book(self, customer_id: UUID) -> EligibilityResult:
        """
        Decide whether the customer may create a booking.

        Pure read. `can_book` is False iff the pending fine total is
        strictly positive.
        """
        try:
            total = self.ledger.get_pending_fines_total(customer_id)
            fines = self.ledger.list_outstanding_fines(customer_id)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(
                f"Eligibility check failed, allowing booking: {e}",
                extra={"customer_id": str(customer_id)},
                exc_info=True,
            )
            return EligibilityResult(can_book=True)

        return EligibilityResult(
            can_book=total <= 0,
            pending_fines_total=max(total, 0),
            fines=[FineView.from_entry(f) for f in fines],
        )

    def pay_fine(self, fine_id: UUID, customer_id: Optional[UUID] = None) -> FineView:
        """
        Mark a pending fine as paid.

        Calling it again for a fine that is already paid is a no-op
        success. When `customer_id` is given the fine must belong to them.

        Raises:
            NotFoundException: FINE_NOT_FOUND (unknown id or a settlement row)
            ForbiddenException: NOT_FINE_OWNER
        """
        fine = self.ledger.get_fine(fine_id)
        if fine is None or fine.is_settlement:
            raise NotFoundException("Fine", str(fine_id), error_code=ErrorCode.FINE_NOT_FOUND)

        if customer_id is not None and fine.customer_id != customer_id:
            raise ForbiddenException("This fine does not belong to you", error_code=ErrorCode.NOT_FINE_OWNER)

        settlement = self.ledger.settle_fine(fine)
        return FineView.from_entry(fine, settlement)
