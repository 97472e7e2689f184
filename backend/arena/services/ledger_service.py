"""
Ledger service - append-only credit and fine records.

Balances are folds over history, so concurrent writers never lose an
update and every balance can be replayed from its rows.
"""
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from arena.lib.logging import get_logger
from arena.models.ledger import CreditEntry, FineEntry, FineStatus, LedgerReason


logger = get_logger(__name__)


class LedgerService:
    """
    Reads and appends ledger rows for one database session.

    Append methods commit; callers that write a booking first commit it
    themselves so a ledger failure cannot undo the booking.
    """

    def __init__(self, session: Session):
        self.session = session

    # ===== Credits =====

    def get_credit_balance(self, customer_id: UUID) -> int:
        """Live credit balance (sum of all credit rows)."""
        stmt = select(func.coalesce(func.sum(CreditEntry.amount), 0)).where(
            CreditEntry.customer_id == customer_id
        )
        return int(self.session.execute(stmt).scalar_one())

    def list_credit_history(self, customer_id: UUID, limit: int = 100) -> List[CreditEntry]:
        """Credit rows, newest first."""
        stmt = (
            select(CreditEntry)
            .where(CreditEntry.customer_id == customer_id)
            .order_by(CreditEntry.created_at.desc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all())

    def record_credit(
        self,
        customer_id: UUID,
        amount: int,
        reason: LedgerReason,
        booking_id: Optional[UUID] = None,
    ) -> CreditEntry:
        """
        Append a signed credit row and commit.

        Args:
            customer_id: Ledger owner
            amount: Positive grants credit, negative spends it
            reason: Why the row exists
            booking_id: Booking the movement belongs to
        """
        if amount == 0:
            raise ValueError("Ledger amounts must be non-zero")

        entry = CreditEntry(
            customer_id=customer_id,
            booking_id=booking_id,
            amount=amount,
            reason=reason.value,
        )
        self.session.add(entry)
        self.session.commit()

        logger.info(
            "Credit entry recorded",
            extra={
                "customer_id": str(customer_id),
                "booking_id": str(booking_id) if booking_id else None,
                "amount": amount,
                "reason": reason.value,
            },
        )
        return entry

    # ===== Fines =====

    def get_pending_fines_total(self, customer_id: UUID) -> int:
        """Sum of the fine ledger: levied fines minus settlements."""
        stmt = select(func.coalesce(func.sum(FineEntry.amount), 0)).where(
            FineEntry.customer_id == customer_id
        )
        return int(self.session.execute(stmt).scalar_one())

    def list_outstanding_fines(self, customer_id: UUID) -> List[FineEntry]:
        """Levied fines with no settlement row, oldest first."""
        settlement = aliased(FineEntry)
        stmt = (
            select(FineEntry)
            .outerjoin(settlement, settlement.settles_fine_id == FineEntry.id)
            .where(
                FineEntry.customer_id == customer_id,
                FineEntry.settles_fine_id.is_(None),
                settlement.id.is_(None),
            )
            .order_by(FineEntry.created_at)
        )
        return list(self.session.execute(stmt).scalars().all())

    def get_fine(self, fine_id: UUID) -> Optional[FineEntry]:
        return self.session.get(FineEntry, fine_id)

    def get_settlement(self, fine_id: UUID) -> Optional[FineEntry]:
        """The row that settled `fine_id`, if any."""
        stmt = select(FineEntry).where(FineEntry.settles_fine_id == fine_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def record_fine(
        self,
        customer_id: UUID,
        amount: int,
        reason: LedgerReason,
        booking_id: Optional[UUID] = None,
    ) -> FineEntry:
        """Levy a pending fine and commit."""
        if amount <= 0:
            raise ValueError("Fines must be positive")

        fine = FineEntry(
            customer_id=customer_id,
            booking_id=booking_id,
            amount=amount,
            reason=reason.value,
            status=FineStatus.PENDING,
        )
        self.session.add(fine)
        self.session.commit()

        logger.info(
            "Fine levied",
            extra={
                "customer_id": str(customer_id),
                "booking_id": str(booking_id) if booking_id else None,
                "amount": amount,
                "reason": reason.value,
            },
        )
        return fine

    def settle_fine(self, fine: FineEntry) -> FineEntry:
        """
        Append the settlement row for `fine`.

        Idempotent: a fine that already has a settlement returns it, and a
        concurrent settlement losing on the unique constraint returns the
        winner's row.
        """
        existing = self.get_settlement(fine.id)
        if existing is not None:
            return existing

        settlement = FineEntry(
            customer_id=fine.customer_id,
            booking_id=fine.booking_id,
            amount=-fine.amount,
            reason=LedgerReason.FINE_PAYMENT.value,
            status=FineStatus.PAID,
            settles_fine_id=fine.id,
        )
        self.session.add(settlement)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            existing = self.get_settlement(fine.id)
            if existing is None:
                raise
            return existing

        logger.info(
            "Fine settled",
            extra={
                "customer_id": str(fine.customer_id),
                "fine_id": str(fine.id),
                "amount": fine.amount,
            },
        )
        return settlement
