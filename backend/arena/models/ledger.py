"""
Append-only credit and fine ledgers.

Balances are sums over rows. Rows are never updated or deleted.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Integer, DateTime, ForeignKey, Enum as SQLEnum, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from arena.lib.db import Base


class LedgerReason(str, enum.Enum):
    """Why a ledger row was written."""
    BOOKING_PAYMENT = "booking_payment"
    CANCELLATION_REFUND = "cancellation_refund"
    LATE_CANCELLATION = "late_cancellation"
    FINE_PAYMENT = "fine_payment"


class FineStatus(str, enum.Enum):
    """pending for a levied fine, paid for the row that settles it."""
    PENDING = "pending"
    PAID = "paid"


class CreditEntry(Base):
    """
    Credit ledger row. Positive grants credit, negative spends it.
    """
    __tablename__ = "user_credits"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    customer_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    booking_id: Mapped[Optional[UUID]] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("amount <> 0", name="credit_amount_non_zero"),
    )

    def __repr__(self) -> str:
        return f"<CreditEntry(customer_id={self.customer_id}, amount={self.amount}, reason={self.reason})>"


class FineEntry(Base):
    """
    Fine ledger row.

    A levied fine is a positive `pending` row. Paying it appends a
    negative `paid` row whose settles_fine_id points at the fine; the
    unique constraint allows at most one settlement per fine.
    """
    __tablename__ = "user_fines"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    customer_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    booking_id: Mapped[Optional[UUID]] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[FineStatus] = mapped_column(
        SQLEnum(FineStatus, name="fine_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=FineStatus.PENDING,
    )
    settles_fine_id: Mapped[Optional[UUID]] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("user_fines.id", ondelete="RESTRICT"),
        nullable=True,
        unique=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint(
            "(settles_fine_id IS NULL AND amount > 0) OR (settles_fine_id IS NOT NULL AND amount < 0)",
            name="fine_sign_matches_kind",
        ),
    )

    @property
    def is_settlement(self) -> bool:
        return self.settles_fine_id is not None

    def __repr__(self) -> str:
        return f"<FineEntry(customer_id={self.customer_id}, amount={self.amount}, status={self.status})>"
