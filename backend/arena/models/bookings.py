"""
Booking model - a customer's claim on one (court, time slot, date).
"""
from datetime import date as date_type, datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    CheckConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from arena.lib.db import Base
from arena.models.courts import Court, TimeSlot
from arena.models.users import User


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class BookingStatus(str, enum.Enum):
    """
    Booking status state machine.

    unpaid -> paid -> completed | no_show
    unpaid -> cancelled, paid -> cancelled
    unpaid -> cancelled_by_override (another customer paid for the slot)
    """
    UNPAID = "unpaid"
    PAID = "paid"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"
    CANCELLED_BY_OVERRIDE = "cancelled_by_override"


# Statuses that occupy the slot
ACTIVE_STATUSES = (BookingStatus.UNPAID, BookingStatus.PAID)


class PaymentStatus(str, enum.Enum):
    """Payment status enumeration."""
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    """How a booking was paid."""
    ORANGE_MONEY = "orange_money"
    WAVE = "wave"
    CASH = "cash"
    CREDIT = "credit"
    CREDIT_AND_MOBILE = "credit_and_mobile"


class MobilePaymentMethod(str, enum.Enum):
    """Mobile-money wallets that can top up a partial credit payment."""
    ORANGE_MONEY = "orange_money"
    WAVE = "wave"


class Booking(Base):
    """
    Booking entity.

    At most one booking per (court, time slot, date) may be in an active
    status; the partial unique index is the last line of defence behind
    the reservation service's read-before-write checks.
    """
    __tablename__ = "bookings"

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
    court_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("courts.id", ondelete="RESTRICT"),
        nullable=False,
    )
    time_slot_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("time_slots.id", ondelete="RESTRICT"),
        nullable=False,
    )
    date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)

    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus, name="booking_status", values_callable=_enum_values),
        nullable=False,
        default=BookingStatus.UNPAID,
        index=True,
    )

    # Payment
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SQLEnum(PaymentMethod, name="payment_method", values_callable=_enum_values),
        nullable=True,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name="payment_status", values_callable=_enum_values),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    credit_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Unpaid booking this one displaced (non-owning back reference)
    overridden_booking_id: Mapped[Optional[UUID]] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    court: Mapped[Court] = relationship(lazy="joined")
    time_slot: Mapped[TimeSlot] = relationship(lazy="joined")
    customer: Mapped[User] = relationship()

    __table_args__ = (
        Index(
            "uq_bookings_active_slot",
            "court_id",
            "time_slot_id",
            "date",
            unique=True,
            postgresql_where=text("status IN ('unpaid', 'paid')"),
            sqlite_where=text("status IN ('unpaid', 'paid')"),
        ),
        CheckConstraint("total_amount >= 0", name="booking_amount_non_negative"),
        CheckConstraint(
            "credit_used >= 0 AND credit_used <= total_amount",
            name="booking_credit_within_total",
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status={self.status}, customer_id={self.customer_id})>"
