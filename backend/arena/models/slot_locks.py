"""
Slot lock model - short-lived mutual exclusion between payers.
"""
from datetime import date as date_type, datetime, timezone
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, UniqueConstraint, Integer
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from arena.lib.db import Base


class SlotLock(Base):
    """
    One row per locked (court, time slot, date).

    An expired row is swept or taken over by the next
    acquisition attempt on the same key.
    """
    __tablename__ = "slot_locks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    court_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("courts.id", ondelete="CASCADE"),
        nullable=False,
    )
    time_slot_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("time_slots.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[date_type] = mapped_column(Date, nullable=False)

    # Holder
    customer_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("court_id", "time_slot_id", "date", name="uq_slot_locks_key"),
    )

    def __repr__(self) -> str:
        return f"<SlotLock(court={self.court_id}, slot={self.time_slot_id}, date={self.date}, holder={self.customer_id})>"
