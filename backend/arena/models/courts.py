"""
Court and time slot models.

A (court, time slot, date) triple is the bookable unit. Time slots are
day-independent templates shared by every court.
"""
from datetime import time
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Integer, Boolean, Time, Enum as SQLEnum, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from arena.lib.db import Base


class CourtType(str, enum.Enum):
    """Sport played on a court."""
    FOOTBALL = "football"
    PADEL = "padel"


class Court(Base):
    """
    Court entity - priced per slot.
    """
    __tablename__ = "courts"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    type: Mapped[CourtType] = mapped_column(
        SQLEnum(CourtType, name="court_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Fixed price per slot, smallest currency unit
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=60)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("price >= 0", name="court_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Court(id={self.id}, name={self.name}, price={self.price})>"


class TimeSlot(Base):
    """
    Time slot template (venue wall-clock times).
    """
    __tablename__ = "time_slots"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    slot_order: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<TimeSlot(id={self.id}, {self.start_time}-{self.end_time})>"
