"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from arena.models.users import User, UserRole
from arena.models.courts import Court, CourtType, TimeSlot
from arena.models.bookings import (
    ACTIVE_STATUSES,
    Booking,
    BookingStatus,
    MobilePaymentMethod,
    PaymentMethod,
    PaymentStatus,
)
from arena.models.slot_locks import SlotLock
from arena.models.ledger import CreditEntry, FineEntry, FineStatus, LedgerReason
from arena.models.notifications import NotificationType, UserNotification

__all__ = [
    "User",
    "UserRole",
    "Court",
    "CourtType",
    "TimeSlot",
    "ACTIVE_STATUSES",
    "Booking",
    "BookingStatus",
    "MobilePaymentMethod",
    "PaymentMethod",
    "PaymentStatus",
    "SlotLock",
    "CreditEntry",
    "FineEntry",
    "FineStatus",
    "LedgerReason",
    "NotificationType",
    "UserNotification",
]
