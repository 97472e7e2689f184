"""
Client directory for venue staff.

Staff look customers up by phone or name, see where each one stands
(bookings, fines, credit) and register walk-in customers when booking
on their behalf.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from arena.api.middleware.error_handler import BadRequestException, ErrorCode, NotFoundException
from arena.lib.logging import get_logger
from arena.lib.timeutils import ensure_utc
from arena.models.bookings import Booking
from arena.models.users import User, UserRole
from arena.services.ledger_service import LedgerService


logger = get_logger(__name__)


@dataclass
class ClientSummary:
    """A customer with their booking and ledger standing."""
    client: User
    bookings_count: int
    last_booking_date: Optional[date]
    pending_fines_total: int
    credit_balance: int
    created_at: datetime


def normalize_phone(phone: str) -> str:
    """Drop spaces, dashes and dots so lookups match stored numbers."""
    return "".join(ch for ch in phone.strip() if ch not in " -.")


class ClientService:
    """Customer lookup, registration and standing."""

    def __init__(self, session: Session, ledger: Optional[LedgerService] = None):
        self.session = session
        self.ledger = ledger or LedgerService(session)

    def get_client(self, client_id: UUID) -> User:
        client = self.session.get(User, client_id)
        if client is None or client.role != UserRole.USER:
            raise NotFoundException("Client", str(client_id), error_code=ErrorCode.CLIENT_NOT_FOUND)
        return client

    def find_by_phone(self, phone: str) -> Optional[User]:
        stmt = select(User).where(User.phone == normalize_phone(phone))
        return self.session.execute(stmt).scalar_one_or_none()

    def get_or_create_client(
        self,
        phone: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> tuple[User, bool]:
        """
        Find the customer with `phone`, registering them if unknown.

        A new account needs both names.

        Returns:
            (client, created)

        Raises:
            BadRequestException: CLIENT_NOT_FOUND_NEEDS_INFO
        """
        client = self.find_by_phone(phone)
        if client is not None:
            return client, False

        first_name = (first_name or "").strip()
        last_name = (last_name or "").strip()
        if not first_name or not last_name:
            raise BadRequestException(
                "No client with this phone number, first and last name are required",
                details={"phone": normalize_phone(phone)},
                error_code=ErrorCode.CLIENT_NOT_FOUND_NEEDS_INFO,
            )

        client = User(
            phone=normalize_phone(phone),
            first_name=first_name,
            last_name=last_name,
            role=UserRole.USER,
        )
        self.session.add(client)
        self.session.commit()

        logger.info("Client registered by staff", extra={"client_id": str(client.id)})
        return client, True

    def search_clients(self, search: Optional[str] = None, limit: int = 50) -> List[ClientSummary]:
        """Customers matching `search` on phone or name, newest accounts first."""
        stmt = select(User).where(User.role == UserRole.USER)
        if search and search.strip():
            term = f"%{search.strip()}%"
            stmt = stmt.where(
                or_(
                    User.phone.ilike(term),
                    User.first_name.ilike(term),
                    User.last_name.ilike(term),
                )
            )
        stmt = stmt.order_by(User.created_at.desc()).limit(limit)

        return [self.summarize(client) for client in self.session.execute(stmt).scalars().all()]

    def summarize(self, client: User) -> ClientSummary:
        stmt = select(func.count(Booking.id), func.max(Booking.date)).where(
            Booking.customer_id == client.id
        )
        bookings_count, last_booking_date = self.session.execute(stmt).one()

        return ClientSummary(
            client=client,
            bookings_count=bookings_count or 0,
            last_booking_date=last_booking_date,
            pending_fines_total=max(self.ledger.get_pending_fines_total(client.id), 0),
            credit_balance=self.ledger.get_credit_balance(client.id),
            created_at=ensure_utc(client.created_at),
        )
