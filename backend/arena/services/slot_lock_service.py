"""
Slot lock manager.

A lock row per (court, time slot, date) keeps two payers from running
the payment/override decision for the same slot at the same time. Locks
are advisory and bounded by a TTL: nobody ever waits on one, a conflict
is reported immediately as SLOT_LOCKED and the client retries.

Locks commit on their own so they are visible to every other request
while the holder's booking transaction is still in flight.
"""
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Callable, Iterator, Optional
from uuid import UUID

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from arena.api.middleware.error_handler import ConflictException, ErrorCode
from arena.lib.logging import get_logger
from arena.lib.metrics import get_metrics_collector
from arena.lib.settings import settings
from arena.lib.timeutils import ensure_utc, utc_now
from arena.models.slot_locks import SlotLock


logger = get_logger(__name__)


class SlotLockService:
    """Acquire and release slot locks."""

    def __init__(
        self,
        session: Session,
        now_fn: Callable[[], datetime] = utc_now,
        ttl_seconds: Optional[int] = None,
    ):
        self.session = session
        self.now_fn = now_fn
        self.ttl = timedelta(seconds=ttl_seconds or settings.slot_lock_ttl_seconds)
        self.metrics = get_metrics_collector()

    @staticmethod
    def _key(court_id: UUID, time_slot_id: UUID, slot_date: date):
        return (
            SlotLock.court_id == court_id,
            SlotLock.time_slot_id == time_slot_id,
            SlotLock.date == slot_date,
        )

    def acquire(
        self,
        court_id: UUID,
        time_slot_id: UUID,
        slot_date: date,
        customer_id: UUID,
    ) -> None:
        """
        Take the lock for a slot.

        1. Sweep an expired row for this key.
        2. Insert a fresh row expiring at now + TTL.
        3. On conflict, take the row over if it is ours or expired;
           otherwise another payer holds it.

        Raises:
            ConflictException: SLOT_LOCKED
        """
        now = self.now_fn()
        expires_at = now + self.ttl
        key = self._key(court_id, time_slot_id, slot_date)

        self.session.execute(delete(SlotLock).where(*key, SlotLock.expires_at < now))
        self.session.commit()

        self.session.add(
            SlotLock(
                court_id=court_id,
                time_slot_id=time_slot_id,
                date=slot_date,
                customer_id=customer_id,
                expires_at=expires_at,
                created_at=now,
            )
        )
        try:
            self.session.commit()
            self.metrics.increment_lock_events("acquired")
            logger.debug(
                "Slot lock acquired",
                extra={"court_id": str(court_id), "time_slot_id": str(time_slot_id), "date": slot_date.isoformat()},
            )
            return
        except IntegrityError:
            self.session.rollback()

        # Re-entry by the same customer, or an expired holder we can replace
        result = self.session.execute(
            update(SlotLock)
            .where(
                *key,
                or_(SlotLock.customer_id == customer_id, SlotLock.expires_at <= now),
            )
            .values(customer_id=customer_id, expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()

        if result.rowcount:
            self.metrics.increment_lock_events("reentered")
            return

        holder = self.session.execute(select(SlotLock).where(*key)).scalar_one_or_none()
        self.metrics.increment_lock_events("conflict")
        logger.info(
            "Slot lock conflict",
            extra={
                "court_id": str(court_id),
                "time_slot_id": str(time_slot_id),
                "date": slot_date.isoformat(),
                "customer_id": str(customer_id),
            },
        )
        retry_after = None
        if holder is not None:
            retry_after = max(int((ensure_utc(holder.expires_at) - now).total_seconds()), 1)
        raise ConflictException(
            "This slot is being booked by another customer. Try again in a few moments.",
            details={"retry_after": retry_after},
            error_code=ErrorCode.SLOT_LOCKED,
        )

    def release(
        self,
        court_id: UUID,
        time_slot_id: UUID,
        slot_date: date,
        customer_id: UUID,
    ) -> None:
        """Delete the caller's lock for a slot. No-op if it holds none."""
        self.session.execute(
            delete(SlotLock).where(
                *self._key(court_id, time_slot_id, slot_date),
                SlotLock.customer_id == customer_id,
            )
        )
        self.session.commit()
        self.metrics.increment_lock_events("released")

    @contextmanager
    def hold(
        self,
        court_id: UUID,
        time_slot_id: UUID,
        slot_date: date,
        customer_id: UUID,
    ) -> Iterator[None]:
        """
        Hold the lock for the duration of the block.

        Release runs on every exit path. A failed release is logged and
        left to TTL expiry so it never masks the block's own outcome.
        """
        self.acquire(court_id, time_slot_id, slot_date, customer_id)
        try:
            yield
        except Exception:
            # The block may have left the session mid-transaction
            self.session.rollback()
            raise
        finally:
            try:
                self.release(court_id, time_slot_id, slot_date, customer_id)
            except Exception as e:
                self.session.rollback()
                logger.error(
                    f"Failed to release slot lock, it will expire: {e}",
                    extra={
                        "court_id": str(court_id),
                        "time_slot_id": str(time_slot_id),
                        "date": slot_date.isoformat(),
                    },
                    exc_info=True,
                )
