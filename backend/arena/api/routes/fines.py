"""
Eligibility, fines and credits routes.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from arena.api.dependencies import get_current_user, get_db
from arena.models.users import User
from arena.services.eligibility_service import EligibilityService, FineView
from arena.services.ledger_service import LedgerService


# Pydantic schemas
class FineResponse(BaseModel):
    id: UUID
    booking_id: Optional[UUID] = None
    amount: int
    reason: str
    status: str
    created_at: datetime
    paid_at: Optional[datetime] = None

    @classmethod
    def from_view(cls, fine: FineView) -> "FineResponse":
        return cls(
            id=fine.id,
            booking_id=fine.booking_id,
            amount=fine.amount,
            reason=fine.reason,
            status=fine.status.value,
            created_at=fine.created_at,
            paid_at=fine.paid_at,
        )


class EligibilityResponse(BaseModel):
    """Whether the caller may book, and the fines holding them back."""
    can_book: bool
    pending_fines_total: int
    fines: List[FineResponse]


class CreditEntryResponse(BaseModel):
    id: UUID
    amount: int
    reason: str
    booking_id: Optional[UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CreditsResponse(BaseModel):
    balance: int
    history: List[CreditEntryResponse]


router = APIRouter(tags=["fines"])


@router.get("/eligibility", response_model=EligibilityResponse)
def check_can_book(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> EligibilityResponse:
    """Customers with pending fines cannot book until they pay them."""
    result = EligibilityService(db).check_can_book(user.id)
    return EligibilityResponse(
        can_book=result.can_book,
        pending_fines_total=result.pending_fines_total,
        fines=[FineResponse.from_view(f) for f in result.fines],
    )


@router.post("/fines/{fine_id}/pay", response_model=FineResponse)
def pay_fine(
    fine_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FineResponse:
    """Settle one of the caller's fines. Paying a settled fine again is a no-op."""
    fine = EligibilityService(db).pay_fine(fine_id, customer_id=user.id)
    return FineResponse.from_view(fine)


@router.get("/credits", response_model=CreditsResponse)
def get_credits(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CreditsResponse:
    """Credit balance and its history, newest first."""
    ledger = LedgerService(db)
    return CreditsResponse(
        balance=ledger.get_credit_balance(user.id),
        history=[CreditEntryResponse.model_validate(e) for e in ledger.list_credit_history(user.id)],
    )
