"""
Caller profile routes: who am I, and push token registration.
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from arena.api.dependencies import get_current_user, get_db
from arena.models.users import User
from arena.services.notification_service import NotificationDispatcher


class ProfileResponse(BaseModel):
    id: UUID
    phone: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    has_push_token: bool

    @classmethod
    def from_user(cls, user: User) -> "ProfileResponse":
        return cls(
            id=user.id,
            phone=user.phone,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role.value,
            has_push_token=bool(user.push_token),
        )


class PushTokenRequest(BaseModel):
    """Expo push token reported by the mobile app."""
    token: str = Field(
        ...,
        max_length=255,
        pattern=r"^Expo(nent)?PushToken\[.+\]$",
        description="e.g. ExponentPushToken[xxxxxxxxxxxxxxxxxxxxxx]",
    )


router = APIRouter(prefix="/me", tags=["profile"])


@router.get("", response_model=ProfileResponse)
def get_profile(user: User = Depends(get_current_user)) -> ProfileResponse:
    return ProfileResponse.from_user(user)


@router.put("/push-token", response_model=ProfileResponse)
def register_push_token(
    request: PushTokenRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ProfileResponse:
    """Register this device for booking push notifications."""
    user = NotificationDispatcher(db).register_push_token(user, request.token)
    return ProfileResponse.from_user(user)


@router.delete("/push-token", status_code=status.HTTP_204_NO_CONTENT)
def clear_push_token(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> None:
    """Stop push notifications to this account (logout)."""
    NotificationDispatcher(db).clear_push_token(user)
