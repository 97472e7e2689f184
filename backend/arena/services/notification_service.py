"""
Notification dispatcher for booking events.

Every event is written to the customer's in-app inbox
(user_notifications) and, when the customer registered a push token,
pushed through the configured provider.

Dispatch is fire-and-forget: delivery failures are logged and counted,
never raised, so a booking never depends on a notification going out.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from uuid import UUID
import enum

import httpx
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from arena.lib.logging import get_logger
from arena.lib.metrics import get_metrics_collector
from arena.lib.settings import settings
from arena.models.notifications import UserNotification
from arena.models.users import User


logger = get_logger(__name__)


class NotificationChannel(str, enum.Enum):
    """Delivery channels."""
    IN_APP = "in_app"
    PUSH = "push"


class NotificationProvider(ABC):
    """
    Abstract base class for push delivery providers.
    """

    @abstractmethod
    def send(
        self,
        to: str,
        message: str,
        **kwargs
    ) -> bool:
        """
        Send notification via this provider.

        Args:
            to: Recipient push token
            message: Notification body
            **kwargs: Provider-specific parameters (title, data)

        Returns:
            True if sent successfully, False otherwise
        """

    @property
    def channel(self) -> NotificationChannel:
        return NotificationChannel.PUSH


class ConsolePushProvider(NotificationProvider):
    """
    Console push provider for development/testing.
    Logs notifications instead of sending them.
    """

    def send(self, to: str, message: str, **kwargs) -> bool:
        logger.info(
            "Push notification (console)",
            extra={"to": to, "title": kwargs.get("title"), "body": message},
        )
        return True


class ExpoPushProvider(NotificationProvider):
    """
    Expo push provider (the mobile app registers Expo push tokens).
    """

    def __init__(self, client: Optional[httpx.Client] = None):
        self.url = settings.expo_push_url
        self.client = client or httpx.Client(timeout=settings.push_timeout_seconds)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        response = self.client.post(self.url, json=payload)
        response.raise_for_status()
        return response

    def send(self, to: str, message: str, **kwargs) -> bool:
        payload = {
            "to": to,
            "title": kwargs.get("title"),
            "body": message,
            "data": kwargs.get("data") or {},
        }
        try:
            self._post(payload)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send Expo push: {e}", extra={"to": to})
            return False

        logger.info("Push sent via Expo", extra={"to": to})
        return True


def get_push_provider() -> NotificationProvider:
    """Provider selected by settings.push_provider."""
    if settings.push_provider == "expo":
        return ExpoPushProvider()
    return ConsolePushProvider()


class NotificationDispatcher:
    """
    Records and delivers customer notifications.

    Handles:
    - Inbox row in user_notifications
    - Push delivery when the customer has a push token
    - Delivery metrics
    """

    def __init__(self, session: Session, push_provider: Optional[NotificationProvider] = None):
        self.session = session
        self.push_provider = push_provider or get_push_provider()
        self.metrics = get_metrics_collector()

    def dispatch(
        self,
        customer_id: UUID,
        type: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Notify a customer.

        Args:
            customer_id: Recipient
            type: Event type (booking_overridden, booking_paid)
            title: Short title
            message: Body text
            data: JSON payload for the app (ids, names, dates)

        Returns:
            True if the inbox row was written
        """
        try:
            notification = UserNotification(
                customer_id=customer_id,
                type=type,
                title=title,
                message=message,
                data=data,
            )
            self.session.add(notification)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            self.metrics.increment_notifications(NotificationChannel.IN_APP.value, "failed")
            logger.error(
                f"Failed to record notification: {e}",
                extra={"customer_id": str(customer_id), "type": type},
                exc_info=True,
            )
            return False

        self.metrics.increment_notifications(NotificationChannel.IN_APP.value, "sent")
        logger.info(
            "Notification recorded",
            extra={"customer_id": str(customer_id), "type": type, "notification_id": str(notification.id)},
        )

        self._push(customer_id, type, title, message, data)
        return True

    def _push(
        self,
        customer_id: UUID,
        type: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]],
    ) -> None:
        try:
            user = self.session.get(User, customer_id)
            if user is None or not user.push_token:
                return

            payload = {"type": type, **(data or {})}
            sent = self.push_provider.send(user.push_token, message, title=title, data=payload)
        except Exception as e:
            logger.error(
                f"Push delivery error: {e}",
                extra={"customer_id": str(customer_id), "type": type},
                exc_info=True,
            )
            sent = False

        self.metrics.increment_notifications(
            NotificationChannel.PUSH.value,
            "sent" if sent else "failed",
        )

    # ===== Push tokens =====

    def register_push_token(self, user: User, token: str) -> User:
        """
        Attach the device's Expo push token to `user`.

        A token moves with the device: any other account still holding
        it is detached so pushes only reach the signed-in user.
        """
        self.session.execute(
            update(User)
            .where(User.push_token == token, User.id != user.id)
            .values(push_token=None)
        )
        user.push_token = token
        self.session.commit()

        logger.info("Push token registered", extra={"customer_id": str(user.id)})
        return user

    def clear_push_token(self, user: User) -> User:
        """Detach the push token, on logout. No-op without one."""
        if user.push_token is not None:
            user.push_token = None
            self.session.commit()
            logger.info("Push token cleared", extra={"customer_id": str(user.id)})
        return user
