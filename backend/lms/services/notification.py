"""
Borrower notifications.

Senders:
    - LogNotificationSender: writes the notification to the log (default)
    - WebhookNotificationSender: POSTs the JSON payload with httpx

Request handlers use ``dispatch()``: the send runs as a background task and
a failure is only logged, so a notification problem never fails or rolls
back the operation that triggered it. The sweep awaits ``send()`` instead
and only sets its tracking flags once the send succeeded.
"""

import asyncio
import enum
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from typing import Any, Protocol

import httpx

from lms.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    WELCOME = "welcome"
    ACCOUNT_APPROVED = "account_approved"
    ACCOUNT_REJECTED = "account_rejected"
    BOOK_ISSUED = "book_issued"
    BOOK_RETURNED = "book_returned"
    DUE_REMINDER = "due_reminder"
    OVERDUE_NOTICE = "overdue_notice"


@dataclass
class Notification:
    kind: NotificationKind
    recipient_email: str
    recipient_name: str
    subject: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["kind"] = self.kind.value
        return payload


class NotificationSender(Protocol):
    async def send(self, notification: Notification) -> None:
        ...


class LogNotificationSender:
    """Writes notifications to the log."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            f"Notification {notification.kind.value} to {notification.recipient_email}: "
            f"{notification.subject}"
        )


class WebhookNotificationSender:
    """
    Delivers notifications to an HTTP endpoint.

    Args:
        url: Webhook URL receiving ``Notification.to_payload()`` as JSON
        timeout: Request timeout in seconds
        client: Optional shared httpx client (tests inject a mock transport)
    """

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def send(self, notification: Notification) -> None:
        payload = notification.to_payload()
        if self._client is not None:
            response = await self._client.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()


def build_sender(settings: Settings) -> NotificationSender:
    """Pick the sender configured by NOTIFICATION_BACKEND."""
    if settings.NOTIFICATION_BACKEND == "webhook":
        if not settings.NOTIFICATION_WEBHOOK_URL:
            raise ValueError("NOTIFICATION_WEBHOOK_URL is required for the webhook backend")
        return WebhookNotificationSender(
            url=settings.NOTIFICATION_WEBHOOK_URL,
            timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
        )
    return LogNotificationSender()


def _fmt_date(value: datetime) -> str:
    return value.strftime("%d %b %Y")


class NotificationService:
    """Builds borrower notifications and hands them to a sender."""

    def __init__(self, sender: NotificationSender | None = None):
        self.sender = sender or LogNotificationSender()
        self._pending: set[asyncio.Task] = set()

    # ==========================================
    # Delivery
    # ==========================================

    async def send(self, notification: Notification) -> bool:
        """
        Send now.

        Returns:
            True if the sender accepted the notification
        """
        try:
            await self.sender.send(notification)
            return True
        except Exception as e:
            logger.warning(
                f"Failed to send {notification.kind.value} notification "
                f"to {notification.recipient_email}: {e}"
            )
            return False

    def dispatch(self, notification: Notification) -> asyncio.Task:
        """Send in the background; the caller does not wait for delivery."""
        task = asyncio.create_task(self.send(notification))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for background sends still in flight (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ==========================================
    # Builders
    # ==========================================

    @staticmethod
    def welcome(email: str, name: str) -> Notification:
        return Notification(
            kind=NotificationKind.WELCOME,
            recipient_email=email,
            recipient_name=name,
            subject="Welcome to the EE Library",
            data={"message": "Your account is pending approval by the library staff."},
        )

    @staticmethod
    def account_approved(email: str, name: str) -> Notification:
        return Notification(
            kind=NotificationKind.ACCOUNT_APPROVED,
            recipient_email=email,
            recipient_name=name,
            subject="Your library account has been approved",
        )

    @staticmethod
    def account_rejected(email: str, name: str, reason: str | None = None) -> Notification:
        return Notification(
            kind=NotificationKind.ACCOUNT_REJECTED,
            recipient_email=email,
            recipient_name=name,
            subject="Your library registration was not approved",
            data={"reason": reason} if reason else {},
        )

    @staticmethod
    def book_issued(
        email: str,
        name: str,
        book_title: str,
        issued_at: datetime,
        due_date: datetime,
    ) -> Notification:
        return Notification(
            kind=NotificationKind.BOOK_ISSUED,
            recipient_email=email,
            recipient_name=name,
            subject=f"Book issued: {book_title}",
            data={
                "book_title": book_title,
                "issued_at": _fmt_date(issued_at),
                "due_date": _fmt_date(due_date),
            },
        )

    @staticmethod
    def book_returned(
        email: str,
        name: str,
        book_title: str,
        returned_at: datetime,
        fine: Decimal,
    ) -> Notification:
        return Notification(
            kind=NotificationKind.BOOK_RETURNED,
            recipient_email=email,
            recipient_name=name,
            subject=f"Book returned: {book_title}",
            data={
                "book_title": book_title,
                "returned_at": _fmt_date(returned_at),
                "fine": str(fine),
            },
        )

    @staticmethod
    def due_reminder(
        email: str,
        name: str,
        book_title: str,
        due_date: datetime,
    ) -> Notification:
        return Notification(
            kind=NotificationKind.DUE_REMINDER,
            recipient_email=email,
            recipient_name=name,
            subject=f"Return reminder: {book_title}",
            data={"book_title": book_title, "due_date": _fmt_date(due_date)},
        )

    @staticmethod
    def overdue_notice(
        email: str,
        name: str,
        book_title: str,
        days_overdue: int,
        fine: Decimal,
    ) -> Notification:
        return Notification(
            kind=NotificationKind.OVERDUE_NOTICE,
            recipient_email=email,
            recipient_name=name,
            subject=f"Overdue: {book_title}",
            data={
                "book_title": book_title,
                "days_overdue": days_overdue,
                "fine": str(fine),
            },
        )


@lru_cache
def get_notification_service() -> NotificationService:
    """Process-wide notification service built from settings."""
    return NotificationService(build_sender(get_settings()))
