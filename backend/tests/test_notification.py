"""
Tests for notification builders, senders and background dispatch.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal

import httpx
import pytest

from conftest import RecordingSender
from lms.core.config import Settings
from lms.services.notification import (
    LogNotificationSender,
    NotificationKind,
    NotificationService,
    WebhookNotificationSender,
    build_sender,
)


def issued_notification():
    return NotificationService.book_issued(
        email="ananya@college.edu",
        name="Ananya Rao",
        book_title="Power System Analysis",
        issued_at=datetime(2026, 3, 1, 10, 0),
        due_date=datetime(2026, 3, 15, 10, 0),
    )


class TestBuilders:

    def test_book_issued_payload(self):
        payload = issued_notification().to_payload()

        assert payload["kind"] == "book_issued"
        assert payload["recipient_email"] == "ananya@college.edu"
        assert payload["subject"] == "Book issued: Power System Analysis"
        assert payload["data"] == {
            "book_title": "Power System Analysis",
            "issued_at": "01 Mar 2026",
            "due_date": "15 Mar 2026",
        }

    def test_book_returned_carries_fine(self):
        notification = NotificationService.book_returned(
            email="ananya@college.edu",
            name="Ananya Rao",
            book_title="Power System Analysis",
            returned_at=datetime(2026, 3, 20, 9, 0),
            fine=Decimal("60.00"),
        )

        assert notification.kind == NotificationKind.BOOK_RETURNED
        assert notification.data["fine"] == "60.00"

    def test_rejection_reason_is_optional(self):
        with_reason = NotificationService.account_rejected(
            "ananya@college.edu", "Ananya Rao", "Roll number not found"
        )
        without = NotificationService.account_rejected("ananya@college.edu", "Ananya Rao")

        assert with_reason.to_payload()["kind"] == "account_rejected"
        assert with_reason.data == {"reason": "Roll number not found"}
        assert without.data == {}


class TestBuildSender:

    def test_log_backend_is_default(self):
        assert isinstance(build_sender(Settings(_env_file=None)), LogNotificationSender)

    def test_webhook_backend(self):
        settings = Settings(
            _env_file=None,
            NOTIFICATION_BACKEND="webhook",
            NOTIFICATION_WEBHOOK_URL="https://hooks.college.edu/library",
        )

        sender = build_sender(settings)

        assert isinstance(sender, WebhookNotificationSender)
        assert sender.url == "https://hooks.college.edu/library"

    def test_webhook_backend_requires_url(self):
        with pytest.raises(ValueError):
            build_sender(Settings(_env_file=None, NOTIFICATION_BACKEND="webhook"))


class TestWebhookSender:

    @pytest.mark.anyio
    async def test_posts_json_payload(self):
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(202)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            sender = WebhookNotificationSender("https://hooks.test/notify", client=client)
            service = NotificationService(sender)

            assert await service.send(issued_notification()) is True

        assert received[0]["kind"] == "book_issued"
        assert received[0]["data"]["due_date"] == "15 Mar 2026"

    @pytest.mark.anyio
    async def test_server_error_is_reported_not_raised(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            sender = WebhookNotificationSender("https://hooks.test/notify", client=client)
            service = NotificationService(sender)

            assert await service.send(issued_notification()) is False


class TestDispatch:

    @pytest.mark.anyio
    async def test_dispatch_delivers_in_background(self):
        sender = RecordingSender()
        service = NotificationService(sender)

        service.dispatch(issued_notification())
        await service.drain()

        assert [n.kind for n in sender.sent] == [NotificationKind.BOOK_ISSUED]

    @pytest.mark.anyio
    async def test_dispatch_failure_is_logged(self, caplog):
        service = NotificationService(RecordingSender(fail=True))

        with caplog.at_level(logging.WARNING, logger="lms.services.notification"):
            task = service.dispatch(issued_notification())
            await service.drain()

        assert task.result() is False
        assert "Failed to send book_issued notification" in caplog.text
