"""Tests for the email dispatcher client and the never-raising dispatch helper."""

import json

import httpx
import pytest

from resident_portal.services.notifications import (
    HttpNotifier,
    NotificationError,
    NotifyEvent,
    RecordingNotifier,
    dispatch,
)


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHttpNotifier:
    def test_endpoint(self):
        notifier = HttpNotifier("https://mail.example.org/")
        assert notifier.endpoint(NotifyEvent.UPDATE_REJECTION) == "https://mail.example.org/api/email/send-update-rejection"

    @pytest.mark.asyncio
    async def test_posts_user_id(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((str(request.url), json.loads(request.content)))
            return httpx.Response(200, json={"sent": True})

        async with _client(handler) as client:
            await HttpNotifier("https://mail.example.org", client=client).notify_pending_review("u-1")

        assert seen == [("https://mail.example.org/api/email/send-pending", {"userId": "u-1"})]

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        async with _client(lambda request: httpx.Response(502)) as client:
            notifier = HttpNotifier("https://mail.example.org", client=client)
            with pytest.raises(NotificationError):
                await notifier.notify(NotifyEvent.APPROVAL, "u-1")

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(NotificationError, match="approval email for u-2 failed"):
                await HttpNotifier("https://mail.example.org", client=client).notify(NotifyEvent.APPROVAL, "u-2")

    @pytest.mark.asyncio
    async def test_missing_base_url(self):
        with pytest.raises(NotificationError, match="NOTIFY_BASE_URL"):
            await HttpNotifier("").notify(NotifyEvent.PENDING, "u-1")


class TestDispatch:
    @pytest.mark.asyncio
    async def test_no_event_sends_nothing(self):
        notifier = RecordingNotifier()
        assert await dispatch(notifier, None, "u-1") is None
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_routes_pending_and_other_events(self):
        notifier = RecordingNotifier()
        await dispatch(notifier, NotifyEvent.PENDING, "u-1")
        await dispatch(notifier, NotifyEvent.REJECTION, "u-1")
        assert notifier.sent == [(NotifyEvent.PENDING, "u-1"), (NotifyEvent.REJECTION, "u-1")]

    @pytest.mark.asyncio
    async def test_failure_becomes_warning(self, caplog):
        warning = await dispatch(RecordingNotifier(fail=True), NotifyEvent.APPROVAL, "u-3")
        assert warning.startswith("notification approval not sent")
        assert "u-3" in caplog.text
