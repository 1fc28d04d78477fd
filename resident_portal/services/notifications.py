from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx

from ..config import settings

logger = logging.getLogger(__name__)


class NotifyEvent(str, Enum):
    """Email dispatcher events. Value is the endpoint suffix: /api/email/send-<value>."""

    PENDING = "pending"
    APPROVAL = "approval"
    REJECTION = "rejection"
    UPDATE_PROFILING = "update-profiling"
    UPDATE_REQUEST = "update-request"
    UPDATE_APPROVAL = "update-approval"
    UPDATE_REJECTION = "update-rejection"


class NotificationError(RuntimeError):
    pass


class Notifier(Protocol):
    async def notify(self, event: NotifyEvent, resident_id: str) -> None: ...

    async def notify_pending_review(self, resident_id: str) -> None: ...


class HttpNotifier:
    """
    Posts {"userId": <resident id>} to the email dispatcher.

    Every failure (transport, non-2xx, missing base URL) is raised as
    NotificationError; callers decide whether it matters.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = (settings.notify_base_url if base_url is None else base_url).rstrip("/")
        self.timeout_s = settings.notify_timeout_s if timeout_s is None else timeout_s
        self._client = client

    def endpoint(self, event: NotifyEvent) -> str:
        return f"{self.base_url}/api/email/send-{event.value}"

    async def _post(self, client: httpx.AsyncClient, url: str, payload: Dict[str, Any]) -> None:
        r = await client.post(url, json=payload)
        r.raise_for_status()

    async def notify(self, event: NotifyEvent, resident_id: str) -> None:
        if not self.base_url:
            raise NotificationError("NOTIFY_BASE_URL is not set")

        url = self.endpoint(event)
        payload = {"userId": resident_id}
        try:
            if self._client is not None:
                await self._post(self._client, url, payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                    await self._post(client, url, payload)
        except httpx.HTTPError as exc:
            raise NotificationError(f"{event.value} email for {resident_id} failed: {exc}") from exc

        logger.info("sent %s email for resident %s", event.value, resident_id)

    async def notify_pending_review(self, resident_id: str) -> None:
        await self.notify(NotifyEvent.PENDING, resident_id)


class RecordingNotifier:
    """In-process notifier: keeps every (event, resident) pair. Local dev and tests."""

    def __init__(self, *, fail: bool = False) -> None:
        self.sent: List[Tuple[NotifyEvent, str]] = []
        self.fail = fail

    async def notify(self, event: NotifyEvent, resident_id: str) -> None:
        if self.fail:
            raise NotificationError(f"{event.value} email for {resident_id} failed: dispatcher down")
        self.sent.append((event, resident_id))

    async def notify_pending_review(self, resident_id: str) -> None:
        await self.notify(NotifyEvent.PENDING, resident_id)


async def dispatch(notifier: Notifier, event: Optional[NotifyEvent], resident_id: str) -> Optional[str]:
    """
    Send one notification without letting a failure escape.

    Returns a warning string when sending failed, None otherwise.
    """
    if event is None:
        return None
    try:
        if event == NotifyEvent.PENDING:
            await notifier.notify_pending_review(resident_id)
        else:
            await notifier.notify(event, resident_id)
    except Exception as exc:  # notifications never roll back a transition
        logger.warning("notification %s for resident %s failed: %s", event.value, resident_id, exc)
        return f"notification {event.value} not sent: {exc}"
    return None
