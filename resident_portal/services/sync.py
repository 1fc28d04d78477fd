from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..config import settings
from ..models.profile_status import ProfileStatus
from .step_store import SECTIONS
from .wizard import WizardController

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncReport:
    status: Optional[ProfileStatus]
    restarted: bool = False
    refreshed: Tuple[str, ...] = ()


class ProfileSync:
    """
    Periodic re-read of the stored status and profile for one open wizard,
    so an administrator's decision shows up without reopening it.

    Cooperative, not transactional: a section with unsaved local edits is
    never overwritten (StepDataStore.reconcile).
    """

    def __init__(self, wizard: WizardController, *, interval_s: Optional[float] = None) -> None:
        self.wizard = wizard
        self.interval_s = settings.poll_interval_s if interval_s is None else interval_s

    async def poll_once(self) -> SyncReport:
        """One poll. PersistenceError propagates to the caller."""
        wizard = self.wizard
        record = await wizard.store.get_status_record(wizard.resident_id)
        restarted = wizard.observe_status(record)

        refreshed: Tuple[str, ...] = ()
        if not restarted and len(wizard.data.dirty_sections) < len(SECTIONS):
            remote = await wizard.store.get_profile(wizard.resident_id)
            refreshed = tuple(wizard.data.reconcile(remote))

        logger.debug(
            "poll resident %s: status=%s restarted=%s refreshed=%s",
            wizard.resident_id,
            wizard.status,
            restarted,
            refreshed,
        )
        return SyncReport(status=wizard.status, restarted=restarted, refreshed=refreshed)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll every interval until stop_event is set. A failed poll is logged and retried next tick."""
        while not stop_event.is_set():
            try:
                await self.poll_once()
            except Exception as exc:
                logger.warning("profile poll for resident %s failed: %s", self.wizard.resident_id, exc)

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_s)
            except asyncio.TimeoutError:
                pass
