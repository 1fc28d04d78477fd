from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..errors import ProfileValidationError, ProfilingError, Result, StatusTransitionError
from ..models.profile_status import ProfileStatus, ReviewDecision
from .notifications import Notifier, dispatch
from .profile_store import ProfileStore
from .status_engine import REASON_REQUIRED, evaluate_decision

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReviewOutcome:
    resident_id: str
    decision: ReviewDecision
    previous_status: Optional[ProfileStatus]
    new_status: ProfileStatus
    reason: Optional[str] = None
    warnings: Tuple[str, ...] = ()


ReviewResult = Result[ReviewOutcome]


class ReviewService:
    """
    Status decisions made outside a submission: administrator review
    (approve / reject / require update / answer an update request) and the
    resident's own update request on an approved profile.

    Each decision writes the new status with its reason, then sends the
    matching email; a failed email is logged and returned as a warning.
    """

    def __init__(self, store: ProfileStore, notifier: Notifier) -> None:
        self.store = store
        self.notifier = notifier

    async def decide(
        self,
        resident_id: str,
        decision: ReviewDecision,
        reason: Optional[str] = None,
    ) -> ReviewResult:
        decision = ReviewDecision(decision)
        if decision in REASON_REQUIRED and not (reason or "").strip():
            return Result.failure(ProfileValidationError("reason", f"a reason is required to {decision.value.replace('_', ' ')}"))

        try:
            record = await self.store.get_status_record(resident_id)
        except ProfilingError as exc:
            return Result.failure(exc)

        current = record.status if record is not None else None
        evaluated = evaluate_decision(current, decision, reason)
        if not evaluated.should_change:
            return Result.failure(StatusTransitionError(evaluated.reason or f"{decision.value} not allowed"))

        try:
            await self.store.upsert_status(resident_id, evaluated.new_status, evaluated.reason)
        except ProfilingError as exc:
            logger.error("resident %s %s not persisted: %s", resident_id, decision.value, exc)
            return Result.failure(exc)

        logger.info(
            "resident %s %s: %s -> %s",
            resident_id,
            decision.value,
            current.label if current else None,
            evaluated.new_status.label,
        )

        warning = await dispatch(self.notifier, evaluated.notify_event, resident_id)
        return Result.success(
            ReviewOutcome(
                resident_id=resident_id,
                decision=decision,
                previous_status=current,
                new_status=evaluated.new_status,
                reason=evaluated.reason,
                warnings=(warning,) if warning else (),
            )
        )

    async def request_update(self, resident_id: str, reason: Optional[str]) -> ReviewResult:
        """Resident asks to change an approved profile."""
        return await self.decide(resident_id, ReviewDecision.REQUEST_UPDATE, reason)
