from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel

from ..errors import InconsistentStateError, ProfilingError, Result, StatusTransitionError
from ..models.profile import ResidentProfile
from ..models.profile_status import ProfileStatus
from .notifications import Notifier, dispatch
from .profile_store import ProfileStore
from .status_engine import evaluate_submission
from .validation import ValidationContext, validate_profile

logger = logging.getLogger(__name__)

# Dropdowns, codes, ages, counts and storage paths keep their case on submit.
KEEP_CASE_FIELDS = frozenset({
    "region",
    "province",
    "city",
    "barangay",
    "zone",
    "extension",
    "gender",
    "custom_gender",
    "civil_status",
    "id_type",
    "employment_type",
    "education",
    "relation",
    "is_living_with_parents",
    "owns_house",
    "is_renting",
    "is_registered_voter",
    "has_own_comfort_room",
    "has_own_water_supply",
    "has_own_electricity",
    "pwd_status",
    "disability_type",
    "age",
    "image_url",
    "valid_id_url",
    "zone_cert_url",
})


@dataclass(frozen=True)
class SubmitOutcome:
    new_status: ProfileStatus
    notified: bool = False
    warnings: Tuple[str, ...] = ()


SubmitResult = Result[SubmitOutcome]


def _upper_text(model: BaseModel) -> Any:
    update: Dict[str, Any] = {}
    for name in type(model).model_fields:
        value = getattr(model, name)
        if isinstance(value, BaseModel):
            update[name] = _upper_text(value)
        elif isinstance(value, list):
            update[name] = [_upper_text(v) if isinstance(v, BaseModel) else v for v in value]
        elif type(value) is str and name not in KEEP_CASE_FIELDS:
            update[name] = value.upper()
    return model.model_copy(update=update)


def uppercase_profile(profile: ResidentProfile) -> ResidentProfile:
    """Copy of the profile with every free-text field upper-cased."""
    return _upper_text(profile.model_copy(deep=True))


class SubmissionOrchestrator:
    """
    Final submission: holistic re-validation, the two writes (aggregate,
    then status) and the pending-review notification.

    Steps can be revisited and left stale through back-navigation, so the
    whole profile is validated again here even though every step validated
    itself on the way in.
    """

    def __init__(
        self,
        store: ProfileStore,
        notifier: Notifier,
        *,
        context: Optional[ValidationContext] = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.context = context

    async def submit(
        self,
        resident_id: str,
        profile: ResidentProfile,
    ) -> SubmitResult:
        # the stored status decides, never a cached copy held by the caller
        try:
            current_status = await self.store.get_status(resident_id)
        except ProfilingError as exc:
            logger.error("resident %s submission could not read the status: %s", resident_id, exc)
            return Result.failure(exc)

        decision = evaluate_submission(current_status)
        if not decision.should_change:
            return Result.failure(StatusTransitionError(decision.reason or "submission not allowed"))

        context = self.context or ValidationContext.from_settings(final=True)
        try:
            result = validate_profile(profile, context)
        except InconsistentStateError as exc:
            logger.error("resident %s submission hit an inconsistent profile: %s", resident_id, exc)
            return Result.failure(exc)

        if not result.ok:
            logger.debug("resident %s submission invalid: %s %s", resident_id, result.field, result.reason)
            return Result.failure(result.to_error())

        try:
            await self.store.upsert_profile(resident_id, uppercase_profile(profile))
            await self.store.upsert_status(resident_id, decision.new_status)
        except ProfilingError as exc:
            logger.error("resident %s submission not persisted: %s", resident_id, exc)
            return Result.failure(exc)

        logger.info("resident %s submitted, status %s", resident_id, decision.new_status.label)

        warning = await dispatch(self.notifier, decision.notify_event, resident_id)
        return Result.success(
            SubmitOutcome(
                new_status=decision.new_status,
                notified=decision.notify_event is not None and warning is None,
                warnings=(warning,) if warning else (),
            )
        )
