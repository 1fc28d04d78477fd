from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_snake

from ..config import settings
from ..errors import (
    ProfileValidationError,
    ProfilingError,
    Result,
    WizardNavigationError,
)
from ..models.profile import (
    CensusAnswers,
    Child,
    CivilStatus,
    HouseholdComposition,
    OtherMember,
    Person,
)
from ..models.profile_status import ProfileStatus
from .address_directory import AddressDirectory
from .profile_store import ProfileStore, StatusRecord
from .status_engine import is_read_only, needs_acknowledgement, requires_restart
from .step_store import StepDataStore
from .submission import SubmissionOrchestrator, SubmitResult
from .validation import EntityKind, ValidationContext, kind_of, validate

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class WizardStep(str, Enum):
    HOUSEHOLD_HEAD = "household_head"
    SPOUSE = "spouse"
    COMPOSITION = "composition"
    CENSUS = "census"
    CONFIRMATION = "confirmation"


class ConfirmationTab(str, Enum):
    HEAD = "head"
    SPOUSE = "spouse"
    COMPOSITION = "composition"
    CENSUS = "census"


def _is_married(civil_status: Any) -> bool:
    if civil_status is None:
        return False
    try:
        return CivilStatus(civil_status) == CivilStatus.MARRIED
    except ValueError:
        return False


def steps_for(civil_status: Any) -> List[WizardStep]:
    """Step sequence for a head civil status; Spouse only when Married."""
    steps = [WizardStep.HOUSEHOLD_HEAD]
    if _is_married(civil_status):
        steps.append(WizardStep.SPOUSE)
    steps += [WizardStep.COMPOSITION, WizardStep.CENSUS, WizardStep.CONFIRMATION]
    return steps


def _position(current: WizardStep, steps: List[WizardStep]) -> int:
    try:
        return steps.index(current)
    except ValueError:
        raise WizardNavigationError(f"step {current.value} is not part of this sequence") from None


def next_step(current: WizardStep, civil_status: Any) -> Optional[WizardStep]:
    steps = steps_for(civil_status)
    i = _position(current, steps)
    return steps[i + 1] if i + 1 < len(steps) else None


def previous_step(current: WizardStep, civil_status: Any) -> Optional[WizardStep]:
    steps = steps_for(civil_status)
    i = _position(current, steps)
    return steps[i - 1] if i > 0 else None


@dataclass(frozen=True)
class WizardState:
    resident_id: str
    step: WizardStep
    steps: Tuple[WizardStep, ...]
    tab: ConfirmationTab
    read_only: bool
    status: Optional[ProfileStatus] = None
    status_reason: Optional[str] = None
    needs_acknowledgement: bool = False
    version: int = 0
    dirty: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resident_id": self.resident_id,
            "step": self.step.value,
            "steps": [s.value for s in self.steps],
            "tab": self.tab.value,
            "read_only": self.read_only,
            "status": int(self.status) if self.status is not None else None,
            "status_label": self.status.label if self.status is not None else None,
            "status_reason": self.status_reason,
            "needs_acknowledgement": self.needs_acknowledgement,
            "version": self.version,
            "dirty": list(self.dirty),
        }


StepResult = Result[WizardState]


def _coerce(model: Type[M], output: Any, section: str) -> Optional[M]:
    if output is None or isinstance(output, model):
        return output
    try:
        return model.model_validate(output)
    except ValidationError as exc:
        first = exc.errors()[0]
        loc = [str(p) for p in first.get("loc", ()) if not isinstance(p, int)]
        name = to_snake(loc[0]) if loc else section
        raise ProfileValidationError(name, first.get("msg", "invalid value"), section=section) from None


class WizardController:
    """
    Drives one resident through HouseholdHead -> [Spouse] -> Composition ->
    Census -> Confirmation.

    The Spouse branch is decided by the civil status the head step was last
    completed with. Every forward move validates the step, merges it into the
    StepDataStore and partial-saves the whole aggregate before moving on.
    Public operations return StepResult; they never raise ProfilingError.
    """

    def __init__(
        self,
        resident_id: str,
        store: ProfileStore,
        data: Optional[StepDataStore] = None,
        *,
        status: Optional[ProfileStatus] = None,
        status_reason: Optional[str] = None,
    ) -> None:
        self.resident_id = resident_id
        self.store = store
        self.data = data or StepDataStore()
        self.step = WizardStep.HOUSEHOLD_HEAD
        self.tab = ConfirmationTab.HEAD
        self.status = status
        self.status_reason = status_reason
        self._branch = self.data.profile.household.civil_status

    @classmethod
    async def open(cls, resident_id: str, store: ProfileStore, **data_options: Any) -> "WizardController":
        """Load the stored profile and status. PersistenceError propagates."""
        profile = await store.get_profile(resident_id)
        record = await store.get_status_record(resident_id)
        wizard = cls(resident_id, store, StepDataStore(profile, **data_options))
        wizard.observe_status(record)
        return wizard

    # -------------------------
    # State
    # -------------------------

    @property
    def read_only(self) -> bool:
        return is_read_only(self.status)

    @property
    def steps(self) -> List[WizardStep]:
        return steps_for(self._branch)

    def state(self) -> WizardState:
        return WizardState(
            resident_id=self.resident_id,
            step=self.step,
            steps=tuple(self.steps),
            tab=self.tab,
            read_only=self.read_only,
            status=self.status,
            status_reason=self.status_reason,
            needs_acknowledgement=needs_acknowledgement(self.status),
            version=self.data.version,
            dirty=tuple(self.data.dirty_sections),
        )

    def _fail(self, error: ProfilingError) -> StepResult:
        return Result.failure(error)

    def observe_status(self, record: Optional[StatusRecord]) -> bool:
        """
        Take in the latest stored status. Entering REJECTED restarts the
        wizard on an empty profile; returns True when that happened.
        """
        status = record.status if record is not None else None
        previous = self.status
        self.status = status
        self.status_reason = record.reason if record is not None else None

        if requires_restart(status) and previous != status:
            logger.info("resident %s profile rejected, restarting wizard", self.resident_id)
            self.data.reset(dirty=True)
            self.step = WizardStep.HOUSEHOLD_HEAD
            self.tab = ConfirmationTab.HEAD
            self._branch = None
            return True
        return False

    # -------------------------
    # Step handling
    # -------------------------

    def _context(self, index: Optional[int] = None) -> ValidationContext:
        return ValidationContext.from_settings(final=False, index=index)

    def _apply_household(self, output: Any) -> None:
        person = _coerce(Person, output, "household")
        if person is None:
            person = self.data.profile.household
        result = validate(self.data.derive_person(person), EntityKind.HOUSEHOLD_HEAD, self._context())
        if not result.ok:
            raise result.located("household").to_error()
        self.data.set_household(person)

    def _apply_spouse(self, output: Any) -> None:
        person = _coerce(Person, output, "spouse")
        if person is None:
            person = self.data.profile.spouse if self.data.profile.spouse is not None else Person()
        if person.civil_status is None:
            person = person.model_copy(update={"civil_status": CivilStatus.MARRIED})
        result = validate(self.data.derive_person(person), EntityKind.SPOUSE, self._context())
        if not result.ok:
            raise result.located("spouse").to_error()
        self.data.set_spouse(person)

    def _apply_composition(self, output: Any) -> None:
        composition = _coerce(HouseholdComposition, output, "composition")
        if composition is None:
            profile = self.data.profile
            composition = HouseholdComposition(
                children_count=profile.children_count,
                other_members_count=profile.other_members_count,
                members=list(profile.dependents),
            )

        members = self.data.derive_dependents(composition.members)
        children = sum(1 for m in members if isinstance(m, Child))
        others = sum(1 for m in members if isinstance(m, OtherMember))
        if (children, others) != (composition.children_count, composition.other_members_count):
            raise ProfileValidationError(
                "members",
                f"composition lists {children} children and {others} other members, "
                f"declared {composition.children_count} and {composition.other_members_count}",
                section="composition",
            )

        for index, member in enumerate(members):
            result = validate(member, kind_of(member), self._context(index))
            if not result.ok:
                raise result.located("composition", index).to_error()
        self.data.set_dependents(composition.members)

    def _apply_census(self, output: Any) -> None:
        answers = _coerce(CensusAnswers, output, "census")
        if answers is None:
            answers = self.data.profile.census
        result = validate(self.data.normalize_census(answers), EntityKind.CENSUS, self._context())
        if not result.ok:
            raise result.located("census").to_error()
        self.data.set_census(answers)

    _HANDLERS = {
        WizardStep.HOUSEHOLD_HEAD: _apply_household,
        WizardStep.SPOUSE: _apply_spouse,
        WizardStep.COMPOSITION: _apply_composition,
        WizardStep.CENSUS: _apply_census,
    }

    async def advance(self, step_output: Any = None) -> StepResult:
        """
        Complete the current step with `step_output` (model or camelCase dict;
        None re-submits what the store already holds) and move forward.

        On a validation or persistence failure the step does not change.
        """
        if self.read_only:
            return self._fail(WizardNavigationError(f"profile is read-only while {self.status.label}"))
        if self.step == WizardStep.CONFIRMATION:
            return self._fail(WizardNavigationError("confirmation is the last step, submit the profile instead"))

        current = self.step
        try:
            self._HANDLERS[current](self, step_output)
        except ProfilingError as exc:
            logger.debug("resident %s step %s rejected: %s", self.resident_id, current.value, exc)
            return self._fail(exc)

        try:
            await self.store.upsert_profile(self.resident_id, self.data.snapshot())
        except ProfilingError as exc:
            logger.error("resident %s partial save after %s failed: %s", self.resident_id, current.value, exc)
            return self._fail(exc)

        # the whole aggregate was written
        self.data.mark_saved()

        if current == WizardStep.HOUSEHOLD_HEAD:
            self._branch = self.data.profile.household.civil_status

        self.step = next_step(current, self._branch)
        self.tab = ConfirmationTab.HEAD
        logger.info("resident %s advanced %s -> %s", self.resident_id, current.value, self.step.value)
        return Result.success(self.state())

    def retreat(self) -> StepResult:
        if self.read_only:
            return self._fail(WizardNavigationError(f"profile is read-only while {self.status.label}"))
        try:
            previous = previous_step(self.step, self._branch)
        except WizardNavigationError as exc:
            return self._fail(exc)
        if previous is None:
            return self._fail(WizardNavigationError("already at the first step"))
        self.step = previous
        return Result.success(self.state())

    def resize(self, children_count: Any, other_count: Any) -> StepResult:
        if self.read_only:
            return self._fail(WizardNavigationError(f"profile is read-only while {self.status.label}"))
        self.data.resize_dependent_slots(children_count, other_count)
        return Result.success(self.state())

    def edit_dependent(self, index: int, changes: Dict[str, Any]) -> StepResult:
        if self.read_only:
            return self._fail(WizardNavigationError(f"profile is read-only while {self.status.label}"))
        try:
            self.data.update_dependent(index, **{to_snake(k): v for k, v in changes.items()})
        except ProfilingError as exc:
            return self._fail(exc)
        except ValidationError as exc:
            first = exc.errors()[0]
            loc = first.get("loc") or ("relation",)
            return self._fail(
                ProfileValidationError(to_snake(str(loc[0])), first.get("msg", "invalid value"), section="composition", index=index)
            )
        return Result.success(self.state())

    async def submit(self, orchestrator: SubmissionOrchestrator) -> SubmitResult:
        """Hand the current aggregate to the orchestrator and adopt the new status."""
        result = await orchestrator.submit(self.resident_id, self.data.snapshot())
        if result.ok:
            self.data.mark_saved()
            self.status = result.value.new_status
            self.status_reason = None
        return result

    # -------------------------
    # Confirmation
    # -------------------------

    def select_confirmation_tab(self, tab: Any) -> StepResult:
        try:
            tab = ConfirmationTab(tab)
        except ValueError:
            return self._fail(WizardNavigationError(f"unknown confirmation tab {tab!r}"))
        if self.step != WizardStep.CONFIRMATION:
            return self._fail(WizardNavigationError("confirmation tabs are only available on the confirmation step"))
        if tab == ConfirmationTab.SPOUSE and WizardStep.SPOUSE not in self.steps:
            return self._fail(WizardNavigationError("no spouse tab for this civil status"))
        self.tab = tab
        return Result.success(self.state())

    def confirmation_view(self, directory: Optional[AddressDirectory] = None) -> Dict[str, Any]:
        """Read-only aggregate in document form, address codes resolved when a directory is given."""
        profile = self.data.profile

        def with_names(entity: Any) -> Dict[str, Any]:
            doc = entity.to_document()
            if directory is not None and getattr(entity, "region", None) is not None:
                doc.update(directory.resolve(entity))
            return doc

        return {
            "household": with_names(profile.household),
            "spouse": with_names(profile.spouse) if profile.spouse is not None else None,
            "householdComposition": [with_names(d) for d in profile.dependents],
            "childrenCount": profile.children_count,
            "numberOfhouseholdMembers": profile.other_members_count,
            "census": profile.census.to_document(),
        }


class WizardSessions:
    """
    Open WizardControllers keyed by resident, least recently used first.

    A session ends on a successful submission (the next request reopens it
    from the store) or when more than `max_open` residents are in flight.
    """

    def __init__(self, store: ProfileStore, max_open: Optional[int] = None) -> None:
        self.store = store
        self.max_open = settings.max_open_wizards if max_open is None else max(1, max_open)
        self._open: OrderedDict[str, WizardController] = OrderedDict()

    def __len__(self) -> int:
        return len(self._open)

    def __contains__(self, resident_id: object) -> bool:
        return resident_id in self._open

    async def get(self, resident_id: str) -> WizardController:
        wizard = self._open.get(resident_id)
        if wizard is not None:
            self._open.move_to_end(resident_id)
            return wizard

        wizard = await WizardController.open(resident_id, self.store)
        self._open[resident_id] = wizard
        while len(self._open) > self.max_open:
            evicted, stale = self._open.popitem(last=False)
            if stale.data.is_dirty():
                logger.warning(
                    "wizard for resident %s evicted with unsaved sections %s", evicted, stale.data.dirty_sections
                )
        return wizard

    def drop(self, resident_id: str) -> None:
        self._open.pop(resident_id, None)
