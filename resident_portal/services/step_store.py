from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Union

from ..config import settings
from ..errors import InconsistentStateError
from ..models.profile import (
    ADDRESS_FIELDS,
    NO_ID,
    CensusAnswers,
    Child,
    CivilStatus,
    Gender,
    OtherMember,
    Person,
    ResidentProfile,
    YesNo,
    is_child_relation,
)
from .age import compute_age
from .validation import check_composition_counts

logger = logging.getLogger(__name__)

SECTIONS = ("household", "spouse", "composition", "census")

DependentModel = Union[Child, OtherMember]

# changing an upper address level invalidates everything below it
_ADDRESS_CASCADE = {
    "region": ("province", "city", "barangay"),
    "province": ("city", "barangay"),
    "city": ("barangay",),
}

_RELATION_GENDER = {"Son": Gender.MALE, "Daughter": Gender.FEMALE}


def _clamp(value: Any, upper: int, what: str) -> int:
    try:
        n = int(value or 0)
    except (TypeError, ValueError):
        n = 0
    clamped = min(max(n, 0), upper)
    if clamped != n:
        logger.warning("%s count %s clamped to %s", what, value, clamped)
    return clamped


def _middle_initial(middle_name: Optional[str]) -> Optional[str]:
    if not middle_name or not middle_name.strip():
        return None
    return f"{middle_name.strip()[0].upper()}."


def _address_of(source: Any) -> Dict[str, Any]:
    return {name: getattr(source, name, None) for name in ADDRESS_FIELDS}


class StepDataStore:
    """
    Owns the in-progress ResidentProfile for one wizard session.

    Every setter normalizes what it receives (derived fields, auto-fill rules)
    and marks the sections it touched dirty. `version` increases on every
    change. Sections leave the dirty set only through mark_saved(), which the
    wizard calls after a successful partial save; the background poll never
    overwrites a dirty section (see reconcile()).
    """

    def __init__(
        self,
        profile: Optional[ResidentProfile] = None,
        *,
        max_children: Optional[int] = None,
        max_other_members: Optional[int] = None,
        default_address: Optional[Dict[str, str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.max_children = settings.max_children if max_children is None else max_children
        self.max_other_members = settings.max_other_members if max_other_members is None else max_other_members
        self._default_address = dict(default_address if default_address is not None else settings.default_address)
        self._clock = clock or datetime.now

        self._profile = profile.model_copy(deep=True) if profile is not None else self.empty_profile()
        self._dirty: Set[str] = set()
        self.version = 0

    # -------------------------
    # Read access
    # -------------------------

    @property
    def profile(self) -> ResidentProfile:
        """Live aggregate. Mutate only through the setters."""
        return self._profile

    def snapshot(self) -> ResidentProfile:
        return self._profile.model_copy(deep=True)

    @property
    def dirty_sections(self) -> List[str]:
        return [s for s in SECTIONS if s in self._dirty]

    def is_dirty(self, section: Optional[str] = None) -> bool:
        if section is None:
            return bool(self._dirty)
        return section in self._dirty

    def empty_profile(self) -> ResidentProfile:
        return ResidentProfile(household=Person(**self._default_address))

    # -------------------------
    # Derivations (pure, used by the setters and by step validation)
    # -------------------------

    def derive_person(self, person: Person) -> Person:
        """Middle initial, age label and the "No ID" placeholder."""
        data: Dict[str, Any] = {"middle_initial": _middle_initial(person.middle_name)}
        if person.dob is not None:
            data["age"] = compute_age(person.dob, self._clock()).text or None
        if person.id_type == NO_ID:
            data["id_no"] = NO_ID
        if person.pwd_status == YesNo.NO:
            data["disability_type"] = None
        return person.model_copy(update=data, deep=True)

    def derive_dependent(self, dependent: DependentModel, head: Optional[Person] = None) -> DependentModel:
        head = head or self._profile.household
        data: Dict[str, Any] = {"middle_initial": _middle_initial(dependent.middle_name)}
        if dependent.dob is not None:
            data["age"] = compute_age(dependent.dob, self._clock()).text or None
        if dependent.pwd_status == YesNo.NO:
            data["disability_type"] = None
        if isinstance(dependent, Child) and dependent.lives_with_parents:
            data.update(_address_of(head))
        return dependent.model_copy(update=data, deep=True)

    def derive_dependents(self, dependents: Iterable[DependentModel], head: Optional[Person] = None) -> List[DependentModel]:
        derived = [self.derive_dependent(d, head) for d in dependents]
        children = [d for d in derived if isinstance(d, Child)]
        others = [d for d in derived if isinstance(d, OtherMember)]
        return children + others

    def normalize_census(self, answers: CensusAnswers) -> CensusAnswers:
        data: Dict[str, Any] = {}
        if answers.owns_house == YesNo.YES:
            data["is_renting"] = YesNo.NO
        elif answers.is_renting == YesNo.YES:
            data["owns_house"] = YesNo.NO
        if answers.is_registered_voter == YesNo.NO:
            data["voter_precinct_no"] = None
        return answers.model_copy(update=data, deep=True)

    # -------------------------
    # Setters
    # -------------------------

    def _touch(self, *sections: str) -> None:
        self._dirty.update(sections)
        self.version += 1

    def set_household(self, person: Person) -> None:
        head = self.derive_person(person)
        self._profile.household = head
        touched = ["household"]

        if head.is_married:
            if self._profile.spouse is None:
                self._profile.spouse = Person(civil_status=CivilStatus.MARRIED)
                touched.append("spouse")
        elif self._profile.spouse is not None:
            logger.debug("head civil status %s, dropping spouse", head.civil_status)
            self._profile.spouse = None
            touched.append("spouse")

        if self._mirror_children():
            touched.append("composition")

        self._touch(*touched)

    def set_spouse(self, person: Optional[Person]) -> None:
        if person is not None and not self._profile.household.is_married:
            raise InconsistentStateError("a spouse can only be recorded when the household head is Married")
        if person is not None and person.civil_status is None:
            person = person.model_copy(update={"civil_status": CivilStatus.MARRIED})
        self._profile.spouse = self.derive_person(person) if person is not None else None
        self._touch("spouse")

    def set_dependents(self, dependents: Sequence[DependentModel]) -> None:
        ordered = self.derive_dependents(dependents)
        self._profile.dependents = ordered
        self._profile.children_count = sum(1 for d in ordered if isinstance(d, Child))
        self._profile.other_members_count = len(ordered) - self._profile.children_count
        self._touch("composition")

    def set_census(self, answers: CensusAnswers) -> None:
        self._profile.census = self.normalize_census(answers)
        self._touch("census")

    def new_child(self) -> Child:
        return Child(
            relation="Son",
            gender=Gender.MALE,
            is_living_with_parents=YesNo.YES,
            **_address_of(self._profile.household),
        )

    def resize_dependent_slots(self, children_count: Any, other_count: Any) -> List[DependentModel]:
        """
        Grow or shrink the dependent slots per kind.

        Existing entries keep their position up to the new count; missing
        slots are appended (children pre-seeded, other members blank); extra
        entries are dropped. Calling it again with the same counts is a no-op.
        """
        n_children = _clamp(children_count, self.max_children, "children")
        n_others = _clamp(other_count, self.max_other_members, "other members")

        children = self._profile.children[:n_children]
        children += [self.new_child() for _ in range(n_children - len(children))]
        others = self._profile.other_members[:n_others]
        others += [OtherMember() for _ in range(n_others - len(others))]

        resized: List[DependentModel] = [*children, *others]
        if (
            resized != self._profile.dependents
            or self._profile.children_count != n_children
            or self._profile.other_members_count != n_others
        ):
            self._profile.dependents = resized
            self._profile.children_count = n_children
            self._profile.other_members_count = n_others
            self._touch("composition")

        return list(self._profile.dependents)

    def update_dependent(self, index: int, **changes: Any) -> DependentModel:
        """
        Field-level edit of one dependent slot (snake_case field names).

        Auto-fill: Son/Daughter sets the gender, living with parents = Yes
        mirrors the head address and No clears it, a region/province/city
        change clears the levels below, PWD = No clears the disability type,
        and the age label follows the birth date.
        """
        if not 0 <= index < len(self._profile.dependents):
            raise InconsistentStateError(f"no dependent slot at index {index}")
        current = self._profile.dependents[index]

        model = type(current)
        unknown = [k for k in changes if k not in model.model_fields]
        if unknown:
            raise InconsistentStateError(f"{model.__name__} has no field(s) {', '.join(sorted(unknown))}")

        if "relation" in changes and is_child_relation(changes["relation"]) != isinstance(current, Child):
            raise InconsistentStateError(
                f"relation {changes['relation']!r} does not belong in a {model.__name__} slot; resize the slots instead"
            )

        data = current.model_dump()
        for level, lower in _ADDRESS_CASCADE.items():
            if level in changes and changes[level] != data.get(level):
                for name in lower:
                    if name not in changes:
                        data[name] = None
        data.update(changes)

        updated = model.model_validate(data)
        fill: Dict[str, Any] = {}
        if "relation" in changes and isinstance(updated, Child):
            fill["gender"] = _RELATION_GENDER[updated.relation]
        if "is_living_with_parents" in changes and isinstance(updated, Child):
            if updated.is_living_with_parents == YesNo.NO:
                fill.update({name: changes.get(name) for name in ADDRESS_FIELDS})
        if fill:
            updated = updated.model_copy(update=fill)

        updated = self.derive_dependent(updated)
        self._profile.dependents[index] = updated
        self._touch("composition")
        return updated

    def _mirror_children(self) -> bool:
        """Re-copy the head address into children living with parents."""
        head = self._profile.household
        changed = False
        for i, dep in enumerate(self._profile.dependents):
            if isinstance(dep, Child) and dep.lives_with_parents:
                mirrored = self.derive_dependent(dep, head)
                if mirrored != dep:
                    self._profile.dependents[i] = mirrored
                    changed = True
        return changed

    # -------------------------
    # Sync / lifecycle
    # -------------------------

    def reconcile(self, remote: Optional[ResidentProfile]) -> List[str]:
        """
        Apply a freshly read remote profile: every section that is not dirty
        is replaced by the remote copy, dirty sections keep the local edits.

        Returns the sections that actually changed.
        """
        if remote is None:
            return []

        refreshed: List[str] = []
        local = self._profile

        if "household" not in self._dirty and remote.household != local.household:
            local.household = remote.household.model_copy(deep=True)
            refreshed.append("household")

        if "spouse" not in self._dirty and remote.spouse != local.spouse:
            local.spouse = remote.spouse.model_copy(deep=True) if remote.spouse is not None else None
            refreshed.append("spouse")

        if "composition" not in self._dirty and (
            remote.dependents != local.dependents
            or remote.children_count != local.children_count
            or remote.other_members_count != local.other_members_count
        ):
            local.dependents = [d.model_copy(deep=True) for d in remote.dependents]
            local.children_count = remote.children_count
            local.other_members_count = remote.other_members_count
            refreshed.append("composition")

        if "census" not in self._dirty and remote.census != local.census:
            local.census = remote.census.model_copy(deep=True)
            refreshed.append("census")

        if not local.household.is_married and local.spouse is not None:
            local.spouse = None
            if "spouse" not in refreshed:
                refreshed.append("spouse")

        if "household" in refreshed and "composition" in self._dirty:
            self._mirror_children()

        if refreshed:
            self.version += 1
            logger.debug("reconciled sections %s (dirty: %s)", refreshed, self.dirty_sections)
        return refreshed

    def mark_saved(self, *sections: str) -> None:
        if not sections:
            self._dirty.clear()
            return
        self._dirty.difference_update(sections)

    def reset(self, *, dirty: bool = False) -> None:
        """
        Back to an empty profile. dirty=True keeps every section marked dirty so
        a poll cannot pull the previous remote profile back in before the next save.
        """
        self._profile = self.empty_profile()
        self._dirty = set(SECTIONS) if dirty else set()
        self.version += 1

    def check_invariants(self) -> None:
        """Raise InconsistentStateError when the aggregate breaks an invariant."""
        profile = self._profile
        if profile.household.is_married != (profile.spouse is not None):
            raise InconsistentStateError(
                f"spouse {'missing' if profile.spouse is None else 'present'} "
                f"with civil status {profile.household.civil_status}"
            )

        check_composition_counts(profile)

        now = self._clock()
        for index, dep in enumerate(profile.dependents):
            if dep.dob is None:
                continue
            expected = compute_age(dep.dob, now).text or None
            if dep.age != expected:
                raise InconsistentStateError(f"dependent {index} age {dep.age!r} is stale (expected {expected!r})")
