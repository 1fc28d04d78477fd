from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, ClassVar, Optional, Sequence, Union

from ..config import settings
from ..errors import InconsistentStateError, ProfileValidationError
from ..models.profile import (
    NO_ID,
    CensusAnswers,
    Child,
    EmploymentType,
    Gender,
    OtherMember,
    Person,
    ResidentProfile,
    YesNo,
)
from .age import is_valid_age_label

_ZIP_RE = re.compile(r"^\d{4}$")
_YEARS_RE = re.compile(r"^\d+$")


class EntityKind(str, Enum):
    HOUSEHOLD_HEAD = "household_head"
    SPOUSE = "spouse"
    CHILD = "child"
    OTHER_MEMBER = "other_member"
    CENSUS = "census"


# section names used by the store, the wizard and error payloads
SECTION_FOR_KIND = {
    EntityKind.HOUSEHOLD_HEAD: "household",
    EntityKind.SPOUSE: "spouse",
    EntityKind.CHILD: "composition",
    EntityKind.OTHER_MEMBER: "composition",
    EntityKind.CENSUS: "census",
}


# -------------------------
# Required-field sets (checked in this order, first miss wins)
# -------------------------

HEAD_REQUIRED = (
    "first_name",
    "last_name",
    "address",
    "region",
    "province",
    "city",
    "barangay",
    "zip_code",
    "dob",
    "age",
    "gender",
    "civil_status",
    "phone_number",
    "id_type",
    "id_no",
    "employment_type",
    "education",
    "pwd_status",
)

# the spouse form also asks for the middle name but not the zip code
SPOUSE_REQUIRED = HEAD_REQUIRED[:2] + ("middle_name",) + tuple(f for f in HEAD_REQUIRED[2:] if f != "zip_code")

OTHER_REQUIRED = (
    "first_name",
    "last_name",
    "relation",
    "gender",
    "age",
    "dob",
    "education",
    "pwd_status",
)

CHILD_REQUIRED = OTHER_REQUIRED + ("is_living_with_parents",)

CHILD_OWN_ADDRESS = ("address", "region", "province", "city", "barangay", "zip_code")

EMPLOYED_REQUIRED = ("occupation", "skills", "employer_address")

CENSUS_REQUIRED = (
    "owns_house",
    "is_renting",
    "years_in_locality",
    "is_registered_voter",
    "has_own_comfort_room",
    "has_own_water_supply",
    "has_own_electricity",
)

_FIELD_LABELS = {
    "dob": "birth date",
    "id_no": "ID number",
    "id_type": "ID type",
    "zip_code": "zip code",
    "pwd_status": "PWD status",
    "is_living_with_parents": "living with parents",
    "years_in_locality": "years in barangay",
    "voter_precinct_no": "voter's precinct number",
    "image_url": "photo",
    "valid_id_url": "valid ID",
    "zone_cert_url": "zone certificate",
}


def field_label(field: str) -> str:
    return _FIELD_LABELS.get(field, field.replace("_", " "))


# -------------------------
# Context / result
# -------------------------

@dataclass(frozen=True)
class ValidationContext:
    """
    final: holistic re-validation before submission (adds document checks)
    index: dependent position, used in messages and error payloads
    """

    final: bool = False
    index: Optional[int] = None
    require_documents: bool = True
    zoned_barangay: Optional[str] = None
    zone_count: int = 9

    @classmethod
    def from_settings(cls, *, final: bool = False, index: Optional[int] = None) -> "ValidationContext":
        return cls(
            final=final,
            index=index,
            require_documents=settings.require_documents,
            zoned_barangay=settings.zoned_barangay or None,
            zone_count=settings.zone_count,
        )

    def at(self, index: Optional[int]) -> "ValidationContext":
        return replace(self, index=index)


@dataclass(frozen=True)
class ValidationResult:
    """
    Valid (field is None) or Invalid(field, reason).

    section/index are filled in by the holistic profile check so callers can
    route the user back to the right step and slot.
    """

    field: Optional[str] = None
    reason: Optional[str] = None
    section: Optional[str] = None
    index: Optional[int] = None

    VALID: ClassVar["ValidationResult"]

    @property
    def ok(self) -> bool:
        return self.field is None

    @classmethod
    def invalid(cls, field: str, reason: str) -> "ValidationResult":
        return cls(field=field, reason=reason)

    def located(self, section: str, index: Optional[int] = None) -> "ValidationResult":
        if self.ok:
            return self
        return replace(self, section=section, index=index)

    def to_error(self) -> ProfileValidationError:
        if self.ok:
            raise ValueError("a valid result has no error")
        return ProfileValidationError(
            self.field or "",
            self.reason or "",
            section=self.section,
            index=self.index,
        )


ValidationResult.VALID = ValidationResult()

Entity = Union[Person, Child, OtherMember, CensusAnswers]


# -------------------------
# Primitive checks
# -------------------------

def _is_blank(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, str):
        return not v.strip()
    return False


def _suffix(ctx: ValidationContext) -> str:
    return f" for member {ctx.index + 1}" if ctx.index is not None else ""


def _first_missing(entity: Any, fields: Sequence[str], ctx: ValidationContext) -> Optional[ValidationResult]:
    for name in fields:
        if _is_blank(getattr(entity, name, None)):
            return ValidationResult.invalid(name, f"{field_label(name)} is required{_suffix(ctx)}")
    return None


def _check_custom_gender(entity: Any, ctx: ValidationContext) -> Optional[ValidationResult]:
    if entity.gender == Gender.OTHER and _is_blank(entity.custom_gender):
        return ValidationResult.invalid("custom_gender", f"gender identity is required when gender is Other{_suffix(ctx)}")
    return None


def _check_disability(entity: Any, ctx: ValidationContext) -> Optional[ValidationResult]:
    if entity.pwd_status == YesNo.YES and _is_blank(entity.disability_type):
        return ValidationResult.invalid("disability_type", f"type of disability is required{_suffix(ctx)}")
    return None


def _check_zip(entity: Any, ctx: ValidationContext) -> Optional[ValidationResult]:
    if not _is_blank(entity.zip_code) and not _ZIP_RE.match(entity.zip_code.strip()):
        return ValidationResult.invalid("zip_code", f"zip code must be 4 digits{_suffix(ctx)}")
    return None


def _check_age_format(entity: Any, ctx: ValidationContext) -> Optional[ValidationResult]:
    if not is_valid_age_label(entity.age):
        return ValidationResult.invalid(
            "age",
            f'age must look like "5 days old" (hours, days, months or years){_suffix(ctx)}',
        )
    return None


def _check_zone(person: Person, ctx: ValidationContext) -> Optional[ValidationResult]:
    if not ctx.zoned_barangay or person.barangay != ctx.zoned_barangay:
        return None
    if _is_blank(person.zone):
        return ValidationResult.invalid("zone", "zone is required for this barangay")
    try:
        zone = int(str(person.zone).strip())
    except ValueError:
        zone = 0
    if not 1 <= zone <= ctx.zone_count:
        return ValidationResult.invalid("zone", f"zone must be between 1 and {ctx.zone_count}")
    return None


def _check_employment(person: Person, ctx: ValidationContext) -> Optional[ValidationResult]:
    if person.employment_type != EmploymentType.EMPLOYED:
        return None
    return _first_missing(person, EMPLOYED_REQUIRED, ctx)


def _run(*checks: Optional[ValidationResult]) -> ValidationResult:
    # checks are evaluated eagerly but reported in order
    for result in checks:
        if result is not None:
            return result
    return ValidationResult.VALID


# -------------------------
# Per-kind rule sets
# -------------------------

def _check_documents(person: Person, kind: EntityKind, ctx: ValidationContext) -> Optional[ValidationResult]:
    if not (ctx.final and ctx.require_documents):
        return None
    if kind == EntityKind.SPOUSE:
        return _first_missing(person, ("valid_id_url",), ctx)
    docs = ("image_url", "valid_id_url")
    if person.has_zone_certificate:
        docs += ("zone_cert_url",)
    return _first_missing(person, docs, ctx)


def _validate_person(person: Person, kind: EntityKind, ctx: ValidationContext) -> ValidationResult:
    required = HEAD_REQUIRED if kind == EntityKind.HOUSEHOLD_HEAD else SPOUSE_REQUIRED
    if person.id_type == NO_ID:
        required = tuple(f for f in required if f != "id_no")

    missing = _first_missing(person, required, ctx)
    if missing:
        return missing

    return _run(
        _check_custom_gender(person, ctx),
        _check_zip(person, ctx),
        _check_zone(person, ctx) if kind == EntityKind.HOUSEHOLD_HEAD else None,
        _check_employment(person, ctx),
        _check_disability(person, ctx),
        _check_documents(person, kind, ctx),
    )


def _validate_child(child: Child, ctx: ValidationContext) -> ValidationResult:
    required = CHILD_REQUIRED
    living_apart = child.is_living_with_parents == YesNo.NO
    if living_apart:
        required = required + CHILD_OWN_ADDRESS

    missing = _first_missing(child, required, ctx)
    if missing:
        return missing

    return _run(
        _check_custom_gender(child, ctx),
        _check_disability(child, ctx),
        _check_age_format(child, ctx),
        _check_zip(child, ctx) if living_apart else None,
    )


def _validate_other(member: OtherMember, ctx: ValidationContext) -> ValidationResult:
    missing = _first_missing(member, OTHER_REQUIRED, ctx)
    if missing:
        return missing
    return _run(
        _check_custom_gender(member, ctx),
        _check_disability(member, ctx),
        _check_age_format(member, ctx),
    )


def _validate_census(census: CensusAnswers, ctx: ValidationContext) -> ValidationResult:
    missing = _first_missing(census, CENSUS_REQUIRED, ctx)
    if missing:
        return missing

    if census.is_registered_voter == YesNo.YES and _is_blank(census.voter_precinct_no):
        return ValidationResult.invalid("voter_precinct_no", "voter's precinct number is required for registered voters")

    if not _YEARS_RE.match(str(census.years_in_locality).strip()):
        return ValidationResult.invalid("years_in_locality", "years in barangay must be a whole number")

    return ValidationResult.VALID


_EXPECTED_TYPE = {
    EntityKind.HOUSEHOLD_HEAD: Person,
    EntityKind.SPOUSE: Person,
    EntityKind.CHILD: Child,
    EntityKind.OTHER_MEMBER: OtherMember,
    EntityKind.CENSUS: CensusAnswers,
}


def kind_of(dependent: Union[Child, OtherMember]) -> EntityKind:
    return EntityKind.CHILD if isinstance(dependent, Child) else EntityKind.OTHER_MEMBER


def validate(entity: Entity, kind: EntityKind, context: Optional[ValidationContext] = None) -> ValidationResult:
    """
    Check one entity against the rule set of its kind.

    Fail-fast: returns the first violation (field + human-readable reason),
    or ValidationResult.VALID. Pure: nothing is mutated or persisted.

    An entity of the wrong shape for `kind` is a programming error and
    raises InconsistentStateError.
    """
    ctx = context or ValidationContext.from_settings()

    expected = _EXPECTED_TYPE[kind]
    if not isinstance(entity, expected):
        raise InconsistentStateError(f"{kind.value} rules applied to {type(entity).__name__}")

    if kind in (EntityKind.HOUSEHOLD_HEAD, EntityKind.SPOUSE):
        return _validate_person(entity, kind, ctx)
    if kind == EntityKind.CHILD:
        return _validate_child(entity, ctx)
    if kind == EntityKind.OTHER_MEMBER:
        return _validate_other(entity, ctx)
    return _validate_census(entity, ctx)


def check_composition_counts(profile: ResidentProfile) -> None:
    """Dependent slots must match the declared counts."""
    children, others = len(profile.children), len(profile.other_members)
    if children != profile.children_count or others != profile.other_members_count:
        raise InconsistentStateError(
            f"dependents ({children} children, {others} others) do not match declared counts "
            f"({profile.children_count} children, {profile.other_members_count} others)"
        )


def validate_profile(profile: ResidentProfile, context: Optional[ValidationContext] = None) -> ValidationResult:
    """
    Holistic re-validation of the whole aggregate, in submission order:
    household head, spouse (when Married), every dependent by kind, census.

    Raises InconsistentStateError for invariant breaks (spouse without a
    Married head, dependents diverging from the declared counts).
    """
    ctx = context or ValidationContext.from_settings(final=True)

    result = validate(profile.household, EntityKind.HOUSEHOLD_HEAD, ctx.at(None))
    if not result.ok:
        return result.located("household")

    if profile.household.is_married:
        if profile.spouse is None:
            return ValidationResult.invalid(
                "spouse", "spouse information is required for married status"
            ).located("spouse")
        result = validate(profile.spouse, EntityKind.SPOUSE, ctx.at(None))
        if not result.ok:
            return result.located("spouse")
    elif profile.spouse is not None:
        raise InconsistentStateError("spouse present while household head is not Married")

    check_composition_counts(profile)

    for index, dependent in enumerate(profile.dependents):
        result = validate(dependent, kind_of(dependent), ctx.at(index))
        if not result.ok:
            return result.located("composition", index)

    result = validate(profile.census, EntityKind.CENSUS, ctx.at(None))
    if not result.ok:
        return result.located("census")

    return ValidationResult.VALID
