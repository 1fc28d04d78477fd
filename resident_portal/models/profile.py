from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Annotated, Any, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field as PydField,
    Tag,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


# ======================================================
# Controlled sets
# ======================================================

class _Choice(str, Enum):
    """
    Dropdown values. Lookup is case-insensitive so documents that went
    through the submit-time upper-casing still parse.
    """

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            wanted = value.strip().lower()
            for member in cls:
                if member.value.lower() == wanted:
                    return member
        return None


class YesNo(_Choice):
    YES = "Yes"
    NO = "No"


class Gender(_Choice):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class CivilStatus(_Choice):
    SINGLE = "Single"
    MARRIED = "Married"
    DIVORCED = "Divorced"
    WIDOWED = "Widowed"
    SEPARATED = "Separated"
    COMMON_LAW = "Common-Law"
    ANNULLED = "Annulled"


class EmploymentType(_Choice):
    EMPLOYED = "employed"
    SELF_EMPLOYED = "self-employed"
    STUDENT = "student"
    RETIRED = "retired"
    UNEMPLOYED = "unemployed"


NO_ID = "No ID"

ID_TYPES = (
    "Barangay ID",
    "Driver’s License",
    "Passport",
    "PhilHealth",
    "Postal ID",
    "PRC ID",
    "SSS",
    "Student ID",
    "TIN",
    "UMID",
    "Voter's ID",
    NO_ID,
)

NAME_EXTENSIONS = ("Jr.", "Sr.", "I", "II", "III", "IV")

CHILD_RELATIONS = ("Son", "Daughter")


def is_child_relation(relation: Any) -> bool:
    return isinstance(relation, str) and relation.strip().title() in CHILD_RELATIONS


# ======================================================
# Base form model
# ======================================================

class FormModel(BaseModel):
    """
    Step payloads arrive half-filled: every field is optional and blank
    strings are treated as "not answered". What is required is decided by
    the validation engine, not here.

    Wire / stored JSON uses camelCase keys (firstName, dob, idNo, ...).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
        extra="ignore",
    )

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AddressFields(FormModel):
    """Free-text address line plus the PSGC hierarchy (opaque codes)."""

    address: Optional[str] = None
    region: Optional[str] = None
    province: Optional[str] = None
    city: Optional[str] = None
    barangay: Optional[str] = None
    zip_code: Optional[str] = None
    zone: Optional[str] = None

    @field_validator("region", "province", "city", "barangay", "zip_code", "zone", mode="before")
    @classmethod
    def _codes_as_text(cls, v: Any) -> Any:
        # codes sometimes come back from JSON as numbers
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


ADDRESS_FIELDS = ("address", "region", "province", "city", "barangay", "zip_code", "zone")


class IdentityFields(FormModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    middle_name: Optional[str] = None
    middle_initial: Optional[str] = None
    extension: Optional[str] = None

    dob: Optional[date] = None
    age: Optional[str] = None

    gender: Optional[Gender] = None
    custom_gender: Optional[str] = None

    education: Optional[str] = None
    occupation: Optional[str] = None

    pwd_status: Optional[YesNo] = None
    disability_type: Optional[str] = None

    @field_validator("age", mode="before")
    @classmethod
    def _age_as_text(cls, v: Any) -> Any:
        # older household documents stored the head's age as a bare integer
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @property
    def display_name(self) -> str:
        parts = [self.first_name, self.last_name]
        return " ".join(p for p in parts if p) or "unnamed"


# ======================================================
# Household head / spouse
# ======================================================

class Person(IdentityFields, AddressFields):
    """Household head or spouse."""

    civil_status: Optional[CivilStatus] = None
    religion: Optional[str] = None

    id_type: Optional[str] = None
    id_no: Optional[str] = None

    phone_number: Optional[str] = None

    employment_type: Optional[EmploymentType] = None
    skills: Optional[str] = None
    employer_address: Optional[str] = None

    # storage paths (uploads handled by the storage collaborator)
    image_url: Optional[str] = PydField(default=None, alias="image_url")
    valid_id_url: Optional[str] = PydField(default=None, alias="valid_id_url")
    zone_cert_url: Optional[str] = PydField(default=None, alias="zone_cert_url")
    has_zone_certificate: Optional[bool] = None

    @property
    def is_married(self) -> bool:
        return self.civil_status == CivilStatus.MARRIED


# ======================================================
# Dependents: Child | OtherMember
# ======================================================

class Child(IdentityFields, AddressFields):
    """
    Son or daughter. When living with parents the address mirrors the
    household head and is not validated on its own.
    """

    relation: str = "Son"
    is_living_with_parents: Optional[YesNo] = None

    @field_validator("relation", mode="before")
    @classmethod
    def _child_relation(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return "Son"
        if not is_child_relation(v):
            raise ValueError(f"relation must be one of {CHILD_RELATIONS}, got {v!r}")
        return str(v).strip().title()

    @property
    def lives_with_parents(self) -> bool:
        return self.is_living_with_parents == YesNo.YES


class OtherMember(IdentityFields):
    """Any other household member (parent, sibling, grandchild, guardian, ...)."""

    relation: Optional[str] = None

    @field_validator("relation", mode="after")
    @classmethod
    def _not_a_child(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and is_child_relation(v):
            raise ValueError("Son/Daughter entries are children, not other members")
        return v


def _dependent_kind(v: Any) -> str:
    relation = v.get("relation") if isinstance(v, dict) else getattr(v, "relation", None)
    return "child" if is_child_relation(relation) else "other"


Dependent = Annotated[
    Union[
        Annotated[Child, Tag("child")],
        Annotated[OtherMember, Tag("other")],
    ],
    Discriminator(_dependent_kind),
]


# ======================================================
# Census
# ======================================================

class CensusAnswers(FormModel):
    owns_house: Optional[YesNo] = None
    is_renting: Optional[YesNo] = None
    years_in_locality: Optional[str] = PydField(default=None, alias="yearsInBarangay")
    is_registered_voter: Optional[YesNo] = None
    voter_precinct_no: Optional[str] = None
    has_own_comfort_room: Optional[YesNo] = None
    has_own_water_supply: Optional[YesNo] = None
    has_own_electricity: Optional[YesNo] = None

    @field_validator("years_in_locality", "voter_precinct_no", mode="before")
    @classmethod
    def _numbers_as_text(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


# ======================================================
# Aggregate root
# ======================================================

class ResidentProfile(FormModel):
    """
    The whole in-progress submission.

    dependents keeps children first, then other members; the two counts are
    the declared slot counts and always match the list once the step data
    store has normalized it.
    """

    household: Person = PydField(default_factory=Person)
    spouse: Optional[Person] = None
    dependents: List[Dependent] = PydField(default_factory=list)
    census: CensusAnswers = PydField(default_factory=CensusAnswers)

    children_count: int = 0
    other_members_count: int = 0

    @property
    def children(self) -> List[Child]:
        return [d for d in self.dependents if isinstance(d, Child)]

    @property
    def other_members(self) -> List[OtherMember]:
        return [d for d in self.dependents if isinstance(d, OtherMember)]

    @model_validator(mode="after")
    def _children_first(self) -> "ResidentProfile":
        ordered = self.children + self.other_members
        if ordered != self.dependents:
            self.dependents = ordered
        return self


class HouseholdComposition(FormModel):
    """Output of the composition step: declared counts plus the filled slots."""

    children_count: int = 0
    other_members_count: int = PydField(default=0, alias="numberOfhouseholdMembers")
    members: List[Dependent] = PydField(default_factory=list)

    @field_validator("children_count", "other_members_count", mode="before")
    @classmethod
    def _count(cls, v: Any) -> Any:
        if v is None:
            return 0
        try:
            return int(v)
        except (TypeError, ValueError):
            return 0
