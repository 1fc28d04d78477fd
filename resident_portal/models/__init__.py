# resident_portal/models/__init__.py
# Central import surface for the SQLModel tables and the profile domain models.
# Keeping the table imports here ensures init_db() sees all models and creates tables.

from .resident import Resident
from .profile_status import ProfileStatus, ResidentProfileStatus, ReviewDecision
from .address_area import AddressArea, AreaLevel

# Wizard / validation domain (pydantic, not tables)
from .profile import (
    CensusAnswers,
    Child,
    CivilStatus,
    Dependent,
    EmploymentType,
    Gender,
    HouseholdComposition,
    OtherMember,
    Person,
    ResidentProfile,
    YesNo,
)

__all__ = [
    "Resident",
    "ProfileStatus",
    "ResidentProfileStatus",
    "ReviewDecision",
    "AddressArea",
    "AreaLevel",
    "CensusAnswers",
    "Child",
    "CivilStatus",
    "Dependent",
    "EmploymentType",
    "Gender",
    "HouseholdComposition",
    "OtherMember",
    "Person",
    "ResidentProfile",
    "YesNo",
]
