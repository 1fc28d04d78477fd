"""
Shared fixtures for the intake workflow tests.

Provides:
- an in-memory SQLite engine (StaticPool, tables created per test)
- the SQL profile store and a recording notifier
- builders for valid household heads, spouses, dependents and census answers
- store doubles that fail on write
"""

import os

# must be set before resident_portal.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("NOTIFY_BASE_URL", "")

from datetime import date, datetime
from typing import Any, Callable, Optional

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from resident_portal.database import register_models
from resident_portal.errors import PersistenceError
from resident_portal.models.profile import (
    CensusAnswers,
    Child,
    CivilStatus,
    EmploymentType,
    Gender,
    OtherMember,
    Person,
    ResidentProfile,
    YesNo,
)
from resident_portal.models.profile_status import ProfileStatus, ResidentProfileStatus
from resident_portal.models.resident import Resident
from resident_portal.services.age import compute_age
from resident_portal.services.notifications import RecordingNotifier
from resident_portal.services.profile_store import SqlProfileStore, profile_to_row

FIXED_NOW = datetime(2024, 6, 15, 12, 0, 0)

HOME_ADDRESS = {
    "address": "123 Rizal St",
    "region": "100000000",
    "province": "104300000",
    "city": "104305000",
    "barangay": "104305040",
    "zip_code": "9000",
    "zone": "3",
}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    register_models()
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def store(engine):
    return SqlProfileStore(engine)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


# -------------------------
# Builders
# -------------------------

@pytest.fixture
def make_head() -> Callable[..., Person]:
    def _make(**overrides: Any) -> Person:
        data = dict(
            first_name="Juan",
            last_name="Dela Cruz",
            middle_name="Santos",
            **HOME_ADDRESS,
            dob=date(1985, 6, 1),
            age="39 years old",
            gender=Gender.MALE,
            civil_status=CivilStatus.SINGLE,
            religion="Catholic",
            phone_number="09171234567",
            id_type="Passport",
            id_no="P1234567",
            employment_type=EmploymentType.SELF_EMPLOYED,
            education="College Graduate",
            pwd_status=YesNo.NO,
            image_url="residents/u1/photo.jpg",
            valid_id_url="residents/u1/valid-id.jpg",
        )
        data.update(overrides)
        return Person(**data)

    return _make


@pytest.fixture
def make_spouse() -> Callable[..., Person]:
    def _make(**overrides: Any) -> Person:
        data = dict(
            first_name="Maria",
            last_name="Dela Cruz",
            middle_name="Reyes",
            address=HOME_ADDRESS["address"],
            region=HOME_ADDRESS["region"],
            province=HOME_ADDRESS["province"],
            city=HOME_ADDRESS["city"],
            barangay=HOME_ADDRESS["barangay"],
            dob=date(1987, 2, 14),
            age="37 years old",
            gender=Gender.FEMALE,
            civil_status=CivilStatus.MARRIED,
            phone_number="09181234567",
            id_type="UMID",
            id_no="0111-2222333-4",
            employment_type=EmploymentType.UNEMPLOYED,
            education="High School Graduate",
            pwd_status=YesNo.NO,
            valid_id_url="residents/u1/spouse-id.jpg",
        )
        data.update(overrides)
        return Person(**data)

    return _make


@pytest.fixture
def make_child() -> Callable[..., Child]:
    def _make(**overrides: Any) -> Child:
        dob = overrides.pop("dob", date(2015, 3, 1))
        data = dict(
            first_name="Ana",
            last_name="Dela Cruz",
            relation="Daughter",
            gender=Gender.FEMALE,
            dob=dob,
            age=compute_age(dob).text,
            education="Elementary",
            pwd_status=YesNo.NO,
            is_living_with_parents=YesNo.YES,
            **HOME_ADDRESS,
        )
        data.update(overrides)
        return Child(**data)

    return _make


@pytest.fixture
def make_other() -> Callable[..., OtherMember]:
    def _make(**overrides: Any) -> OtherMember:
        dob = overrides.pop("dob", date(1950, 1, 20))
        data = dict(
            first_name="Pedro",
            last_name="Dela Cruz",
            relation="Father",
            gender=Gender.MALE,
            dob=dob,
            age=compute_age(dob).text,
            education="High School Graduate",
            pwd_status=YesNo.NO,
        )
        data.update(overrides)
        return OtherMember(**data)

    return _make


@pytest.fixture
def make_census() -> Callable[..., CensusAnswers]:
    def _make(**overrides: Any) -> CensusAnswers:
        data = dict(
            owns_house=YesNo.YES,
            is_renting=YesNo.NO,
            years_in_locality="10",
            is_registered_voter=YesNo.YES,
            voter_precinct_no="0123A",
            has_own_comfort_room=YesNo.YES,
            has_own_water_supply=YesNo.YES,
            has_own_electricity=YesNo.YES,
        )
        data.update(overrides)
        return CensusAnswers(**data)

    return _make


@pytest.fixture
def make_profile(make_head, make_spouse, make_child, make_other, make_census) -> Callable[..., ResidentProfile]:
    def _make(*, married: bool = False, children: int = 1, others: int = 1, **overrides: Any) -> ResidentProfile:
        head = make_head(civil_status=CivilStatus.MARRIED if married else CivilStatus.SINGLE)
        dependents = [make_child() for _ in range(children)] + [make_other() for _ in range(others)]
        data = dict(
            household=head,
            spouse=make_spouse() if married else None,
            dependents=dependents,
            census=make_census(),
            children_count=children,
            other_members_count=others,
        )
        data.update(overrides)
        return ResidentProfile(**data)

    return _make


@pytest.fixture
def seed_resident(engine) -> Callable[..., int]:
    """Insert a residents row (and optionally its status row) directly."""

    def _seed(
        user_id: str,
        *,
        profile: Optional[ResidentProfile] = None,
        status: Optional[ProfileStatus] = None,
        reason: Optional[str] = None,
    ) -> int:
        with Session(engine) as session:
            row = Resident(user_id=user_id)
            if profile is not None:
                profile_to_row(profile, row)
            session.add(row)
            session.commit()
            session.refresh(row)
            if status is not None:
                session.add(ResidentProfileStatus(resident_id=row.id, status=int(status), rejection_reason=reason))
                session.commit()
            return row.id

    return _seed


# -------------------------
# Store doubles
# -------------------------

class FailingStore(SqlProfileStore):
    """SQL store whose status read and writes can be switched off per operation."""

    def __init__(
        self, engine, *, fail_profile: bool = False, fail_status: bool = False, fail_status_read: bool = False
    ) -> None:
        super().__init__(engine)
        self.fail_profile = fail_profile
        self.fail_status = fail_status
        self.fail_status_read = fail_status_read
        self.profile_writes = 0

    async def get_status_record(self, resident_id):
        if self.fail_status_read:
            raise PersistenceError("get_status", "database is locked")
        return await super().get_status_record(resident_id)

    async def upsert_profile(self, resident_id, profile):
        if self.fail_profile:
            raise PersistenceError("upsert_profile", "database is locked")
        self.profile_writes += 1
        await super().upsert_profile(resident_id, profile)

    async def upsert_status(self, resident_id, status, reason=None):
        if self.fail_status:
            raise PersistenceError("upsert_status", "database is locked")
        await super().upsert_status(resident_id, status, reason)


@pytest.fixture
def failing_store_factory(engine) -> Callable[..., FailingStore]:
    def _make(**kwargs: Any) -> FailingStore:
        return FailingStore(engine, **kwargs)

    return _make
