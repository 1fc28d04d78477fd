from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .. import database
from ..database import session_scope
from ..errors import InconsistentStateError, PersistenceError
from ..models.profile import Person, ResidentProfile
from ..models.profile_status import ProfileStatus, ResidentProfileStatus
from ..models.resident import Resident, utcnow
from .status_engine import StatusDecision, apply_status_change

logger = logging.getLogger(__name__)

# document paths live in their own columns, not inside the JSON documents
_HEAD_DOCS = ("image_url", "valid_id_url", "zone_cert_url")


@dataclass(frozen=True)
class StatusRecord:
    status: ProfileStatus
    reason: Optional[str] = None
    updated_at: Optional[datetime] = None


class ProfileStore(Protocol):
    """Persistence seam of the intake workflow. Failures raise PersistenceError."""

    async def get_profile(self, resident_id: str) -> Optional[ResidentProfile]: ...

    async def upsert_profile(self, resident_id: str, profile: ResidentProfile) -> None: ...

    async def get_status(self, resident_id: str) -> Optional[ProfileStatus]: ...

    async def get_status_record(self, resident_id: str) -> Optional[StatusRecord]: ...

    async def upsert_status(self, resident_id: str, status: ProfileStatus, reason: Optional[str] = None) -> None: ...


# -------------------------
# Row <-> aggregate mapping
# -------------------------

def _person_document(person: Optional[Person]) -> Optional[Dict[str, Any]]:
    if person is None:
        return None
    doc = person.to_document()
    for name in _HEAD_DOCS:
        doc.pop(name, None)
    return doc


def profile_to_row(profile: ResidentProfile, row: Resident) -> Resident:
    row.household = _person_document(profile.household) or {}
    row.spouse = _person_document(profile.spouse)
    row.household_composition = [d.to_document() for d in profile.dependents]
    row.census = profile.census.to_document()
    row.children_count = profile.children_count
    row.number_of_household_members = profile.other_members_count

    head = profile.household
    row.image_url = head.image_url
    row.valid_id_url = head.valid_id_url
    row.zone_cert_url = head.zone_cert_url
    row.spouse_valid_id_url = profile.spouse.valid_id_url if profile.spouse is not None else None
    return row


def row_to_profile(row: Resident) -> ResidentProfile:
    household = dict(row.household or {})
    household.update({
        "image_url": row.image_url,
        "valid_id_url": row.valid_id_url,
        "zone_cert_url": row.zone_cert_url,
    })

    spouse = None
    if row.spouse is not None:
        spouse = dict(row.spouse)
        spouse["valid_id_url"] = row.spouse_valid_id_url

    return ResidentProfile.model_validate({
        "household": household,
        "spouse": spouse,
        "dependents": list(row.household_composition or []),
        "census": dict(row.census or {}),
        "children_count": row.children_count or 0,
        "other_members_count": row.number_of_household_members or 0,
    })


class SqlProfileStore:
    """
    ProfileStore over the residents / resident_profile_status tables.

    Sync SQLModel sessions run in a worker thread so the async callers never
    block the event loop. Upserts are keyed by residents.user_id (last write wins).
    """

    def __init__(self, engine: Optional[Engine] = None) -> None:
        self.engine = engine if engine is not None else database.engine

    # -------------------------
    # Sync bodies
    # -------------------------

    def _resident(self, session: Session, resident_id: str) -> Optional[Resident]:
        return session.exec(select(Resident).where(Resident.user_id == resident_id)).first()

    def _status_row(self, session: Session, resident_id: str) -> Optional[ResidentProfileStatus]:
        stmt = (
            select(ResidentProfileStatus)
            .join(Resident, Resident.id == ResidentProfileStatus.resident_id)
            .where(Resident.user_id == resident_id)
        )
        return session.exec(stmt).first()

    def _get_profile(self, resident_id: str) -> Optional[ResidentProfile]:
        with Session(self.engine) as session:
            row = self._resident(session, resident_id)
            return row_to_profile(row) if row is not None else None

    def _upsert_profile(self, resident_id: str, profile: ResidentProfile) -> None:
        with session_scope(self.engine) as session:
            row = self._resident(session, resident_id) or Resident(user_id=resident_id)
            profile_to_row(profile, row)
            row.updated_at = utcnow()
            session.add(row)

    def _get_status_record(self, resident_id: str) -> Optional[StatusRecord]:
        with Session(self.engine) as session:
            row = self._status_row(session, resident_id)
            if row is None:
                return None
            return StatusRecord(
                status=ProfileStatus(int(row.status)),
                reason=row.rejection_reason,
                updated_at=row.updated_at,
            )

    def _upsert_status(self, resident_id: str, status: ProfileStatus, reason: Optional[str]) -> None:
        with session_scope(self.engine) as session:
            resident = self._resident(session, resident_id)
            if resident is None:
                raise InconsistentStateError(f"no profile stored for resident {resident_id}")

            record = self._status_row(session, resident_id)
            if record is None:
                # new row: the edge starts from "no status"
                record = ResidentProfileStatus(resident_id=resident.id, status=None)

            decision = StatusDecision(should_change=True, new_status=status, reason=reason)
            if not apply_status_change(session, record, decision):
                raise InconsistentStateError(
                    f"status {status.label} is not reachable for resident {resident_id}"
                )

    # -------------------------
    # Async surface
    # -------------------------

    async def _call(self, operation: str, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as exc:
            logger.error("%s failed: %s", operation, exc)
            raise PersistenceError(operation, str(exc)) from exc

    async def get_profile(self, resident_id: str) -> Optional[ResidentProfile]:
        return await self._call("get_profile", self._get_profile, resident_id)

    async def upsert_profile(self, resident_id: str, profile: ResidentProfile) -> None:
        await self._call("upsert_profile", self._upsert_profile, resident_id, profile)

    async def get_status(self, resident_id: str) -> Optional[ProfileStatus]:
        record = await self.get_status_record(resident_id)
        return record.status if record is not None else None

    async def get_status_record(self, resident_id: str) -> Optional[StatusRecord]:
        return await self._call("get_status", self._get_status_record, resident_id)

    async def upsert_status(self, resident_id: str, status: ProfileStatus, reason: Optional[str] = None) -> None:
        await self._call("upsert_status", self._upsert_status, resident_id, ProfileStatus(status), reason)
