from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from ..config import settings
from ..models.profile_status import ProfileStatus, ResidentProfileStatus
from ..models.resident import Resident


@dataclass(frozen=True)
class StatusCounts:
    """
    Admin home counters.

    - total_residents: every stored profile, submitted or not
    - by_status: one entry per ProfileStatus (zero when none)
    """
    total_residents: int
    by_status: Dict[ProfileStatus, int]

    def to_dict(self) -> Dict[str, object]:
        return {
            "total_residents": self.total_residents,
            "by_status": {status.label: count for status, count in self.by_status.items()},
        }


@dataclass(frozen=True)
class ZonePopulation:
    zone: int
    households: int
    population: int


def status_counts(session: Session) -> StatusCounts:
    total = session.exec(select(func.count()).select_from(Resident)).one()

    rows = session.exec(
        select(ResidentProfileStatus.status, func.count()).group_by(ResidentProfileStatus.status)
    ).all()
    counted = {ProfileStatus(int(status)): int(n or 0) for status, n in rows}

    return StatusCounts(
        total_residents=int(total or 0),
        by_status={status: counted.get(status, 0) for status in ProfileStatus},
    )


def household_size(resident: Resident) -> int:
    """Head + spouse (when recorded) + every dependent slot."""
    return 1 + (1 if resident.spouse else 0) + len(resident.household_composition or [])


def _zone_of(household: dict, barangay: str, zone_count: int) -> Optional[int]:
    if str(household.get("barangay") or "") != barangay:
        return None
    try:
        zone = int(str(household.get("zone") or "").strip())
    except ValueError:
        return None
    return zone if 1 <= zone <= zone_count else None


def zone_population(
    session: Session,
    *,
    barangay: Optional[str] = None,
    zone_count: Optional[int] = None,
) -> List[ZonePopulation]:
    """
    Approved population per zone of the zoned barangay.

    Every zone 1..zone_count is listed, empty zones with zeros.
    """
    barangay = barangay or settings.zoned_barangay
    zone_count = settings.zone_count if zone_count is None else zone_count

    stmt = (
        select(Resident)
        .join(ResidentProfileStatus, ResidentProfileStatus.resident_id == Resident.id)
        .where(ResidentProfileStatus.status == int(ProfileStatus.APPROVED))
    )

    households = {z: 0 for z in range(1, zone_count + 1)}
    population = {z: 0 for z in range(1, zone_count + 1)}
    for resident in session.exec(stmt).all():
        zone = _zone_of(resident.household or {}, barangay, zone_count)
        if zone is None:
            continue
        households[zone] += 1
        population[zone] += household_size(resident)

    return [
        ZonePopulation(zone=z, households=households[z], population=population[z])
        for z in range(1, zone_count + 1)
    ]
