from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    # timezone-aware UTC for future-proofing
    return datetime.now(timezone.utc)


class Resident(SQLModel, table=True):
    """
    One household profile, keyed by the resident's account identity.

    Notes:
    - user_id is the auth-provider identity and the upsert key (last write wins).
    - household / spouse / household_composition / census are stored as JSON
      documents with camelCase keys, the same shape the wizard submits.
    - children_count / number_of_household_members are the declared slot counts.
    - document columns hold storage paths only; signing URLs is a storage concern.
    """

    __tablename__ = "residents"

    id: Optional[int] = Field(default=None, primary_key=True)

    user_id: str = Field(index=True, unique=True)

    household: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    spouse: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    household_composition: List[Dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    census: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    children_count: int = Field(default=0)
    number_of_household_members: int = Field(default=0)

    # Storage paths (photo, valid IDs, zone certificate)
    image_url: Optional[str] = Field(default=None)
    valid_id_url: Optional[str] = Field(default=None)
    zone_cert_url: Optional[str] = Field(default=None)
    spouse_valid_id_url: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow, index=True)
