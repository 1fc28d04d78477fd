from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Optional

from sqlalchemy import Column, Integer
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProfileStatus(IntEnum):
    """
    Review lifecycle of a resident profile.

    Values are the integers stored in resident_profile_status.status and are
    API-stable:
    - APPROVED (1): profile accepted; wizard is read-only
    - REJECTED (2): profile refused; resident restarts from an empty profile
    - PENDING_INITIAL_REVIEW (3): submitted, waiting for an administrator
    - PENDING_UPDATE_REQUEST (4): resident asked to change an approved profile
    - UPDATE_SUBMITTED_PENDING_REVIEW (5): update allowed/resubmitted, waiting for review
    - REQUIRED_TO_UPDATE (6): administrator asked the resident to update
    """

    APPROVED = 1
    REJECTED = 2
    PENDING_INITIAL_REVIEW = 3
    PENDING_UPDATE_REQUEST = 4
    UPDATE_SUBMITTED_PENDING_REVIEW = 5
    REQUIRED_TO_UPDATE = 6

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    ProfileStatus.APPROVED: "Approved",
    ProfileStatus.REJECTED: "Rejected",
    ProfileStatus.PENDING_INITIAL_REVIEW: "Pending",
    ProfileStatus.PENDING_UPDATE_REQUEST: "Update Requested",
    ProfileStatus.UPDATE_SUBMITTED_PENDING_REVIEW: "Update Approved",
    ProfileStatus.REQUIRED_TO_UPDATE: "Update Profiling",
}


class ReviewDecision(str, Enum):
    """
    Decisions that move a status outside of a resident submission.
    Values are API-stable strings.
    """

    # administrator
    APPROVE = "approve"
    REJECT = "reject"
    REQUIRE_UPDATE = "require_update"
    ACCEPT_UPDATE_REQUEST = "accept_update_request"
    DECLINE_UPDATE_REQUEST = "decline_update_request"

    # resident
    REQUEST_UPDATE = "request_update"


class ResidentProfileStatus(SQLModel, table=True):
    """
    The single active review status of one resident profile.

    Notes:
    - resident_id references residents.id and is unique: one active status per resident
    - rejection_reason carries the latest reviewer/resident reason
      (rejection, required update, update request, declined request)
    - rows are transitioned, never deleted by the intake workflow
    """

    __tablename__ = "resident_profile_status"

    id: Optional[int] = Field(default=None, primary_key=True)

    resident_id: int = Field(foreign_key="residents.id", index=True, unique=True)
    # stored as the plain integer code
    status: ProfileStatus = Field(sa_column=Column(Integer, nullable=False, index=True))
    rejection_reason: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow, index=True)
