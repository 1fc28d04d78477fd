from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

from sqlmodel import Session

from ..models.profile_status import ProfileStatus, ResidentProfileStatus, ReviewDecision, utcnow
from .notifications import NotifyEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusDecision:
    """
    Result of evaluating a potential status change.

    reason: the text stored with the new status (rejection / update reason),
    or why nothing changes when should_change is False.
    """
    should_change: bool
    new_status: Optional[ProfileStatus] = None
    reason: Optional[str] = None
    notify_event: Optional[NotifyEvent] = None


# -------------------------
# Gating policy
# -------------------------

# Wizard tabs are non-interactive in these states.
READ_ONLY_STATUSES = frozenset({
    ProfileStatus.APPROVED,
    ProfileStatus.PENDING_UPDATE_REQUEST,
})

# Waiting on an administrator.
PENDING_STATUSES = frozenset({
    ProfileStatus.PENDING_INITIAL_REVIEW,
    ProfileStatus.PENDING_UPDATE_REQUEST,
    ProfileStatus.UPDATE_SUBMITTED_PENDING_REVIEW,
})

# The resident sees the stored reason and must choose to edit.
ACKNOWLEDGE_STATUSES = frozenset({
    ProfileStatus.REJECTED,
    ProfileStatus.REQUIRED_TO_UPDATE,
})


def _coerce(status) -> Optional[ProfileStatus]:
    # rows loaded from the database carry the plain integer
    if status is None:
        return None
    return ProfileStatus(int(status))


def next_status_on_submit(current: Optional[ProfileStatus]) -> ProfileStatus:
    """
    - no status yet            -> PENDING_INITIAL_REVIEW
    - PENDING_UPDATE_REQUEST   -> UPDATE_SUBMITTED_PENDING_REVIEW
    - anything else            -> PENDING_INITIAL_REVIEW
    """
    if _coerce(current) == ProfileStatus.PENDING_UPDATE_REQUEST:
        return ProfileStatus.UPDATE_SUBMITTED_PENDING_REVIEW
    return ProfileStatus.PENDING_INITIAL_REVIEW


def is_read_only(status: Optional[ProfileStatus]) -> bool:
    return _coerce(status) in READ_ONLY_STATUSES


def requires_restart(status: Optional[ProfileStatus]) -> bool:
    return _coerce(status) == ProfileStatus.REJECTED


def needs_acknowledgement(status: Optional[ProfileStatus]) -> bool:
    return _coerce(status) in ACKNOWLEDGE_STATUSES


def can_submit(status: Optional[ProfileStatus]) -> bool:
    return _coerce(status) != ProfileStatus.APPROVED


def evaluate_submission(current: Optional[ProfileStatus]) -> StatusDecision:
    """Status change caused by a (valid) resident submission."""
    if not can_submit(current):
        return StatusDecision(should_change=False, reason="profile is already approved")

    new_status = next_status_on_submit(current)
    return StatusDecision(
        should_change=True,
        new_status=new_status,
        notify_event=NotifyEvent.PENDING if new_status == ProfileStatus.PENDING_INITIAL_REVIEW else None,
    )


# -------------------------
# Review decisions
# -------------------------

# decision -> (allowed source statuses, target, email event)
_DECISIONS: Dict[ReviewDecision, Tuple[FrozenSet[ProfileStatus], ProfileStatus, NotifyEvent]] = {
    ReviewDecision.APPROVE: (
        frozenset({ProfileStatus.PENDING_INITIAL_REVIEW, ProfileStatus.UPDATE_SUBMITTED_PENDING_REVIEW}),
        ProfileStatus.APPROVED,
        NotifyEvent.APPROVAL,
    ),
    ReviewDecision.REJECT: (
        PENDING_STATUSES,
        ProfileStatus.REJECTED,
        NotifyEvent.REJECTION,
    ),
    ReviewDecision.REQUIRE_UPDATE: (
        frozenset(ProfileStatus) - {ProfileStatus.REQUIRED_TO_UPDATE},
        ProfileStatus.REQUIRED_TO_UPDATE,
        NotifyEvent.UPDATE_PROFILING,
    ),
    ReviewDecision.ACCEPT_UPDATE_REQUEST: (
        frozenset({ProfileStatus.PENDING_UPDATE_REQUEST}),
        ProfileStatus.UPDATE_SUBMITTED_PENDING_REVIEW,
        NotifyEvent.UPDATE_APPROVAL,
    ),
    ReviewDecision.DECLINE_UPDATE_REQUEST: (
        frozenset({ProfileStatus.PENDING_UPDATE_REQUEST}),
        ProfileStatus.APPROVED,
        NotifyEvent.UPDATE_REJECTION,
    ),
    ReviewDecision.REQUEST_UPDATE: (
        frozenset({ProfileStatus.APPROVED}),
        ProfileStatus.PENDING_UPDATE_REQUEST,
        NotifyEvent.UPDATE_REQUEST,
    ),
}

REASON_REQUIRED = frozenset({
    ReviewDecision.REJECT,
    ReviewDecision.REQUIRE_UPDATE,
    ReviewDecision.DECLINE_UPDATE_REQUEST,
    ReviewDecision.REQUEST_UPDATE,
})


def _allowed_edges() -> FrozenSet[Tuple[Optional[ProfileStatus], ProfileStatus]]:
    edges = {(None, ProfileStatus.PENDING_INITIAL_REVIEW)}
    for status in ProfileStatus:
        if can_submit(status):
            edges.add((status, next_status_on_submit(status)))
    for sources, target, _ in _DECISIONS.values():
        edges.update((source, target) for source in sources)
    return frozenset(edges)


ALLOWED_TRANSITIONS = _allowed_edges()


def can_transition(current: Optional[ProfileStatus], new_status: ProfileStatus) -> Tuple[bool, str]:
    """
    Central guard for status writes.

    Rules:
    - Keeping the current status is always allowed (no-op).
    - Otherwise the edge must come from a submission or a review decision.
    """
    current = _coerce(current)
    new_status = _coerce(new_status)
    if current == new_status:
        return True, "noop"
    if (current, new_status) in ALLOWED_TRANSITIONS:
        return True, "ok"
    return False, f"blocked:{current.name if current else 'NONE'}->{new_status.name}"


def evaluate_decision(
    current: Optional[ProfileStatus],
    decision: ReviewDecision,
    reason: Optional[str] = None,
) -> StatusDecision:
    """
    Evaluate an administrator (or resident update-request) decision.

    Returns a structured StatusDecision so API handlers can report exactly
    what happened instead of raising on a policy block.
    """
    current = _coerce(current)
    reason = (reason or "").strip() or None

    if decision in REASON_REQUIRED and not reason:
        return StatusDecision(should_change=False, reason=f"{decision.value} requires a reason")

    if current is None:
        return StatusDecision(should_change=False, reason="profile has not been submitted")

    sources, target, event = _DECISIONS[decision]
    if current not in sources:
        return StatusDecision(
            should_change=False,
            reason=f"cannot {decision.value} a profile in status {current.label}",
        )

    return StatusDecision(
        should_change=True,
        new_status=target,
        reason=reason,
        notify_event=event,
    )


def apply_status_change(
    session: Session,
    record: ResidentProfileStatus,
    decision: StatusDecision,
) -> bool:
    """
    Write an evaluated decision onto the status row.

    Safe behavior:
    - No-op (returns False) when the decision says nothing changes or the
      edge is not an allowed transition.
    - The stored reason is replaced by the decision's reason (cleared on approval).
    - Commits and refreshes the record.
    """
    if not decision.should_change or decision.new_status is None:
        return False

    allowed, why = can_transition(record.status, decision.new_status)
    if not allowed:
        logger.warning("status write for resident row %s refused: %s", record.resident_id, why)
        return False

    previous = _coerce(record.status)
    record.status = decision.new_status
    record.rejection_reason = decision.reason
    record.updated_at = utcnow()

    session.add(record)
    session.commit()
    session.refresh(record)

    logger.info(
        "resident row %s status %s -> %s",
        record.resident_id,
        previous.label if previous else None,
        decision.new_status.label,
    )
    return True
