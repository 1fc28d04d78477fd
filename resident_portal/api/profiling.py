from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Path
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from ..errors import ProfilingError
from ..services.address_directory import AddressDirectory
from ..services.profile_store import StatusRecord
from ..services.review import ReviewService
from ..services.submission import SubmissionOrchestrator
from ..services.sync import ProfileSync
from ..services.wizard import WizardController, WizardSessions
from .deps import get_db, get_orchestrator, get_review_service, get_wizards, raise_http, unwrap

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profiling", tags=["profiling"])


# -------------------------
# Schemas
# -------------------------

class ResizeRequest(BaseModel):
    """Declared slot counts (same keys as the stored profile)."""
    model_config = ConfigDict(populate_by_name=True)

    children_count: int = Field(default=0, alias="childrenCount")
    other_members_count: int = Field(default=0, alias="numberOfhouseholdMembers")


class UpdateRequest(BaseModel):
    reason: Optional[str] = None


class SubmitResponse(BaseModel):
    status: int
    status_label: str
    notified: bool
    warnings: List[str] = []


# -------------------------
# Helpers
# -------------------------

async def _wizard(sessions: WizardSessions, resident_id: str) -> WizardController:
    try:
        return await sessions.get(resident_id)
    except ProfilingError as exc:
        raise_http(exc)


def _state(wizard: WizardController) -> Dict[str, Any]:
    return wizard.state().to_dict()


# -------------------------
# Routes
# -------------------------

@router.get("/{resident_id}")
async def get_wizard(
    resident_id: str,
    sessions: WizardSessions = Depends(get_wizards),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """
    Wizard state plus the aggregate (confirmation form, address names resolved).

    Each call is also a poll: the stored status and every section without
    unsaved edits are re-read first.
    """
    wizard = await _wizard(sessions, resident_id)
    try:
        await ProfileSync(wizard).poll_once()
    except ProfilingError as exc:
        logger.warning("poll for resident %s failed: %s", resident_id, exc)

    return {
        "state": _state(wizard),
        "profile": wizard.confirmation_view(AddressDirectory(db)),
    }


@router.post("/{resident_id}/advance")
async def advance(
    resident_id: str,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    sessions: WizardSessions = Depends(get_wizards),
) -> Dict[str, Any]:
    """
    Complete the current step. Body is the step form (camelCase keys):
    household head / spouse form, {"childrenCount", "numberOfhouseholdMembers",
    "members"} for the composition, census answers. Empty body re-submits the
    stored data.
    """
    wizard = await _wizard(sessions, resident_id)
    return unwrap(await wizard.advance(payload)).to_dict()


@router.post("/{resident_id}/retreat")
async def retreat(resident_id: str, sessions: WizardSessions = Depends(get_wizards)) -> Dict[str, Any]:
    wizard = await _wizard(sessions, resident_id)
    return unwrap(wizard.retreat()).to_dict()


@router.post("/{resident_id}/resize")
async def resize(
    resident_id: str,
    payload: ResizeRequest,
    sessions: WizardSessions = Depends(get_wizards),
) -> Dict[str, Any]:
    wizard = await _wizard(sessions, resident_id)
    state = unwrap(wizard.resize(payload.children_count, payload.other_members_count))
    return {
        "state": state.to_dict(),
        "members": [d.to_document() for d in wizard.data.profile.dependents],
    }


@router.post("/{resident_id}/dependents/{index}")
async def edit_dependent(
    resident_id: str,
    index: int = Path(ge=0),
    changes: Dict[str, Any] = Body(...),
    sessions: WizardSessions = Depends(get_wizards),
) -> Dict[str, Any]:
    """Field-level edit of one dependent slot (auto-fill rules applied)."""
    wizard = await _wizard(sessions, resident_id)
    state = unwrap(wizard.edit_dependent(index, changes))
    return {"state": state.to_dict(), "member": wizard.data.profile.dependents[index].to_document()}


@router.post("/{resident_id}/confirmation/{tab}")
async def confirmation_tab(
    resident_id: str,
    tab: str,
    sessions: WizardSessions = Depends(get_wizards),
) -> Dict[str, Any]:
    wizard = await _wizard(sessions, resident_id)
    return unwrap(wizard.select_confirmation_tab(tab)).to_dict()


@router.post("/{resident_id}/submit", response_model=SubmitResponse)
async def submit(
    resident_id: str,
    sessions: WizardSessions = Depends(get_wizards),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator),
) -> SubmitResponse:
    wizard = await _wizard(sessions, resident_id)
    outcome = unwrap(await wizard.submit(orchestrator))
    sessions.drop(resident_id)
    return SubmitResponse(
        status=int(outcome.new_status),
        status_label=outcome.new_status.label,
        notified=outcome.notified,
        warnings=list(outcome.warnings),
    )


@router.post("/{resident_id}/request-update")
async def request_update(
    resident_id: str,
    payload: UpdateRequest,
    sessions: WizardSessions = Depends(get_wizards),
    review: ReviewService = Depends(get_review_service),
) -> Dict[str, Any]:
    """Resident asks to edit an approved profile (reason required)."""
    outcome = unwrap(await review.request_update(resident_id, payload.reason))

    wizard = await _wizard(sessions, resident_id)
    wizard.observe_status(StatusRecord(status=outcome.new_status, reason=outcome.reason))
    return {"state": _state(wizard), "warnings": list(outcome.warnings)}
