from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from ..models.profile_status import ReviewDecision
from ..services.reporting import status_counts, zone_population
from ..services.review import ReviewService
from .deps import get_db, get_review_service, unwrap

router = APIRouter(prefix="/review", tags=["review"])


class DecisionRequest(BaseModel):
    """
    Administrator decision on a profile.
    reason is required for reject / require_update / decline_update_request.
    """
    decision: ReviewDecision
    reason: Optional[str] = None


class DecisionResponse(BaseModel):
    resident_id: str
    decision: ReviewDecision
    previous_status: Optional[int] = None
    new_status: int
    status_label: str
    reason: Optional[str] = None
    warnings: List[str] = []


@router.post("/{resident_id}/decision", response_model=DecisionResponse)
async def decide(
    resident_id: str,
    payload: DecisionRequest,
    review: ReviewService = Depends(get_review_service),
) -> DecisionResponse:
    outcome = unwrap(await review.decide(resident_id, payload.decision, payload.reason))
    return DecisionResponse(
        resident_id=outcome.resident_id,
        decision=outcome.decision,
        previous_status=int(outcome.previous_status) if outcome.previous_status is not None else None,
        new_status=int(outcome.new_status),
        status_label=outcome.new_status.label,
        reason=outcome.reason,
        warnings=list(outcome.warnings),
    )


@router.get("/counts")
def counts(db: Session = Depends(get_db)) -> Dict[str, Any]:
    return status_counts(db).to_dict()


@router.get("/zones")
def zones(db: Session = Depends(get_db)) -> List[Dict[str, int]]:
    return [
        {"zone": z.zone, "households": z.households, "population": z.population}
        for z in zone_population(db)
    ]
