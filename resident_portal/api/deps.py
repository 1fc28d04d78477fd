from __future__ import annotations

from typing import Generator, NoReturn, TypeVar

from fastapi import HTTPException, Request
from sqlmodel import Session

from ..errors import ProfilingError, Result
from ..services.profile_store import ProfileStore
from ..services.review import ReviewService
from ..services.submission import SubmissionOrchestrator
from ..services.wizard import WizardSessions

T = TypeVar("T")

# ProfilingError.kind -> HTTP status
HTTP_STATUS_FOR_KIND = {
    "validation": 422,
    "navigation": 409,
    "transition": 409,
    "persistence": 503,
    "inconsistent_state": 500,
}


def raise_http(error: ProfilingError) -> NoReturn:
    raise HTTPException(status_code=HTTP_STATUS_FOR_KIND.get(error.kind, 400), detail=error.to_detail())


def unwrap(result: Result[T]) -> T:
    if not result.ok:
        raise_http(result.error)
    return result.value


# -------------------------
# Dependencies (objects are built once in main.create_app)
# -------------------------

def get_db(request: Request) -> Generator[Session, None, None]:
    with Session(request.app.state.engine) as session:
        yield session


def get_profile_store(request: Request) -> ProfileStore:
    return request.app.state.profile_store


def get_wizards(request: Request) -> WizardSessions:
    return request.app.state.wizards


def get_orchestrator(request: Request) -> SubmissionOrchestrator:
    return request.app.state.orchestrator


def get_review_service(request: Request) -> ReviewService:
    return request.app.state.review
