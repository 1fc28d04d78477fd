from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from . import database
from .config import settings
from .database import init_db
from .services.notifications import HttpNotifier, Notifier
from .services.profile_store import SqlProfileStore
from .services.review import ReviewService
from .services.submission import SubmissionOrchestrator
from .services.wizard import WizardSessions

from .api.profiling import router as profiling_router
from .api.review import router as review_router
from .api.addresses import router as addresses_router


def create_app(engine: Optional[Engine] = None, notifier: Optional[Notifier] = None) -> FastAPI:
    app = FastAPI(
        title="Resident Portal API",
        version=settings.app_version,
    )

    # --- Shared services (one engine, one notifier per process) ---
    bind = engine if engine is not None else database.engine
    store = SqlProfileStore(bind)
    notifier = notifier if notifier is not None else HttpNotifier()

    app.state.engine = bind
    app.state.profile_store = store
    app.state.notifier = notifier
    app.state.wizards = WizardSessions(store)
    app.state.orchestrator = SubmissionOrchestrator(store, notifier)
    app.state.review = ReviewService(store, notifier)

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Startup ---
    @app.on_event("startup")
    def _startup() -> None:
        # Creates missing tables for all registered SQLModel models
        init_db(bind=bind)

    # --- Consistent error envelope ---
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):  # noqa: ANN001
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    # --- Health / meta ---
    @app.get("/health", tags=["meta"])
    def health() -> Dict[str, Any]:
        return {
            "ok": True,
            "env": settings.env,
            "app": settings.app_name,
        }

    @app.get("/version", tags=["meta"])
    def version() -> Dict[str, Any]:
        return {"version": settings.app_version}

    # --- API routers ---
    app.include_router(profiling_router)
    app.include_router(review_router)
    app.include_router(addresses_router)

    return app


app = create_app()


def run() -> None:
    logging.basicConfig(level=getattr(logging, str(settings.log_level).upper(), logging.INFO))
    import uvicorn

    # NOTE: init_db is handled by the FastAPI startup hook.
    # reload should be True in local dev, False in prod.
    uvicorn.run(
        "resident_portal.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
    )
