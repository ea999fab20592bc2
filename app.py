"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from backend.controllers.band_controller import router as band_router
from backend.controllers.rehearsal_controller import router as rehearsal_router
from backend.repository.data_repository import DataRepository
from backend.services.auth_service import AuthService
from backend.services.band_service import BandService
from backend.services.ranking_service import SuggestionService
from backend.services.rehearsal_service import RehearsalService
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    All services are created here and exposed through app.state, so every
    dependency a request handler sees is traceable from this function.
    """
    settings = settings or get_settings()

    # --- Repository (per-call SQLite connections) ---
    repository = DataRepository(settings)

    # --- Services (business rules; storage only through the repository) ---
    band_service = BandService(repository=repository, settings=settings)
    rehearsal_service = RehearsalService(
        repository=repository,
        band_service=band_service,
        settings=settings,
    )
    suggestion_service = SuggestionService(
        repository=repository,
        band_service=band_service,
        settings=settings,
    )
    auth_service = AuthService(repository=repository, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app, settings)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(band_router)
    app.include_router(rehearsal_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.repository = repository
    app.state.band_service = band_service
    app.state.rehearsal_service = rehearsal_service
    app.state.suggestion_service = suggestion_service
    app.state.auth_service = auth_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema creation must precede seeding; seeding is skipped as soon as
    any user exists.
    """
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo band (skipped if users exist)")
        repository.seed_demo_data_if_empty()

    logger.info("Startup complete, system ready")


# Module-level app object for uvicorn
app = create_app()
