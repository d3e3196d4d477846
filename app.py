"""
app.py: ASGI entry point for the RentalOps API.

`create_app()` builds the repository, the inventory service and the window
session registry, publishes them on app.state for the controllers, and seeds
an empty database on startup.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from rentalops.controllers.allocation_controller import router as allocation_router
from rentalops.controllers.window_controller import router as window_router
from rentalops.repository.data_repository import DataRepository
from rentalops.services.inventory_service import InventoryService
from rentalops.services.session_registry import WindowSessionRegistry
from rentalops.utils.config import Settings, get_settings
from rentalops.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Assemble the application around one repository.

    Window stores are not created here; the registry opens one per session.
    """
    settings = settings or get_settings()
    repository = DataRepository(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _startup(app)
        yield
        logger.info(
            "Shutdown | open_sessions=%s",
            len(app.state.session_registry),
        )

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.include_router(allocation_router)
    app.include_router(window_router)

    app.state.settings = settings
    app.state.repository = repository
    app.state.inventory_service = InventoryService(
        repository=repository,
        settings=settings,
    )
    app.state.session_registry = WindowSessionRegistry(settings=settings)
    return app


def _startup(app: FastAPI) -> None:
    """Create the schema, then seed the fleet if the Devices table is empty."""
    repository: DataRepository = app.state.repository

    logger.info("Startup: database=%s", repository.database_path)
    repository.initialize_database()
    repository.seed_synthetic_data()
    logger.info("Startup: ready")


app = create_app()
