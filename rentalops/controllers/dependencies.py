"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from rentalops.services.inventory_service import InventoryService
from rentalops.services.session_registry import WindowSessionRegistry
from rentalops.utils.config import get_settings


def get_inventory_service(request: Request) -> InventoryService:
    service = getattr(request.app.state, "inventory_service", None)
    if service is None:
        repository = getattr(request.app.state, "repository", None)
        if repository is not None:
            settings = getattr(request.app.state, "settings", None) or get_settings()
            service = InventoryService(repository=repository, settings=settings)
            request.app.state.inventory_service = service
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Inventory service is not initialized",
        )
    return service


def get_session_registry(request: Request) -> WindowSessionRegistry:
    registry = getattr(request.app.state, "session_registry", None)
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Window session registry is not initialized",
        )
    return registry
