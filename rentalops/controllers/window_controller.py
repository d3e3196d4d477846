"""Controller layer for per-session availability windows."""

from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from rentalops.controllers.allocation_controller import ReservationRow
from rentalops.controllers.dependencies import get_inventory_service, get_session_registry
from rentalops.domain.models import DeviceCategory
from rentalops.services.availability_window import (
    AvailabilityWindowStore,
    WindowValidationError,
)
from rentalops.services.inventory_service import InventoryService, InventoryValidationError
from rentalops.services.session_registry import SessionNotFoundError, WindowSessionRegistry
from rentalops.utils.config import get_settings
from rentalops.utils.logger import get_logger


logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(prefix="/inventory/sessions", tags=["window"])


class TimeSlotResponse(BaseModel):
    slot_date: date
    reservations: list[ReservationRow]


class WindowStateResponse(BaseModel):
    session_id: str
    start_date: date
    end_date: date
    devices: list[str]
    filtered_devices: list[str]
    time_slots: list[TimeSlotResponse]
    search_term: str
    selected_categories: list[DeviceCategory]
    loading: bool
    error: Optional[str] = None


class ExtendWindowRequest(BaseModel):
    direction: Literal["past", "future"]
    days: int = Field(gt=0, le=settings.window_max_extension_days)


class ExtendWindowResponse(BaseModel):
    bound: date
    window: WindowStateResponse


class FilterUpdateRequest(BaseModel):
    search_term: Optional[str] = None
    selected_categories: Optional[list[DeviceCategory]] = None


class FilteredDevicesResponse(BaseModel):
    search_term: str
    devices: list[str]


def _to_response(session_id: str, store: AvailabilityWindowStore) -> WindowStateResponse:
    state = store.snapshot()
    return WindowStateResponse(
        session_id=session_id,
        start_date=state.start_date,
        end_date=state.end_date,
        devices=list(state.devices),
        filtered_devices=store.get_filtered_devices(),
        time_slots=[
            TimeSlotResponse(
                slot_date=slot.date,
                reservations=[
                    ReservationRow.from_domain(reservation)
                    for reservation in slot.reservations
                ],
            )
            for slot in state.time_slots
        ],
        search_term=state.search_term,
        selected_categories=list(state.selected_categories),
        loading=state.loading,
        error=state.error,
    )


def _resolve_store(registry: WindowSessionRegistry, session_id: str) -> AvailabilityWindowStore:
    try:
        return registry.get(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.post(
    "",
    response_model=WindowStateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def open_session(
    registry: WindowSessionRegistry = Depends(get_session_registry),
    service: InventoryService = Depends(get_inventory_service),
) -> WindowStateResponse:
    """Create a session-owned window anchored at today and load it."""
    session_id, store = registry.open_session()
    service.load_window(store)
    return _to_response(session_id, store)


@router.get(
    "/{session_id}",
    response_model=WindowStateResponse,
    status_code=status.HTTP_200_OK,
)
async def get_session(
    session_id: str,
    registry: WindowSessionRegistry = Depends(get_session_registry),
) -> WindowStateResponse:
    return _to_response(session_id, _resolve_store(registry, session_id))


@router.post(
    "/{session_id}/extend",
    response_model=ExtendWindowResponse,
    status_code=status.HTTP_200_OK,
)
async def extend_window(
    session_id: str,
    payload: ExtendWindowRequest,
    registry: WindowSessionRegistry = Depends(get_session_registry),
    service: InventoryService = Depends(get_inventory_service),
) -> ExtendWindowResponse:
    store = _resolve_store(registry, session_id)
    try:
        bound = service.extend_window(store, direction=payload.direction, days=payload.days)
    except (InventoryValidationError, WindowValidationError) as exc:
        logger.warning(
            "Window extension rejected | session_id=%s | direction=%s | days=%s",
            session_id,
            payload.direction,
            payload.days,
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return ExtendWindowResponse(bound=bound, window=_to_response(session_id, store))


@router.put(
    "/{session_id}/filters",
    response_model=WindowStateResponse,
    status_code=status.HTTP_200_OK,
)
async def update_filters(
    session_id: str,
    payload: FilterUpdateRequest,
    registry: WindowSessionRegistry = Depends(get_session_registry),
    service: InventoryService = Depends(get_inventory_service),
) -> WindowStateResponse:
    store = _resolve_store(registry, session_id)
    service.update_filters(
        store,
        search_term=payload.search_term,
        selected_categories=payload.selected_categories,
    )
    return _to_response(session_id, store)


@router.get(
    "/{session_id}/devices",
    response_model=FilteredDevicesResponse,
    status_code=status.HTTP_200_OK,
)
async def filtered_devices(
    session_id: str,
    registry: WindowSessionRegistry = Depends(get_session_registry),
) -> FilteredDevicesResponse:
    store = _resolve_store(registry, session_id)
    return FilteredDevicesResponse(
        search_term=store.search_term,
        devices=store.get_filtered_devices(),
    )


@router.delete(
    "/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def close_session(
    session_id: str,
    registry: WindowSessionRegistry = Depends(get_session_registry),
) -> Response:
    try:
        registry.close_session(session_id)
    except SessionNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
