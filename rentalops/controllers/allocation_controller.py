"""HTTP controller layer for device assignment and inventory queries."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, model_validator

from rentalops.controllers.dependencies import get_inventory_service
from rentalops.domain.models import DeviceCategory, Reservation
from rentalops.repository.data_repository import (
    AssignmentConflictError,
    RepositoryError,
)
from rentalops.services.inventory_service import (
    DeviceNotFoundError,
    InventoryService,
    InventoryValidationError,
    ReservationNotFoundError,
    ReservationStateError,
)
from rentalops.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["allocation"])


class AllocationResponse(BaseModel):
    reservation_id: int = Field(gt=0)
    assigned: bool
    device_id: Optional[int] = None
    device_tag: Optional[str] = None
    message: Optional[str] = None


class ReleaseResponse(BaseModel):
    reservation_id: int = Field(gt=0)
    released_devices: int = Field(ge=0)


class ReturnResponse(BaseModel):
    device_tag: str
    status: str


class AvailabilityCheckRequest(BaseModel):
    category: DeviceCategory
    pickup_date: date
    return_date: date
    exclude_reservation_id: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def validate_period(self) -> "AvailabilityCheckRequest":
        if self.return_date < self.pickup_date:
            raise ValueError("return_date must not be before pickup_date")
        return self


class DeviceAvailabilityRow(BaseModel):
    device_id: int
    device_tag: str
    available_from: date
    available_until: date
    is_available: bool
    conflicting_reservation_ids: list[int]


class AvailabilityCheckResponse(BaseModel):
    category: DeviceCategory
    available_count: int = Field(ge=0)
    devices: list[DeviceAvailabilityRow]


class InventoryStatusRow(BaseModel):
    category: str
    total_devices: int = Field(ge=0)
    available_devices: int = Field(ge=0)
    rented_devices: int = Field(ge=0)
    maintenance_devices: int = Field(ge=0)
    utilization_rate: float = Field(ge=0.0, le=100.0)


class ReservationRow(BaseModel):
    reservation_id: int
    renter_name: str
    device_category: DeviceCategory
    device_tag: Optional[str]
    pickup_date: date
    pickup_time: str
    return_date: date
    return_time: str
    status: str

    @classmethod
    def from_domain(cls, reservation: Reservation) -> "ReservationRow":
        return cls(
            reservation_id=reservation.reservation_id,
            renter_name=reservation.renter_name,
            device_category=reservation.device_category,
            device_tag=reservation.device_tag,
            pickup_date=reservation.pickup_date,
            pickup_time=reservation.pickup_time,
            return_date=reservation.return_date,
            return_time=reservation.return_time,
            status=reservation.status.value,
        )


@router.post(
    "/reservations/{reservation_id}/assign",
    response_model=AllocationResponse,
    status_code=status.HTTP_200_OK,
)
async def assign_device(
    reservation_id: int,
    service: InventoryService = Depends(get_inventory_service),
) -> AllocationResponse:
    """Score the free devices of the reservation's category and reserve the best."""
    try:
        result = service.allocate_device(reservation_id)
        return AllocationResponse(
            reservation_id=result.reservation_id,
            assigned=result.success,
            device_id=result.device_id,
            device_tag=result.device_tag,
            message=result.error_message,
        )
    except ReservationNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except (ReservationStateError, AssignmentConflictError) as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except RepositoryError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - unexpected failure
        logger.exception("Unexpected assignment failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to assign device",
        ) from exc


@router.post(
    "/reservations/{reservation_id}/release",
    response_model=ReleaseResponse,
    status_code=status.HTTP_200_OK,
)
async def release_device(
    reservation_id: int,
    service: InventoryService = Depends(get_inventory_service),
) -> ReleaseResponse:
    try:
        released = service.release_device(reservation_id)
        return ReleaseResponse(reservation_id=reservation_id, released_devices=released)
    except ReservationNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.post(
    "/devices/{device_tag}/return",
    response_model=ReturnResponse,
    status_code=status.HTTP_200_OK,
)
async def complete_return(
    device_tag: str,
    service: InventoryService = Depends(get_inventory_service),
) -> ReturnResponse:
    try:
        service.complete_return(device_tag)
        return ReturnResponse(device_tag=device_tag, status="available")
    except DeviceNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.post(
    "/availability/check",
    response_model=AvailabilityCheckResponse,
    status_code=status.HTTP_200_OK,
)
async def check_availability(
    payload: AvailabilityCheckRequest,
    service: InventoryService = Depends(get_inventory_service),
) -> AvailabilityCheckResponse:
    try:
        rows = service.check_availability(
            category=payload.category,
            pickup_date=payload.pickup_date,
            return_date=payload.return_date,
            exclude_reservation_id=payload.exclude_reservation_id,
        )
    except InventoryValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return AvailabilityCheckResponse(
        category=payload.category,
        available_count=sum(1 for row in rows if row.is_available),
        devices=[
            DeviceAvailabilityRow(
                device_id=row.device_id,
                device_tag=row.device_tag,
                available_from=row.available_from,
                available_until=row.available_until,
                is_available=row.is_available,
                conflicting_reservation_ids=row.conflicting_reservation_ids,
            )
            for row in rows
        ],
    )


@router.get(
    "/inventory/status",
    response_model=list[InventoryStatusRow],
    status_code=status.HTTP_200_OK,
)
async def inventory_status(
    category: Optional[DeviceCategory] = None,
    service: InventoryService = Depends(get_inventory_service),
) -> list[InventoryStatusRow]:
    return [
        InventoryStatusRow(
            category=row.category,
            total_devices=row.total_devices,
            available_devices=row.available_devices,
            rented_devices=row.rented_devices,
            maintenance_devices=row.maintenance_devices,
            utilization_rate=row.utilization_rate,
        )
        for row in service.get_inventory_status(category)
    ]


@router.get(
    "/reservations/overdue",
    response_model=list[ReservationRow],
    status_code=status.HTTP_200_OK,
)
async def overdue_reservations(
    service: InventoryService = Depends(get_inventory_service),
) -> list[ReservationRow]:
    return [
        ReservationRow.from_domain(reservation)
        for reservation in service.get_overdue_reservations()
    ]
