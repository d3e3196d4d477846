"""Device assignment, availability and window loading on top of the repository."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from datetime import date, datetime
from typing import Callable, Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from rentalops.domain.constraints import ScoringPolicy, validate_scoring_policy
from rentalops.domain.models import (
    ACTIVE_RESERVATION_STATUSES,
    MAINTENANCE_DEVICE_STATUSES,
    RENTED_DEVICE_STATUSES,
    Device,
    DeviceAllocation,
    DeviceAvailability,
    DeviceCategory,
    DeviceStatus,
    Found,
    InventoryStatus,
    Reservation,
    ReservationStatus,
    UsageInterval,
)
from rentalops.repository.data_repository import DataRepository, RepositoryError
from rentalops.services.availability_window import (
    AvailabilityWindowStore,
    build_time_slots,
)
from rentalops.services.scoring_service import (
    filter_conflicting_devices,
    find_optimal_device,
)
from rentalops.utils.config import Settings, get_settings
from rentalops.utils.logger import get_logger
from rentalops.utils.ttl_cache import TimeBoxedCache


logger = get_logger(__name__)

_CATALOG_CACHE_PREFIX = "devices:"
_CLOSED_RESERVATION_STATUSES = frozenset(
    {ReservationStatus.CANCELLED, ReservationStatus.COMPLETED}
)


class InventoryError(Exception):
    """Base exception for inventory workflow failures."""


class InventoryValidationError(InventoryError):
    """Raised when inventory request inputs are invalid."""


class ReservationNotFoundError(InventoryError):
    """Raised when a reservation id does not exist in persisted state."""


class DeviceNotFoundError(InventoryError):
    """Raised when a device tag does not exist in persisted state."""


class ReservationStateError(InventoryError):
    """Raised when a reservation cannot take a device in its current state."""


def _validate_period(pickup_date: date, return_date: date) -> None:
    if return_date < pickup_date:
        raise InventoryValidationError("return_date must not be before pickup_date")


def auto_assign_reservations(
    reservations: Sequence[Reservation],
    devices: Sequence[Device],
    *,
    now: datetime,
    policy: ScoringPolicy,
) -> list[Reservation]:
    """Give every untagged reservation a device, in order, without persisting.

    Each pick is appended to a running ledger so later reservations in the
    same batch see earlier picks as usage history and as conflicts.
    """
    tags_by_category: dict[DeviceCategory, list[str]] = defaultdict(list)
    for device in devices:
        tags_by_category[device.category].append(device.tag_name)

    ledger: dict[str, list[UsageInterval]] = defaultdict(list)
    for reservation in reservations:
        if reservation.device_tag and reservation.status != ReservationStatus.CANCELLED:
            ledger[reservation.device_tag].append(
                UsageInterval(reservation.pickup_date, reservation.return_date)
            )

    assigned: list[Reservation] = []
    for reservation in reservations:
        if reservation.device_tag or reservation.status == ReservationStatus.CANCELLED:
            assigned.append(reservation)
            continue
        candidates = filter_conflicting_devices(
            reservation,
            tags_by_category.get(reservation.device_category, []),
            ledger,
        )
        result = find_optimal_device(
            reservation,
            candidates,
            ledger,
            now=now,
            policy=policy,
        )
        if isinstance(result, Found):
            ledger[result.device_tag].append(
                UsageInterval(reservation.pickup_date, reservation.return_date)
            )
            assigned.append(replace(reservation, device_tag=result.device_tag))
        else:
            assigned.append(reservation)
    return assigned


class InventoryService:
    """Business logic orchestration for device assignment and window data."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._clock = clock
        self._policy = ScoringPolicy.from_settings(self._settings)
        validate_scoring_policy(self._policy)
        self._catalog_cache: TimeBoxedCache[str, tuple[Device, ...]] = TimeBoxedCache(
            ttl_seconds=self._settings.device_catalog_cache_ttl_seconds,
        )

    @property
    def policy(self) -> ScoringPolicy:
        return self._policy

    def _list_devices(
        self,
        categories: Iterable[DeviceCategory],
        statuses: Optional[Sequence[DeviceStatus]] = None,
    ) -> list[Device]:
        category_values = sorted({DeviceCategory(category).value for category in categories})
        status_values = (
            None if statuses is None else sorted(status.value for status in statuses)
        )
        key = (
            f"{_CATALOG_CACHE_PREFIX}{','.join(category_values)}"
            f"|{'*' if status_values is None else ','.join(status_values)}"
        )
        devices = self._catalog_cache.get_or_compute(
            key,
            lambda: tuple(
                self._repository.list_devices(
                    categories=category_values,
                    statuses=status_values,
                )
            ),
        )
        return list(devices)

    def _invalidate_catalog(self) -> None:
        self._catalog_cache.invalidate(_CATALOG_CACHE_PREFIX)

    def _get_reservation(self, reservation_id: int) -> Reservation:
        reservation = self._repository.get_reservation(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(f"Reservation {reservation_id} not found")
        return reservation

    def check_availability(
        self,
        *,
        category: DeviceCategory,
        pickup_date: date,
        return_date: date,
        exclude_reservation_id: Optional[int] = None,
    ) -> list[DeviceAvailability]:
        """Report per-device availability of a category for [pickup, return]."""
        _validate_period(pickup_date, return_date)
        devices = self._list_devices([category])
        reservations = self._repository.list_conflicting_reservations(
            device_category=category,
            pickup_date=pickup_date.isoformat(),
            return_date=return_date.isoformat(),
            exclude_reservation_id=exclude_reservation_id,
        )

        availability: list[DeviceAvailability] = []
        for device in devices:
            conflicts = [
                reservation.reservation_id
                for reservation in reservations
                if reservation.device_tag == device.tag_name
                or device.assigned_reservation_id == reservation.reservation_id
            ]
            availability.append(
                DeviceAvailability(
                    device_id=device.device_id,
                    device_tag=device.tag_name,
                    available_from=pickup_date,
                    available_until=return_date,
                    is_available=device.status == DeviceStatus.AVAILABLE and not conflicts,
                    conflicting_reservation_ids=conflicts,
                )
            )
        return availability

    def allocate_device(self, reservation_id: int) -> DeviceAllocation:
        """Pick the best free device for a reservation and persist the choice."""
        reservation = self._get_reservation(reservation_id)
        if reservation.status in _CLOSED_RESERVATION_STATUSES:
            raise ReservationStateError(
                f"Reservation {reservation_id} is {reservation.status.value}"
            )
        if reservation.device_tag:
            raise ReservationStateError(
                f"Reservation {reservation_id} already holds device {reservation.device_tag}"
            )

        devices = self._list_devices(
            [reservation.device_category],
            statuses=[DeviceStatus.AVAILABLE],
        )
        device_by_tag = {device.tag_name: device for device in devices}
        tags = list(device_by_tag)
        ledger = self._repository.get_usage_ledger(
            device_tags=tags,
            exclude_reservation_id=reservation_id,
        )
        candidates = filter_conflicting_devices(reservation, tags, ledger)
        result = find_optimal_device(
            reservation,
            candidates,
            ledger,
            now=self._clock(),
            policy=self._policy,
        )

        if not isinstance(result, Found):
            logger.info(
                "Allocation skipped; no candidate | reservation_id=%s | category=%s | devices=%s",
                reservation_id,
                reservation.device_category.value,
                len(tags),
            )
            return DeviceAllocation(
                success=False,
                reservation_id=reservation_id,
                error_message="No device is available for the requested period",
            )

        device = device_by_tag[result.device_tag]
        self._repository.assign_device(
            reservation_id=reservation_id,
            device_id=device.device_id,
            device_tag=device.tag_name,
        )
        self._invalidate_catalog()
        logger.info(
            "Allocation completed | reservation_id=%s | device_tag=%s | candidates=%s",
            reservation_id,
            device.tag_name,
            len(candidates),
        )
        return DeviceAllocation(
            success=True,
            reservation_id=reservation_id,
            device_id=device.device_id,
            device_tag=device.tag_name,
        )

    def release_device(self, reservation_id: int) -> int:
        """Return devices held by a reservation to the pool; 0 if none held."""
        self._get_reservation(reservation_id)
        released = self._repository.release_devices_for_reservation(reservation_id)
        self._invalidate_catalog()
        logger.info(
            "Devices released | reservation_id=%s | released=%s",
            reservation_id,
            released,
        )
        return released

    def complete_return(self, device_tag: str) -> None:
        if not self._repository.mark_device_returned(device_tag):
            raise DeviceNotFoundError(f"Device {device_tag} not found")
        self._invalidate_catalog()
        logger.info("Device returned | device_tag=%s", device_tag)

    def get_inventory_status(
        self,
        category: Optional[DeviceCategory] = None,
    ) -> list[InventoryStatus]:
        """Aggregate device counts per category with a utilization percentage."""
        devices = self._repository.list_devices(
            categories=None if category is None else [category],
        )
        if not devices:
            return []

        frame = pd.DataFrame(
            [
                {"category": device.category.value, "status": device.status.value}
                for device in devices
            ]
        )
        frame["is_available"] = frame["status"] == DeviceStatus.AVAILABLE.value
        frame["is_rented"] = frame["status"].isin(
            [status.value for status in RENTED_DEVICE_STATUSES]
        )
        frame["is_maintenance"] = frame["status"].isin(
            [status.value for status in MAINTENANCE_DEVICE_STATUSES]
        )
        summary = (
            frame.groupby("category", sort=True)
            .agg(
                total=("status", "size"),
                available=("is_available", "sum"),
                rented=("is_rented", "sum"),
                maintenance=("is_maintenance", "sum"),
            )
            .reset_index()
        )
        summary["utilization_rate"] = np.where(
            summary["total"] > 0,
            summary["rented"] / summary["total"] * 100.0,
            0.0,
        )
        return [
            InventoryStatus(
                category=str(row.category),
                total_devices=int(row.total),
                available_devices=int(row.available),
                rented_devices=int(row.rented),
                maintenance_devices=int(row.maintenance),
                utilization_rate=float(row.utilization_rate),
            )
            for row in summary.itertuples(index=False)
        ]

    def get_overdue_reservations(self) -> list[Reservation]:
        today = self._clock().date().isoformat()
        return self._repository.list_overdue_reservations(
            today=today,
            active_statuses=ACTIVE_RESERVATION_STATUSES,
        )

    def load_window(self, store: AvailabilityWindowStore) -> None:
        """Fetch devices and reservations for the store's window and publish them.

        Fetch failures land in the store's error flag; the loading flag is
        always cleared on exit.
        """
        start_date = store.start_date
        end_date = store.end_date
        categories = list(store.selected_categories)
        store.set_loading(True)
        store.set_error(None)
        try:
            if not categories:
                store.set_devices([])
                store.set_time_slots(build_time_slots(start_date, end_date, []))
                return

            devices = self._list_devices(categories)
            device_tags = [device.tag_name for device in devices]
            store.set_devices(device_tags)

            known_tags = set(device_tags)
            selected = set(categories)
            reservations = [
                reservation
                for reservation in self._repository.list_reservations_overlapping(
                    start_date=start_date.isoformat(),
                    end_date=end_date.isoformat(),
                )
                if (
                    reservation.device_tag in known_tags
                    if reservation.device_tag
                    else reservation.device_category in selected
                )
            ]
            previewed = auto_assign_reservations(
                reservations,
                devices,
                now=self._clock(),
                policy=self._policy,
            )
            store.set_time_slots(build_time_slots(start_date, end_date, previewed))
            logger.info(
                "Window loaded | start=%s | end=%s | devices=%s | reservations=%s",
                start_date.isoformat(),
                end_date.isoformat(),
                len(device_tags),
                len(previewed),
            )
        except RepositoryError as exc:
            logger.exception("Window load failed")
            store.set_error(str(exc))
        finally:
            store.set_loading(False)

    def extend_window(
        self,
        store: AvailabilityWindowStore,
        *,
        direction: str,
        days: int,
    ) -> date:
        """Widen the window in one direction and reload the exposed range."""
        if days <= 0:
            raise InventoryValidationError("days must be > 0")
        if days > self._settings.window_max_extension_days:
            raise InventoryValidationError(
                f"days must be <= {self._settings.window_max_extension_days}"
            )
        if direction == "past":
            bound = store.extend_past_days(days)
        elif direction == "future":
            bound = store.extend_future_days(days)
        else:
            raise InventoryValidationError("direction must be 'past' or 'future'")
        self.load_window(store)
        return bound

    def update_filters(
        self,
        store: AvailabilityWindowStore,
        *,
        search_term: Optional[str] = None,
        selected_categories: Optional[Sequence[DeviceCategory]] = None,
    ) -> None:
        """Apply filters; only a category change triggers a refetch."""
        if search_term is not None:
            store.set_search_term(search_term)
        if selected_categories is not None:
            store.set_selected_categories(selected_categories)
            self.load_window(store)
