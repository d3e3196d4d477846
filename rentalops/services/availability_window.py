"""Per-session scheduling window over reservations and device tags.

An `AvailabilityWindowStore` is owned by exactly one UI session. It holds the
visible date range, the device tags and time slots fetched for that range, and
the active search/category filters. It performs no I/O: the inventory service
populates it and flips the loading/error flags around each fetch.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence, Union

from rentalops.domain.models import (
    ALL_DEVICE_CATEGORIES,
    DeviceCategory,
    Reservation,
    TimeSlot,
)


DateLike = Union[date, datetime]


class WindowValidationError(ValueError):
    """Raised when a window operation would move a bound the wrong way."""


def start_of_day(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


@dataclass(frozen=True)
class AvailabilityWindowState:
    start_date: date
    end_date: date
    devices: tuple[str, ...]
    time_slots: tuple[TimeSlot, ...]
    search_term: str
    selected_categories: tuple[DeviceCategory, ...]
    loading: bool
    error: Optional[str]


class AvailabilityWindowStore:
    """Mutable window state for one session; not shared across sessions."""

    def __init__(
        self,
        today: Optional[DateLike] = None,
        default_days: int = 1,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if default_days <= 0:
            raise WindowValidationError("default_days must be > 0")
        anchor = start_of_day(today if today is not None else clock())
        self._start_date: date = anchor
        self._end_date: date = anchor + timedelta(days=default_days)
        self._devices: list[str] = []
        self._time_slots: list[TimeSlot] = []
        self._loading = False
        self._error: Optional[str] = None
        self._search_term = ""
        self._selected_categories: list[DeviceCategory] = list(ALL_DEVICE_CATEGORIES)

    @property
    def start_date(self) -> date:
        return self._start_date

    @property
    def end_date(self) -> date:
        return self._end_date

    @property
    def devices(self) -> list[str]:
        return self._devices

    @property
    def time_slots(self) -> list[TimeSlot]:
        return self._time_slots

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def search_term(self) -> str:
        return self._search_term

    @property
    def selected_categories(self) -> list[DeviceCategory]:
        return self._selected_categories

    def set_devices(self, devices: Sequence[str]) -> None:
        self._devices = list(devices)

    def set_time_slots(self, time_slots: Sequence[TimeSlot]) -> None:
        self._time_slots = list(time_slots)

    def set_loading(self, loading: bool) -> None:
        self._loading = bool(loading)

    def set_error(self, error: Optional[str]) -> None:
        self._error = error

    def set_search_term(self, search_term: str) -> None:
        self._search_term = search_term

    def set_selected_categories(self, categories: Iterable[DeviceCategory]) -> None:
        self._selected_categories = [DeviceCategory(category) for category in categories]

    def set_start_date(self, value: DateLike) -> None:
        candidate = start_of_day(value)
        if candidate >= self._end_date:
            raise WindowValidationError("start_date must be before end_date")
        self._start_date = candidate

    def set_end_date(self, value: DateLike) -> None:
        candidate = start_of_day(value)
        if candidate <= self._start_date:
            raise WindowValidationError("end_date must be after start_date")
        self._end_date = candidate

    def extend_past_days(self, days: int) -> date:
        """Move start_date back by `days` and return it; fetched slots are kept."""
        if days < 0:
            raise WindowValidationError("days must be >= 0")
        self._start_date = self._start_date - timedelta(days=days)
        return self._start_date

    def extend_future_days(self, days: int) -> date:
        """Move end_date forward by `days` and return it."""
        if days < 0:
            raise WindowValidationError("days must be >= 0")
        self._end_date = self._end_date + timedelta(days=days)
        return self._end_date

    def get_filtered_devices(self) -> list[str]:
        if not self._search_term:
            return self._devices
        term = self._search_term.lower()
        return [device for device in self._devices if term in device.lower()]

    def snapshot(self) -> AvailabilityWindowState:
        return AvailabilityWindowState(
            start_date=self._start_date,
            end_date=self._end_date,
            devices=tuple(self._devices),
            time_slots=tuple(self._time_slots),
            search_term=self._search_term,
            selected_categories=tuple(self._selected_categories),
            loading=self._loading,
            error=self._error,
        )


def build_time_slots(
    start_date: date,
    end_date: date,
    reservations: Iterable[Reservation],
) -> list[TimeSlot]:
    """Bucket reservations by pickup date into one slot per day of [start, end)."""
    day_count = (end_date - start_date).days
    buckets: dict[date, list[Reservation]] = {
        start_date + timedelta(days=offset): [] for offset in range(max(day_count, 0))
    }
    for reservation in reservations:
        bucket = buckets.get(reservation.pickup_date)
        if bucket is not None:
            bucket.append(reservation)
    return [
        TimeSlot(date=slot_date, reservations=tuple(buckets[slot_date]))
        for slot_date in sorted(buckets)
    ]
