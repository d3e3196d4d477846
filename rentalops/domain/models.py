"""Domain models for device reservations, usage history and allocation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Mapping, Optional, Sequence, Union


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    OVERDUE = "overdue"


class HandoverMethod(str, Enum):
    T1 = "T1"
    T2 = "T2"
    DELIVERY = "delivery"
    OFFICE = "office"
    DIRECT = "direct"


class DeviceStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    IN_USE = "in_use"
    MAINTENANCE = "maintenance"
    DAMAGED = "damaged"
    LOST = "lost"
    RENTED = "rented"
    PENDING_RETURN = "pending_return"
    UNDER_INSPECTION = "under_inspection"
    UNDER_REPAIR = "under_repair"


class DeviceCategory(str, Enum):
    GP13 = "GP13"
    GP12 = "GP12"
    GP11 = "GP11"
    GP8 = "GP8"
    POCKET3 = "POCKET3"
    ACTION5 = "ACTION5"
    S23 = "S23"
    S24 = "S24"
    PS5 = "PS5"
    GLAMPAM = "GLAMPAM"
    AIRWRAP = "AIRWRAP"
    AIRSTRAIGHT = "AIRSTRAIGHT"
    INSTA360 = "INSTA360"
    STROLLER = "STROLLER"
    WAGON = "WAGON"
    MINIEVO = "MINIEVO"
    ETC = "ETC"


ALL_DEVICE_CATEGORIES: tuple[DeviceCategory, ...] = tuple(DeviceCategory)

# Statuses counted as "out with a customer" in inventory statistics.
RENTED_DEVICE_STATUSES = frozenset(
    {
        DeviceStatus.RENTED,
        DeviceStatus.RESERVED,
        DeviceStatus.IN_USE,
        DeviceStatus.PENDING_RETURN,
    }
)
MAINTENANCE_DEVICE_STATUSES = frozenset(
    {
        DeviceStatus.MAINTENANCE,
        DeviceStatus.UNDER_INSPECTION,
        DeviceStatus.UNDER_REPAIR,
    }
)
ACTIVE_RESERVATION_STATUSES = frozenset(
    {
        ReservationStatus.CONFIRMED,
        ReservationStatus.IN_PROGRESS,
    }
)


@dataclass(frozen=True)
class Reservation:
    reservation_id: int
    renter_name: str
    device_category: DeviceCategory
    pickup_date: date
    return_date: date
    status: ReservationStatus = ReservationStatus.PENDING
    pickup_time: str = "09:00"
    return_time: str = "18:00"
    pickup_method: HandoverMethod = HandoverMethod.DIRECT
    return_method: HandoverMethod = HandoverMethod.DIRECT
    renter_phone: str = ""
    device_tag: Optional[str] = None


@dataclass(frozen=True)
class Device:
    device_id: int
    tag_name: str
    category: DeviceCategory
    status: DeviceStatus = DeviceStatus.AVAILABLE
    priority: Optional[int] = None
    assigned_reservation_id: Optional[int] = None


@dataclass(frozen=True)
class UsageInterval:
    pickup_date: date
    return_date: date


UtilizationLedger = Mapping[str, Sequence[UsageInterval]]


@dataclass(frozen=True)
class DeviceScore:
    device_tag: str
    utilization_rate: float
    maintenance_score: float
    total_score: float


@dataclass(frozen=True)
class Found:
    device_tag: str


@dataclass(frozen=True)
class NoCandidate:
    reason: str = "no candidate device"


NO_CANDIDATE = NoCandidate()

AssignmentResult = Union[Found, NoCandidate]


@dataclass(frozen=True)
class TimeSlot:
    date: date
    reservations: tuple[Reservation, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DeviceAvailability:
    device_id: int
    device_tag: str
    available_from: date
    available_until: date
    is_available: bool
    conflicting_reservation_ids: list[int]


@dataclass(frozen=True)
class DeviceAllocation:
    success: bool
    reservation_id: int
    device_id: Optional[int] = None
    device_tag: Optional[str] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class InventoryStatus:
    category: str
    total_devices: int
    available_devices: int
    rented_devices: int
    maintenance_devices: int
    utilization_rate: float
