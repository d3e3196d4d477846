from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime

import pytest

from rentalops.domain.constraints import DEFAULT_SCORING_POLICY
from rentalops.domain.models import Device, DeviceCategory, DeviceStatus, Reservation
from rentalops.repository.data_repository import (
    AssignmentConflictError,
    DataRepository,
    RepositoryError,
)
from rentalops.services.availability_window import AvailabilityWindowStore
from rentalops.services.inventory_service import (
    DeviceNotFoundError,
    InventoryService,
    InventoryValidationError,
    ReservationNotFoundError,
    ReservationStateError,
    auto_assign_reservations,
)
from rentalops.utils.config import get_settings


NOW = datetime(2026, 3, 10, 12, 0)


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(base, database_path=tmp_path / filename)


def _build_service(tmp_path, filename: str = "inventory.db") -> tuple[InventoryService, DataRepository]:
    settings = _build_test_settings(tmp_path, filename)
    repository = DataRepository(settings)
    repository.initialize_database()
    service = InventoryService(repository=repository, settings=settings, clock=lambda: NOW)
    return service, repository


def _seed_gp13_fleet(repository: DataRepository) -> None:
    for tag in ("GP13-01", "GP13-02", "GP13-03"):
        repository.create_device(tag_name=tag, category="GP13")
    repository.create_reservation(
        renter_name="Recent",
        device_category="GP13",
        pickup_date="2026-03-01",
        return_date="2026-03-05",
        status="completed",
        device_tag="GP13-01",
    )
    repository.create_reservation(
        renter_name="Rested",
        device_category="GP13",
        pickup_date="2026-01-01",
        return_date="2026-01-03",
        status="completed",
        device_tag="GP13-02",
    )


def test_allocation_prefers_unused_then_rested_devices(tmp_path):
    service, repository = _build_service(tmp_path)
    _seed_gp13_fleet(repository)
    first_id = repository.create_reservation(
        renter_name="Kim",
        device_category="GP13",
        pickup_date="2026-03-20",
        return_date="2026-03-22",
        status="confirmed",
    )
    second_id = repository.create_reservation(
        renter_name="Lee",
        device_category="GP13",
        pickup_date="2026-03-25",
        return_date="2026-03-27",
        status="confirmed",
    )

    first = service.allocate_device(first_id)
    second = service.allocate_device(second_id)

    assert first.success is True
    assert first.device_tag == "GP13-03"
    assert second.success is True
    assert second.device_tag == "GP13-02"
    assert repository.get_reservation(first_id).device_tag == "GP13-03"
    reserved = repository.get_device_by_tag("GP13-03")
    assert reserved.status == DeviceStatus.RESERVED
    assert reserved.assigned_reservation_id == first_id
    assert repository.count_assignment_logs() == 2


def test_allocation_without_free_device_reports_failure(tmp_path):
    service, repository = _build_service(tmp_path)
    repository.create_device(tag_name="GP13-01", category="GP13")
    repository.create_device(tag_name="GP13-02", category="GP13", status="maintenance")
    repository.create_reservation(
        renter_name="Holder",
        device_category="GP13",
        pickup_date="2026-03-19",
        return_date="2026-03-21",
        status="confirmed",
        device_tag="GP13-01",
    )
    reservation_id = repository.create_reservation(
        renter_name="Late",
        device_category="GP13",
        pickup_date="2026-03-20",
        return_date="2026-03-22",
        status="confirmed",
    )

    allocation = service.allocate_device(reservation_id)

    assert allocation.success is False
    assert allocation.device_tag is None
    assert allocation.error_message == "No device is available for the requested period"
    assert repository.get_reservation(reservation_id).device_tag is None
    assert repository.count_assignment_logs() == 0


def test_allocation_rejects_unknown_and_closed_reservations(tmp_path):
    service, repository = _build_service(tmp_path)
    repository.create_device(tag_name="GP13-01", category="GP13")
    cancelled_id = repository.create_reservation(
        renter_name="Gone",
        device_category="GP13",
        pickup_date="2026-03-20",
        return_date="2026-03-21",
        status="cancelled",
    )
    tagged_id = repository.create_reservation(
        renter_name="Done",
        device_category="GP13",
        pickup_date="2026-03-20",
        return_date="2026-03-21",
        status="confirmed",
        device_tag="GP13-01",
    )

    with pytest.raises(ReservationNotFoundError):
        service.allocate_device(9999)
    with pytest.raises(ReservationStateError):
        service.allocate_device(cancelled_id)
    with pytest.raises(ReservationStateError):
        service.allocate_device(tagged_id)


def test_release_and_return_put_device_back_in_pool(tmp_path):
    service, repository = _build_service(tmp_path)
    _seed_gp13_fleet(repository)
    first_id = repository.create_reservation(
        renter_name="Kim",
        device_category="GP13",
        pickup_date="2026-03-20",
        return_date="2026-03-22",
        status="confirmed",
    )
    second_id = repository.create_reservation(
        renter_name="Lee",
        device_category="GP13",
        pickup_date="2026-04-20",
        return_date="2026-04-22",
        status="confirmed",
    )
    service.allocate_device(first_id)
    second = service.allocate_device(second_id)

    assert service.release_device(first_id) == 1
    assert service.release_device(first_id) == 0
    assert repository.get_device_by_tag("GP13-03").status == DeviceStatus.AVAILABLE

    service.complete_return(second.device_tag)
    returned = repository.get_device_by_tag(second.device_tag)
    assert returned.status == DeviceStatus.AVAILABLE
    assert returned.assigned_reservation_id is None

    with pytest.raises(DeviceNotFoundError):
        service.complete_return("NOPE-99")
    with pytest.raises(ReservationNotFoundError):
        service.release_device(9999)


def test_release_clears_reservation_tag_so_device_can_be_reassigned(tmp_path):
    service, repository = _build_service(tmp_path)
    repository.create_device(tag_name="GP13-01", category="GP13")
    first_id = repository.create_reservation(
        renter_name="Kim",
        device_category="GP13",
        pickup_date="2026-03-20",
        return_date="2026-03-22",
        status="confirmed",
    )
    overlapping_id = repository.create_reservation(
        renter_name="Lee",
        device_category="GP13",
        pickup_date="2026-03-21",
        return_date="2026-03-23",
        status="confirmed",
    )

    assert service.allocate_device(first_id).device_tag == "GP13-01"
    assert service.release_device(first_id) == 1
    assert repository.get_reservation(first_id).device_tag is None

    again = service.allocate_device(first_id)
    assert again.success is True
    assert again.device_tag == "GP13-01"

    service.release_device(first_id)
    handed_over = service.allocate_device(overlapping_id)
    assert handed_over.success is True
    assert handed_over.device_tag == "GP13-01"
    assert repository.get_reservation(first_id).device_tag is None


def test_assign_device_rejects_stale_device_or_reservation(tmp_path):
    _, repository = _build_service(tmp_path)
    reserved_id = repository.create_device(tag_name="GP13-01", category="GP13", status="reserved")
    free_id = repository.create_device(tag_name="GP13-02", category="GP13")
    reservation_id = repository.create_reservation(
        renter_name="Kim",
        device_category="GP13",
        pickup_date="2026-03-20",
        return_date="2026-03-22",
        status="confirmed",
    )
    tagged_id = repository.create_reservation(
        renter_name="Lee",
        device_category="GP13",
        pickup_date="2026-03-25",
        return_date="2026-03-27",
        status="confirmed",
        device_tag="GP13-09",
    )

    with pytest.raises(AssignmentConflictError):
        repository.assign_device(reservation_id, reserved_id, "GP13-01")
    assert repository.get_reservation(reservation_id).device_tag is None

    with pytest.raises(AssignmentConflictError):
        repository.assign_device(tagged_id, free_id, "GP13-02")
    untouched = repository.get_device_by_tag("GP13-02")
    assert untouched.status == DeviceStatus.AVAILABLE
    assert untouched.assigned_reservation_id is None
    assert repository.get_reservation(tagged_id).device_tag == "GP13-09"
    assert repository.count_assignment_logs() == 0


def test_check_availability_reports_conflicts_and_status(tmp_path):
    service, repository = _build_service(tmp_path)
    repository.create_device(tag_name="GP13-01", category="GP13")
    repository.create_device(tag_name="GP13-02", category="GP13")
    repository.create_device(tag_name="GP13-03", category="GP13", status="under_repair")
    holder_id = repository.create_reservation(
        renter_name="Holder",
        device_category="GP13",
        pickup_date="2026-03-18",
        return_date="2026-03-20",
        status="confirmed",
        device_tag="GP13-01",
    )

    rows = {
        row.device_tag: row
        for row in service.check_availability(
            category=DeviceCategory.GP13,
            pickup_date=date(2026, 3, 20),
            return_date=date(2026, 3, 22),
        )
    }

    assert rows["GP13-01"].is_available is False
    assert rows["GP13-01"].conflicting_reservation_ids == [holder_id]
    assert rows["GP13-02"].is_available is True
    assert rows["GP13-03"].is_available is False

    excluded = service.check_availability(
        category=DeviceCategory.GP13,
        pickup_date=date(2026, 3, 20),
        return_date=date(2026, 3, 22),
        exclude_reservation_id=holder_id,
    )
    assert excluded[0].is_available is True

    with pytest.raises(InventoryValidationError):
        service.check_availability(
            category=DeviceCategory.GP13,
            pickup_date=date(2026, 3, 22),
            return_date=date(2026, 3, 20),
        )


def test_inventory_status_groups_devices_by_category(tmp_path):
    service, repository = _build_service(tmp_path)
    repository.create_device(tag_name="GP13-01", category="GP13")
    repository.create_device(tag_name="GP13-02", category="GP13", status="reserved")
    repository.create_device(tag_name="GP13-03", category="GP13", status="maintenance")
    repository.create_device(tag_name="GP13-04", category="GP13", status="rented")
    repository.create_device(tag_name="S24-01", category="S24")

    rows = service.get_inventory_status()

    assert [row.category for row in rows] == ["GP13", "S24"]
    gp13 = rows[0]
    assert gp13.total_devices == 4
    assert gp13.available_devices == 1
    assert gp13.rented_devices == 2
    assert gp13.maintenance_devices == 1
    assert gp13.utilization_rate == pytest.approx(50.0)
    assert rows[1].utilization_rate == 0.0

    only_s24 = service.get_inventory_status(DeviceCategory.S24)
    assert [row.category for row in only_s24] == ["S24"]
    assert service.get_inventory_status(DeviceCategory.PS5) == []


def test_overdue_reservations_include_late_active_ones(tmp_path):
    service, repository = _build_service(tmp_path)
    late_id = repository.create_reservation(
        renter_name="Late",
        device_category="GP13",
        pickup_date="2026-03-05",
        return_date="2026-03-08",
        status="confirmed",
    )
    flagged_id = repository.create_reservation(
        renter_name="Flagged",
        device_category="S24",
        pickup_date="2026-03-15",
        return_date="2026-03-20",
        status="overdue",
    )
    repository.create_reservation(
        renter_name="Done",
        device_category="GP13",
        pickup_date="2026-02-25",
        return_date="2026-03-01",
        status="completed",
    )
    repository.create_reservation(
        renter_name="DueToday",
        device_category="GP13",
        pickup_date="2026-03-07",
        return_date="2026-03-10",
        status="in_progress",
    )

    overdue = service.get_overdue_reservations()

    assert [reservation.reservation_id for reservation in overdue] == [late_id, flagged_id]


def _seed_window(repository: DataRepository) -> dict[str, int]:
    repository.create_device(tag_name="GP13-01", category="GP13")
    repository.create_device(tag_name="GP13-02", category="GP13")
    repository.create_device(tag_name="S24-01", category="S24")
    ids = {}
    ids["untagged"] = repository.create_reservation(
        renter_name="Untagged",
        device_category="GP13",
        pickup_date="2026-03-10",
        return_date="2026-03-11",
        status="confirmed",
    )
    ids["tagged"] = repository.create_reservation(
        renter_name="Tagged",
        device_category="GP13",
        pickup_date="2026-03-11",
        return_date="2026-03-12",
        status="confirmed",
        device_tag="GP13-01",
    )
    ids["phone"] = repository.create_reservation(
        renter_name="Phone",
        device_category="S24",
        pickup_date="2026-03-12",
        return_date="2026-03-12",
        status="pending",
    )
    ids["later"] = repository.create_reservation(
        renter_name="Later",
        device_category="GP13",
        pickup_date="2026-03-20",
        return_date="2026-03-21",
        status="confirmed",
    )
    return ids


def test_load_window_fills_slots_with_previewed_assignments(tmp_path):
    service, repository = _build_service(tmp_path)
    ids = _seed_window(repository)
    store = AvailabilityWindowStore(today=date(2026, 3, 10), default_days=3)

    service.load_window(store)

    assert store.loading is False
    assert store.error is None
    assert store.devices == ["GP13-01", "GP13-02", "S24-01"]
    assert [slot.date for slot in store.time_slots] == [
        date(2026, 3, 10),
        date(2026, 3, 11),
        date(2026, 3, 12),
    ]
    first_day = store.time_slots[0].reservations
    assert [r.reservation_id for r in first_day] == [ids["untagged"]]
    assert first_day[0].device_tag == "GP13-02"
    assert [r.device_tag for r in store.time_slots[1].reservations] == ["GP13-01"]
    assert [r.device_tag for r in store.time_slots[2].reservations] == ["S24-01"]
    assert repository.get_reservation(ids["untagged"]).device_tag is None


def test_load_window_respects_selected_categories(tmp_path):
    service, repository = _build_service(tmp_path)
    _seed_window(repository)
    store = AvailabilityWindowStore(today=date(2026, 3, 10), default_days=3)

    service.update_filters(store, selected_categories=[DeviceCategory.GP13])

    assert store.devices == ["GP13-01", "GP13-02"]
    assert store.time_slots[2].reservations == ()

    service.update_filters(store, selected_categories=[])
    assert store.devices == []
    assert len(store.time_slots) == 3
    assert all(slot.reservations == () for slot in store.time_slots)


def test_search_filter_update_does_not_refetch(tmp_path, monkeypatch):
    service, repository = _build_service(tmp_path)
    _seed_window(repository)
    store = AvailabilityWindowStore(today=date(2026, 3, 10), default_days=3)
    service.load_window(store)

    def fail_fetch(**kwargs):
        raise AssertionError("search must not refetch")

    monkeypatch.setattr(repository, "list_reservations_overlapping", fail_fetch)
    service.update_filters(store, search_term="gp13")

    assert store.get_filtered_devices() == ["GP13-01", "GP13-02"]


def test_load_window_failure_sets_error_and_clears_loading(tmp_path):
    settings = _build_test_settings(tmp_path, "uninitialized.db")
    repository = DataRepository(settings)
    service = InventoryService(repository=repository, settings=settings, clock=lambda: NOW)
    store = AvailabilityWindowStore(today=date(2026, 3, 10), default_days=3)

    service.load_window(store)

    assert store.loading is False
    assert store.error is not None
    assert "no such table" in store.error
    with pytest.raises(RepositoryError):
        repository.list_reservations_overlapping(
            start_date="2026-03-10",
            end_date="2026-03-13",
        )


def test_extend_window_reloads_wider_range(tmp_path):
    service, repository = _build_service(tmp_path)
    _seed_window(repository)
    store = AvailabilityWindowStore(today=date(2026, 3, 10), default_days=3)
    service.load_window(store)

    bound = service.extend_window(store, direction="future", days=8)

    assert bound == date(2026, 3, 21)
    assert len(store.time_slots) == 11
    later_slot = store.time_slots[10]
    assert later_slot.date == date(2026, 3, 20)
    assert len(later_slot.reservations) == 1

    assert service.extend_window(store, direction="past", days=2) == date(2026, 3, 8)
    assert store.time_slots[0].date == date(2026, 3, 8)

    with pytest.raises(InventoryValidationError):
        service.extend_window(store, direction="past", days=0)
    with pytest.raises(InventoryValidationError):
        service.extend_window(store, direction="sideways", days=1)
    with pytest.raises(InventoryValidationError):
        service.extend_window(store, direction="future", days=91)


def test_auto_assign_keeps_earlier_picks_as_conflicts():
    reservations = [
        Reservation(
            reservation_id=index,
            renter_name=f"Renter {index}",
            device_category=DeviceCategory.POCKET3,
            pickup_date=date(2026, 3, 12),
            return_date=date(2026, 3, 13),
        )
        for index in (1, 2, 3)
    ]
    devices = [
        Device(device_id=1, tag_name="POCKET3-01", category=DeviceCategory.POCKET3),
        Device(device_id=2, tag_name="POCKET3-02", category=DeviceCategory.POCKET3),
    ]

    assigned = auto_assign_reservations(
        reservations,
        devices,
        now=NOW,
        policy=DEFAULT_SCORING_POLICY,
    )

    assert [r.device_tag for r in assigned] == ["POCKET3-01", "POCKET3-02", None]
    assert [r.reservation_id for r in assigned] == [1, 2, 3]
    assert reservations[0].device_tag is None
