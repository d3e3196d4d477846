#!/usr/bin/env python3
"""Smoke-check a RentalOps install against a throwaway database.

Exit status is 0 when every check passes, 1 otherwise.
"""

from __future__ import annotations

import importlib
import sqlite3
import sys
import tempfile
from dataclasses import replace
from datetime import date, timedelta
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Callable

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from rentalops.repository.data_repository import DataRepository, RepositoryError
from rentalops.services.availability_window import AvailabilityWindowStore
from rentalops.services.inventory_service import InventoryError, InventoryService
from rentalops.utils.config import Settings, get_settings

SEPARATOR_LINE = "=" * 44
REQUIRED_DISTRIBUTIONS = (
    ("fastapi", "fastapi"),
    ("uvicorn", "uvicorn"),
    ("pydantic", "pydantic"),
    ("numpy", "numpy"),
    ("pandas", "pandas"),
    ("httpx", "httpx"),
    ("pytest", "pytest"),
)
WINDOW_DAYS = 7


class CheckFailed(Exception):
    pass


def check_python() -> str:
    found = sys.version.split()[0]
    if sys.version_info < (3, 10):
        raise CheckFailed(f"Python >= 3.10 required, found {found}")
    return f"Python {found}"


def check_packages() -> str:
    problems = []
    for module_name, dist_name in REQUIRED_DISTRIBUTIONS:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except (ImportError, PackageNotFoundError) as exc:
            problems.append(f"{module_name} ({exc})")
    if problems:
        raise CheckFailed("missing/unimportable -> " + "; ".join(problems))
    return f"{len(REQUIRED_DISTRIBUTIONS)} packages importable"


def check_seeded_fleet(settings: Settings, repository: DataRepository) -> str:
    repository.initialize_database()
    repository.seed_synthetic_data()
    expected = len(settings.synthetic_categories) * settings.synthetic_devices_per_category
    devices = repository.list_devices()
    if len(devices) != expected:
        raise CheckFailed(f"expected {expected} devices, got {len(devices)}")
    return f"schema + {len(devices)} seeded devices"


def check_window_load(service: InventoryService) -> str:
    store = AvailabilityWindowStore(default_days=WINDOW_DAYS)
    service.load_window(store)
    if store.error is not None:
        raise CheckFailed(store.error)
    if len(store.time_slots) != WINDOW_DAYS:
        raise CheckFailed(f"expected {WINDOW_DAYS} slots, got {len(store.time_slots)}")
    booked = sum(len(slot.reservations) for slot in store.time_slots)
    return f"{WINDOW_DAYS}-day window, {len(store.devices)} devices, {booked} reservations"


def check_assignment(
    settings: Settings,
    repository: DataRepository,
    service: InventoryService,
) -> str:
    pickup = date.today() + timedelta(days=365)
    reservation_id = repository.create_reservation(
        renter_name="Validation Renter",
        device_category=settings.synthetic_categories[0],
        pickup_date=pickup.isoformat(),
        return_date=(pickup + timedelta(days=2)).isoformat(),
        status="confirmed",
    )
    allocation = service.allocate_device(reservation_id)
    if not allocation.success:
        raise CheckFailed(allocation.error_message or "no device assigned")
    return f"reservation {reservation_id} -> {allocation.device_tag}"


def _run(name: str, check: Callable[[], str]) -> tuple[bool, str]:
    try:
        return True, f"[PASS] {name}: {check()}"
    except (CheckFailed, InventoryError, RepositoryError, sqlite3.Error) as exc:
        return False, f"[FAIL] {name}: {exc}"


def main() -> int:
    with tempfile.TemporaryDirectory(prefix="rentalops-env-") as temp_dir:
        settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "rentalops_validation.db",
        )
        repository = DataRepository(settings)
        service = InventoryService(repository=repository, settings=settings)
        outcomes = [
            _run("Interpreter", check_python),
            _run("Packages", check_packages),
            _run("Database", lambda: check_seeded_fleet(settings, repository)),
            _run("Window load", lambda: check_window_load(service)),
            _run("Assignment", lambda: check_assignment(settings, repository, service)),
        ]

    print(SEPARATOR_LINE)
    print(" RentalOps Environment Validation")
    print(SEPARATOR_LINE)
    for _, line in outcomes:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all(ok for ok, _ in outcomes):
        print(" All checks passed.")
        return 0
    print(" One or more checks failed.")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
