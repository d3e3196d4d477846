"""Repository layer responsible for all database access."""

from __future__ import annotations

import random
import sqlite3
from contextlib import contextmanager
from collections import defaultdict
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence

from rentalops.domain.models import (
    Device,
    DeviceCategory,
    DeviceStatus,
    HandoverMethod,
    Reservation,
    ReservationStatus,
    UsageInterval,
)
from rentalops.utils.config import Settings, get_settings
from rentalops.utils.logger import get_logger


logger = get_logger(__name__)


class RepositoryError(RuntimeError):
    """Raised when a persistence operation fails."""


class AssignmentConflictError(RepositoryError):
    """Raised when the device or reservation changed before the write landed."""


_RESERVATION_COLUMNS = """
    id,
    renter_name,
    renter_phone,
    device_category,
    device_tag,
    pickup_date,
    pickup_time,
    return_date,
    return_time,
    status,
    pickup_method,
    return_method
"""

_DEVICE_COLUMNS = "id, tag_name, category, status, priority, assigned_reservation_id"


def _row_to_reservation(row: sqlite3.Row) -> Reservation:
    return Reservation(
        reservation_id=int(row["id"]),
        renter_name=str(row["renter_name"]),
        renter_phone=str(row["renter_phone"]),
        device_category=DeviceCategory(row["device_category"]),
        device_tag=row["device_tag"],
        pickup_date=date.fromisoformat(row["pickup_date"]),
        pickup_time=str(row["pickup_time"]),
        return_date=date.fromisoformat(row["return_date"]),
        return_time=str(row["return_time"]),
        status=ReservationStatus(row["status"]),
        pickup_method=HandoverMethod(row["pickup_method"]),
        return_method=HandoverMethod(row["return_method"]),
    )


def _row_to_device(row: sqlite3.Row) -> Device:
    return Device(
        device_id=int(row["id"]),
        tag_name=str(row["tag_name"]),
        category=DeviceCategory(row["category"]),
        status=DeviceStatus(row["status"]),
        priority=None if row["priority"] is None else int(row["priority"]),
        assigned_reservation_id=(
            None
            if row["assigned_reservation_id"] is None
            else int(row["assigned_reservation_id"])
        ),
    )


def _placeholders(values: Sequence[object]) -> str:
    return ",".join("?" for _ in values)


def _db_value(value: object) -> object:
    if isinstance(value, Enum):
        return value.value
    return value


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def _session(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Yield a connection; sqlite3 failures surface as RepositoryError."""
        try:
            with self._connect() as conn:
                yield conn
        except sqlite3.Error as exc:
            raise RepositoryError(f"{operation} failed: {exc}") from exc

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Devices (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        tag_name TEXT NOT NULL UNIQUE,
                        category TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'available',
                        priority INTEGER,
                        assigned_reservation_id INTEGER,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS RentalReservations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        renter_name TEXT NOT NULL,
                        renter_phone TEXT NOT NULL DEFAULT '',
                        device_category TEXT NOT NULL,
                        device_tag TEXT,
                        pickup_date TEXT NOT NULL,
                        pickup_time TEXT NOT NULL DEFAULT '09:00',
                        return_date TEXT NOT NULL,
                        return_time TEXT NOT NULL DEFAULT '18:00',
                        status TEXT NOT NULL DEFAULT 'pending',
                        pickup_method TEXT NOT NULL DEFAULT 'direct',
                        return_method TEXT NOT NULL DEFAULT 'direct',
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        CHECK (return_date >= pickup_date)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS AssignmentLogs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        reservation_id INTEGER NOT NULL,
                        device_id INTEGER NOT NULL,
                        device_tag TEXT NOT NULL,
                        assigned_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (reservation_id) REFERENCES RentalReservations(id),
                        FOREIGN KEY (device_id) REFERENCES Devices(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_reservations_dates
                    ON RentalReservations(pickup_date, return_date);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_reservations_device_tag
                    ON RentalReservations(device_tag);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_devices_category_status
                    ON Devices(category, status);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RepositoryError(f"Database initialization failed: {exc}") from exc

    def seed_synthetic_data(self, today: Optional[date] = None) -> None:
        """Seed a deterministic device fleet and rental history when empty."""
        rng = random.Random(self._settings.synthetic_random_seed)
        anchor = today or datetime.now().date()
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute("SELECT COUNT(*) AS count FROM Devices;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Synthetic data already present; skipping seed")
                    return

                tags_by_category: dict[str, list[str]] = {}
                device_rows = []
                for category in self._settings.synthetic_categories:
                    tags = [
                        f"{category}-{index:02d}"
                        for index in range(1, self._settings.synthetic_devices_per_category + 1)
                    ]
                    tags_by_category[category] = tags
                    device_rows.extend(
                        (tag, category, DeviceStatus.AVAILABLE.value, position)
                        for position, tag in enumerate(tags, start=1)
                    )
                cursor.executemany(
                    """
                    INSERT INTO Devices (tag_name, category, status, priority)
                    VALUES (?, ?, ?, ?);
                    """,
                    device_rows,
                )

                reservation_rows = []
                first_day = anchor - timedelta(days=self._settings.synthetic_reservation_days)
                for offset in range(self._settings.synthetic_reservation_days + 7):
                    pickup = first_day + timedelta(days=offset)
                    for index in range(self._settings.synthetic_reservations_per_day):
                        category = rng.choice(self._settings.synthetic_categories)
                        returned = pickup + timedelta(days=rng.randint(1, 4))
                        if returned < anchor:
                            status = ReservationStatus.COMPLETED.value
                            device_tag = rng.choice(tags_by_category[category])
                        else:
                            status = ReservationStatus.CONFIRMED.value
                            device_tag = None
                        reservation_rows.append(
                            (
                                f"Renter {offset:03d}-{index}",
                                category,
                                device_tag,
                                pickup.isoformat(),
                                returned.isoformat(),
                                status,
                            )
                        )
                cursor.executemany(
                    """
                    INSERT INTO RentalReservations (
                        renter_name,
                        device_category,
                        device_tag,
                        pickup_date,
                        return_date,
                        status
                    )
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    reservation_rows,
                )
                conn.commit()
            logger.info(
                "Synthetic seed completed | devices=%s | reservations=%s",
                len(device_rows),
                len(reservation_rows),
            )
        except sqlite3.Error as exc:
            raise RepositoryError(f"Synthetic data seeding failed: {exc}") from exc

    def create_device(
        self,
        tag_name: str,
        category: str,
        status: str = DeviceStatus.AVAILABLE.value,
        priority: Optional[int] = None,
    ) -> int:
        """Insert device row and return the created id."""
        with self._session("Device insert") as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Devices (tag_name, category, status, priority)
                VALUES (?, ?, ?, ?);
                """,
                (tag_name, _db_value(category), _db_value(status), priority),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def create_reservation(
        self,
        renter_name: str,
        device_category: str,
        pickup_date: str,
        return_date: str,
        status: str = ReservationStatus.PENDING.value,
        device_tag: Optional[str] = None,
        pickup_method: str = HandoverMethod.DIRECT.value,
        return_method: str = HandoverMethod.DIRECT.value,
    ) -> int:
        """Insert reservation row and return the created id."""
        with self._session("Reservation insert") as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO RentalReservations (
                    renter_name,
                    device_category,
                    device_tag,
                    pickup_date,
                    return_date,
                    status,
                    pickup_method,
                    return_method
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    renter_name,
                    _db_value(device_category),
                    device_tag,
                    pickup_date,
                    return_date,
                    _db_value(status),
                    _db_value(pickup_method),
                    _db_value(return_method),
                ),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        with self._session("Reservation lookup") as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {_RESERVATION_COLUMNS} FROM RentalReservations WHERE id = ?;",
                (reservation_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_reservation(row)

    def get_device_by_tag(self, tag_name: str) -> Optional[Device]:
        with self._session("Device lookup") as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {_DEVICE_COLUMNS} FROM Devices WHERE tag_name = ?;",
                (tag_name,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_device(row)

    def list_devices(
        self,
        categories: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[str]] = None,
    ) -> list[Device]:
        """Return devices ordered by priority (nulls last), then creation order."""
        clauses: list[str] = []
        params: list[object] = []
        if categories is not None:
            if not categories:
                return []
            clauses.append(f"category IN ({_placeholders(categories)})")
            params.extend(_db_value(category) for category in categories)
        if statuses is not None:
            if not statuses:
                return []
            clauses.append(f"status IN ({_placeholders(statuses)})")
            params.extend(_db_value(status) for status in statuses)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._session("Device listing") as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_DEVICE_COLUMNS}
                FROM Devices
                {where}
                ORDER BY priority IS NULL ASC, priority ASC, id ASC;
                """,
                tuple(params),
            )
            return [_row_to_device(row) for row in cursor.fetchall()]

    def list_reservations_overlapping(
        self,
        start_date: str,
        end_date: str,
    ) -> list[Reservation]:
        """Return reservations touching the half-open window [start_date, end_date)."""
        with self._session("Window reservation query") as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_RESERVATION_COLUMNS}
                FROM RentalReservations
                WHERE pickup_date < ?
                  AND return_date >= ?
                ORDER BY pickup_date ASC, pickup_time ASC, id ASC;
                """,
                (end_date, start_date),
            )
            return [_row_to_reservation(row) for row in cursor.fetchall()]

    def list_conflicting_reservations(
        self,
        device_category: str,
        pickup_date: str,
        return_date: str,
        exclude_reservation_id: Optional[int] = None,
    ) -> list[Reservation]:
        """Return live reservations of a category overlapping [pickup, return]."""
        params: list[object] = [
            _db_value(device_category),
            ReservationStatus.CANCELLED.value,
            ReservationStatus.COMPLETED.value,
            return_date,
            pickup_date,
        ]
        exclusion = ""
        if exclude_reservation_id is not None:
            exclusion = "AND id != ?"
            params.append(exclude_reservation_id)
        with self._session("Conflict query") as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_RESERVATION_COLUMNS}
                FROM RentalReservations
                WHERE device_category = ?
                  AND status NOT IN (?, ?)
                  AND pickup_date <= ?
                  AND return_date >= ?
                  {exclusion}
                ORDER BY id ASC;
                """,
                tuple(params),
            )
            return [_row_to_reservation(row) for row in cursor.fetchall()]

    def get_usage_ledger(
        self,
        device_tags: Optional[Sequence[str]] = None,
        exclude_reservation_id: Optional[int] = None,
    ) -> dict[str, list[UsageInterval]]:
        """Build tag -> usage intervals from non-cancelled tagged reservations."""
        clauses = ["device_tag IS NOT NULL", "status != ?"]
        params: list[object] = [ReservationStatus.CANCELLED.value]
        if device_tags is not None:
            if not device_tags:
                return {}
            clauses.append(f"device_tag IN ({_placeholders(device_tags)})")
            params.extend(device_tags)
        if exclude_reservation_id is not None:
            clauses.append("id != ?")
            params.append(exclude_reservation_id)
        with self._session("Usage ledger query") as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT device_tag, pickup_date, return_date
                FROM RentalReservations
                WHERE {' AND '.join(clauses)}
                ORDER BY pickup_date ASC, id ASC;
                """,
                tuple(params),
            )
            ledger: dict[str, list[UsageInterval]] = defaultdict(list)
            for row in cursor.fetchall():
                ledger[str(row["device_tag"])].append(
                    UsageInterval(
                        pickup_date=date.fromisoformat(row["pickup_date"]),
                        return_date=date.fromisoformat(row["return_date"]),
                    )
                )
            return dict(ledger)

    def assign_device(
        self,
        reservation_id: int,
        device_id: int,
        device_tag: str,
    ) -> None:
        """Reserve the device and tag the reservation in one transaction."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    UPDATE Devices
                    SET status = ?,
                        assigned_reservation_id = ?,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE id = ?
                      AND status = ?;
                    """,
                    (
                        DeviceStatus.RESERVED.value,
                        reservation_id,
                        device_id,
                        DeviceStatus.AVAILABLE.value,
                    ),
                )
                if cursor.rowcount != 1:
                    raise AssignmentConflictError(
                        f"Device {device_id} is no longer available"
                    )
                cursor.execute(
                    """
                    UPDATE RentalReservations
                    SET device_tag = ?,
                        updated_at = CURRENT_TIMESTAMP
                    WHERE id = ?
                      AND device_tag IS NULL;
                    """,
                    (device_tag, reservation_id),
                )
                if cursor.rowcount != 1:
                    raise AssignmentConflictError(
                        f"Reservation {reservation_id} already holds a device"
                    )
                cursor.execute(
                    """
                    INSERT INTO AssignmentLogs (reservation_id, device_id, device_tag)
                    VALUES (?, ?, ?);
                    """,
                    (reservation_id, device_id, device_tag),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise RepositoryError(f"Device assignment failed: {exc}") from exc

    def release_devices_for_reservation(self, reservation_id: int) -> int:
        """Free the reservation's devices and clear its device tag in one transaction.

        Returns the number of devices put back in the available pool.
        """
        with self._session("Device release") as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE Devices
                SET status = ?,
                    assigned_reservation_id = NULL,
                    updated_at = CURRENT_TIMESTAMP
                WHERE assigned_reservation_id = ?;
                """,
                (DeviceStatus.AVAILABLE.value, reservation_id),
            )
            released = int(cursor.rowcount)
            cursor.execute(
                """
                UPDATE RentalReservations
                SET device_tag = NULL,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ?;
                """,
                (reservation_id,),
            )
            conn.commit()
            return released

    def mark_device_returned(self, tag_name: str) -> bool:
        with self._session("Device return") as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE Devices
                SET status = ?,
                    assigned_reservation_id = NULL,
                    updated_at = CURRENT_TIMESTAMP
                WHERE tag_name = ?;
                """,
                (DeviceStatus.AVAILABLE.value, tag_name),
            )
            conn.commit()
            return cursor.rowcount == 1

    def list_overdue_reservations(
        self,
        today: str,
        active_statuses: Iterable[str],
    ) -> list[Reservation]:
        """Return explicitly overdue reservations and active ones past return."""
        statuses = [_db_value(status) for status in active_statuses]
        with self._session("Overdue query") as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_RESERVATION_COLUMNS}
                FROM RentalReservations
                WHERE status = ?
                   OR (status IN ({_placeholders(statuses)}) AND return_date < ?)
                ORDER BY return_date ASC, id ASC;
                """,
                (ReservationStatus.OVERDUE.value, *statuses, today),
            )
            return [_row_to_reservation(row) for row in cursor.fetchall()]

    def count_assignment_logs(self) -> int:
        with self._session("Assignment log count") as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM AssignmentLogs;")
            return int(cursor.fetchone()["count"])
