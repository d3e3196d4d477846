"""Hands out one availability window store per UI session."""

from __future__ import annotations

from threading import RLock
from typing import Callable, Optional
from uuid import uuid4

from rentalops.services.availability_window import AvailabilityWindowStore
from rentalops.utils.config import Settings, get_settings
from rentalops.utils.logger import get_logger


logger = get_logger(__name__)


class SessionNotFoundError(LookupError):
    """Raised when a session id has no live window store."""


class WindowSessionRegistry:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        store_factory: Optional[Callable[[], AvailabilityWindowStore]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store_factory = store_factory or (
            lambda: AvailabilityWindowStore(default_days=self._settings.window_default_days)
        )
        self._stores: dict[str, AvailabilityWindowStore] = {}
        self._lock = RLock()

    def open_session(self) -> tuple[str, AvailabilityWindowStore]:
        session_id = uuid4().hex
        store = self._store_factory()
        with self._lock:
            self._stores[session_id] = store
        logger.info("Window session opened | session_id=%s", session_id)
        return session_id, store

    def get(self, session_id: str) -> AvailabilityWindowStore:
        with self._lock:
            store = self._stores.get(session_id)
        if store is None:
            raise SessionNotFoundError(f"Window session {session_id} not found")
        return store

    def close_session(self, session_id: str) -> None:
        with self._lock:
            removed = self._stores.pop(session_id, None)
        if removed is None:
            raise SessionNotFoundError(f"Window session {session_id} not found")
        logger.info("Window session closed | session_id=%s", session_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._stores)
