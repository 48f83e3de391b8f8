from __future__ import annotations

from enum import Enum
import logging
import threading
from typing import Any, Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from weekgrid.core.exceptions import SyncError
from weekgrid.models.timetable_state import TimetableState
from weekgrid.services.engine import TimetableEngine

logger = logging.getLogger(__name__)

RemoteCallback = Callable[[dict[str, Any], "str | None"], None]


class SyncStatus(str, Enum):
    local = "local"
    connecting = "connecting"
    connected = "connected"
    remote_applied = "remote_applied"
    degraded = "degraded"


class SnapshotStore(Protocol):
    def load(self) -> dict[str, Any] | None: ...

    def save(self, payload: dict[str, Any], actor: str | None) -> None: ...

    def subscribe(self, callback: RemoteCallback) -> Callable[[], None]: ...


class DatabaseSnapshotStore:
    """Single-row JSON document store; subscribers are notified after every successful save."""

    def __init__(self, session_factory: Callable[[], Session], row_id: str = "main") -> None:
        self.session_factory = session_factory
        self.row_id = row_id
        self._subscribers: list[RemoteCallback] = []
        self._lock = threading.Lock()

    def load(self) -> dict[str, Any] | None:
        try:
            with self.session_factory() as db:
                record = db.get(TimetableState, self.row_id)
                return dict(record.payload) if record is not None else None
        except SQLAlchemyError as exc:
            raise SyncError("Could not load the shared timetable", details={"error": str(exc)}) from exc

    def save(self, payload: dict[str, Any], actor: str | None) -> None:
        try:
            with self.session_factory() as db:
                record = db.get(TimetableState, self.row_id)
                if record is None:
                    record = TimetableState(id=self.row_id, payload=payload, updated_by=actor)
                    db.add(record)
                else:
                    record.payload = payload
                    record.updated_by = actor
                db.commit()
        except SQLAlchemyError as exc:
            raise SyncError("Could not save the shared timetable", details={"error": str(exc)}) from exc

        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(payload, actor)

    def subscribe(self, callback: RemoteCallback) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe


class SyncCoordinator:
    """Keeps one engine in step with a shared snapshot store.

    Local changes are serialized immediately but written after a debounce
    window; remote snapshots replace local state wholesale. While a remote
    snapshot is being applied, the resulting change notification is not
    written back.
    """

    def __init__(
        self,
        engine: TimetableEngine,
        store: SnapshotStore,
        *,
        debounce_seconds: float = 1.2,
        timer_factory: Callable[[float, Callable[[], None]], Any] = threading.Timer,
    ) -> None:
        self.engine = engine
        self.store = store
        self.debounce_seconds = debounce_seconds
        self.timer_factory = timer_factory
        self.status = SyncStatus.local
        self.last_error: str | None = None

        self._lock = threading.RLock()
        self._applying_remote = False
        self._pending: dict[str, Any] | None = None
        self._timer: Any = None
        self._unsubscribe: Callable[[], None] | None = None
        self._remove_listener: Callable[[], None] | None = None

    @property
    def has_pending_save(self) -> bool:
        return self._pending is not None

    def start(self) -> SyncStatus:
        self.status = SyncStatus.connecting
        try:
            payload = self.store.load()
        except SyncError as exc:
            self._degrade(exc)
            payload = None

        if self.status == SyncStatus.degraded:
            # Keep working locally; the next successful save reconnects.
            self.engine.capture_baseline()
        elif payload is not None:
            self._apply_remote(payload)
        else:
            self.engine.capture_baseline()
            logger.info("No shared timetable found; publishing the local one")
            self._pending = self.engine.to_snapshot()
            self.flush()

        self._unsubscribe = self.store.subscribe(self._on_remote)
        self._remove_listener = self.engine.add_listener(self._on_local_change)
        if self.status != SyncStatus.degraded:
            self.status = SyncStatus.connected
        return self.status

    def stop(self) -> None:
        self.flush()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None

    def flush(self) -> bool:
        """Write the pending snapshot now; returns whether a save happened."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            payload, self._pending = self._pending, None
        if payload is None:
            return False
        try:
            self.store.save(payload, self.engine.actor_id)
        except SyncError as exc:
            with self._lock:
                # Keep the snapshot for the next attempt unless a newer edit replaced it.
                if self._pending is None:
                    self._pending = payload
            self._degrade(exc)
            return False
        if self.status == SyncStatus.degraded:
            self.status = SyncStatus.connected
            self.last_error = None
        return True

    def _on_local_change(self, engine: TimetableEngine) -> None:
        if self._applying_remote:
            return
        with self._lock:
            self._pending = engine.to_snapshot()
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self.timer_factory(self.debounce_seconds, self.flush)
            if hasattr(self._timer, "daemon"):
                self._timer.daemon = True
            self._timer.start()

    def _on_remote(self, payload: dict[str, Any], actor: str | None) -> None:
        if actor is not None and actor == self.engine.actor_id:
            return
        self._apply_remote(payload)

    def _apply_remote(self, payload: dict[str, Any]) -> None:
        # Engine lock first: engine mutations notify listeners while holding it.
        with self.engine.lock, self._lock:
            # Remote state wins over an unsaved local edit.
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if self._pending is not None:
                logger.warning("Discarding unsaved local changes in favour of the shared timetable")
            self._pending = None
            self._applying_remote = True
            try:
                report = self.engine.load_snapshot(payload)
            finally:
                self._applying_remote = False
        self.status = SyncStatus.remote_applied
        logger.info(
            "Applied shared timetable (repaired cells=%d, fallback fields=%s)",
            report.repaired_cells,
            report.fallback_fields,
        )

    def _degrade(self, exc: SyncError) -> None:
        self.status = SyncStatus.degraded
        self.last_error = exc.message
        logger.warning("Timetable sync degraded: %s", exc.message)
