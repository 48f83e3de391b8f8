from __future__ import annotations

from collections import deque
import logging
from typing import Deque

from weekgrid.schemas.timetable import ChangeLogEntry, OperationResult
from weekgrid.services.schedule_store import ScheduleStore

logger = logging.getLogger(__name__)


class HistoryManager:
    """Single commit path for schedule mutations with bounded undo/redo and change log."""

    def __init__(
        self,
        current: ScheduleStore,
        *,
        undo_limit: int = 50,
        log_limit: int = 200,
        change_log: list[ChangeLogEntry] | None = None,
    ) -> None:
        self._current = current
        self._undo: Deque[ScheduleStore] = deque(maxlen=undo_limit)
        self._redo: Deque[ScheduleStore] = deque(maxlen=undo_limit)
        self._log: Deque[ChangeLogEntry] = deque(change_log or [], maxlen=log_limit)

    @property
    def current(self) -> ScheduleStore:
        return self._current

    @property
    def change_log(self) -> list[ChangeLogEntry]:
        return list(self._log)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def commit(self, next_schedule: ScheduleStore, entry: ChangeLogEntry) -> None:
        # deque(maxlen) evicts the oldest snapshot once the cap is reached.
        self._undo.append(self._current.clone())
        self._redo.clear()
        self._current = next_schedule
        self._log.append(entry)
        logger.debug("Committed %s: %s", entry.type, entry.summary)

    def undo(self, *, actor: str | None = None) -> OperationResult:
        if not self._undo:
            return OperationResult(ok=False, message="Nothing to undo")
        previous = self._undo.pop()
        self._redo.append(self._current)
        self._current = previous
        self._log.append(ChangeLogEntry(type="undo", summary="Undid the last change", actor=actor))
        return OperationResult(ok=True, message="Undid the last change", affected=1)

    def redo(self, *, actor: str | None = None) -> OperationResult:
        if not self._redo:
            return OperationResult(ok=False, message="Nothing to redo")
        following = self._redo.pop()
        self._undo.append(self._current)
        self._current = following
        self._log.append(ChangeLogEntry(type="redo", summary="Redid the last undone change", actor=actor))
        return OperationResult(ok=True, message="Redid the last undone change", affected=1)

    def record(self, entry: ChangeLogEntry) -> None:
        """Append a change log entry for an edit that has no schedule snapshot (e.g. teacher config)."""
        self._log.append(entry)

    def reset(self, current: ScheduleStore, entry: ChangeLogEntry | None = None) -> None:
        """Replace the schedule without an undo point, e.g. after the grid shape changed."""
        self._current = current
        self._undo.clear()
        self._redo.clear()
        if entry is not None:
            self._log.append(entry)

    def replace_log(self, entries: list[ChangeLogEntry]) -> None:
        self._log.clear()
        self._log.extend(entries)
