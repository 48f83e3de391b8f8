import random

import pytest

from weekgrid.core.exceptions import SyncError
from weekgrid.services.engine import TimetableEngine
from weekgrid.services.sync import DatabaseSnapshotStore, SyncCoordinator, SyncStatus


class ManualTimer:
    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


class FailingStore:
    def load(self):
        raise SyncError("database offline")

    def save(self, payload, actor):
        raise SyncError("database offline")

    def subscribe(self, callback):
        return lambda: None


class FlakyStore:
    """Fails the first save, then keeps whatever it is given."""

    def __init__(self):
        self.failures = 1
        self.saved = []

    def load(self):
        return None

    def save(self, payload, actor):
        if self.failures:
            self.failures -= 1
            raise SyncError("database offline")
        self.saved.append(payload)

    def subscribe(self, callback):
        return lambda: None


@pytest.fixture()
def snapshot_store(session_factory):
    return DatabaseSnapshotStore(session_factory)


@pytest.fixture()
def timers():
    return []


def _engine(settings, actor, seed):
    return TimetableEngine(settings=settings, rng=random.Random(seed), actor_id=actor, capture_baseline=False)


def _coordinator(engine, store, timers):
    def factory(interval, function):
        timer = ManualTimer(interval, function)
        timers.append(timer)
        return timer

    return SyncCoordinator(engine, store, debounce_seconds=1.2, timer_factory=factory)


def test_first_client_seeds_the_store(settings, snapshot_store, timers):
    engine = _engine(settings, "client-a", 1)
    coordinator = _coordinator(engine, snapshot_store, timers)

    assert coordinator.start() == SyncStatus.connected
    assert snapshot_store.load() == engine.to_snapshot()
    assert engine.baseline == engine.store


def test_second_client_adopts_shared_state(settings, snapshot_store, timers):
    first = _engine(settings, "client-a", 1)
    second = _engine(settings, "client-b", 2)
    _coordinator(first, snapshot_store, timers).start()
    _coordinator(second, snapshot_store, timers).start()

    assert second.store == first.store
    assert second.baseline == first.store


def test_local_edits_are_debounced_and_reach_other_clients(settings, snapshot_store, timers):
    first = _engine(settings, "client-a", 1)
    second = _engine(settings, "client-b", 2)
    first_sync = _coordinator(first, snapshot_store, timers)
    second_sync = _coordinator(second, snapshot_store, timers)
    first_sync.start()
    second_sync.start()
    week = first.week_names[0]

    first.apply_holiday(week, [0])
    first.apply_holiday(week, [1])

    assert first_sync.has_pending_save
    assert len(timers) == 2
    assert timers[0].cancelled
    assert second.store != first.store

    revision = first.revision
    timers[-1].fire()

    assert not first_sync.has_pending_save
    assert second.store == first.store
    assert second_sync.status == SyncStatus.remote_applied
    # The writer ignores its own echo.
    assert first.revision == revision
    # Applying a remote snapshot does not schedule a write-back.
    assert not second_sync.has_pending_save


def test_remote_snapshot_discards_unsaved_local_edit(settings, snapshot_store, timers):
    first = _engine(settings, "client-a", 1)
    second = _engine(settings, "client-b", 2)
    first_sync = _coordinator(first, snapshot_store, timers)
    second_sync = _coordinator(second, snapshot_store, timers)
    first_sync.start()
    second_sync.start()
    week = first.week_names[0]

    second.set_weekly_notice(week, "B의 공지")
    first.set_weekly_notice(week, "A의 공지")
    first_sync.flush()

    assert not second_sync.has_pending_save
    assert second.weekly_notices == {week: "A의 공지"}


def test_store_failure_degrades_without_losing_local_state(settings, timers):
    engine = _engine(settings, "client-a", 1)
    coordinator = _coordinator(engine, FailingStore(), timers)

    assert coordinator.start() == SyncStatus.degraded
    assert coordinator.last_error == "database offline"
    assert engine.baseline is not None

    engine.set_weekly_notice(engine.week_names[0], "공지")
    assert not coordinator.flush()
    assert coordinator.status == SyncStatus.degraded
    assert coordinator.has_pending_save


def test_stop_flushes_and_unsubscribes(settings, snapshot_store, timers):
    engine = _engine(settings, "client-a", 1)
    coordinator = _coordinator(engine, snapshot_store, timers)
    coordinator.start()
    week = engine.week_names[0]
    engine.set_weekly_notice(week, "마지막 공지")

    coordinator.stop()

    assert snapshot_store.load()["weeklyNotices"] == {week: "마지막 공지"}
    engine.set_weekly_notice(week, "after stop")
    assert not coordinator.has_pending_save


def test_failed_save_is_retried_on_next_flush(settings, timers):
    engine = _engine(settings, "client-a", 1)
    store = FlakyStore()
    coordinator = _coordinator(engine, store, timers)

    # Seeding the empty store is the failed first save.
    assert coordinator.start() == SyncStatus.degraded
    assert coordinator.has_pending_save

    assert coordinator.flush()
    assert coordinator.status == SyncStatus.connected
    assert coordinator.last_error is None
    assert store.saved == [engine.to_snapshot()]
    assert not coordinator.has_pending_save
