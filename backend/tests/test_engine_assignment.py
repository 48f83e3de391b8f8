import threading
import time

import pytest

from weekgrid.core.exceptions import InputValidationError, ResourceNotFoundError
from weekgrid.schemas.conflict import PlanFamily
from weekgrid.schemas.timetable import CellType
from weekgrid.services import engine as engine_module
from weekgrid.services.schedule_store import Slot

PE_TEACHER = {"id": "pe", "name": "박체육", "subject": "체육", "classes": [1, 2]}


@pytest.fixture()
def pe_engine(make_blank_engine, place):
    engine = make_blank_engine(teachers=[PE_TEACHER], class_count=2)
    place(engine, "1반", 0, 0, "pe")
    return engine


def test_assign_resolves_specialist_from_registry(blank_engine):
    slot = Slot(blank_engine.week_names[0], "1반", 1, 1)
    outcome = blank_engine.assign_subject(slot, "체육")

    assert outcome.committed
    assert outcome.cell.type == CellType.special
    assert outcome.cell.teacher_id == "t1"
    assert blank_engine.store.cell(slot) == outcome.cell
    assert blank_engine.history.change_log[-1].type == "assign"


def test_assign_with_force_homeroom_skips_specialist(blank_engine):
    slot = Slot(blank_engine.week_names[0], "1반", 1, 1)
    outcome = blank_engine.assign_subject(slot, "체육", force_homeroom=True)

    assert outcome.cell.type == CellType.homeroom
    assert outcome.cell.teacher_id is None


def test_assign_empty_and_holiday_subjects(blank_engine):
    week = blank_engine.week_names[0]

    assert blank_engine.assign_subject(Slot(week, "1반", 0, 0), "").cell.type == CellType.empty
    assert blank_engine.assign_subject(Slot(week, "1반", 0, 1), "휴업일").cell.type == CellType.holiday


def test_assign_rejects_bad_input_without_committing(blank_engine):
    week = blank_engine.week_names[0]
    before = blank_engine.store

    with pytest.raises(InputValidationError):
        blank_engine.assign_subject(Slot(week, "1반", 0, 0), "천문학")
    with pytest.raises(InputValidationError):
        blank_engine.assign_subject(Slot(week, "1반", 0, 0), "체육", teacher_id="t2")
    with pytest.raises(ResourceNotFoundError):
        blank_engine.assign_subject(Slot(week, "13반", 0, 0), "국어")
    with pytest.raises(ResourceNotFoundError):
        blank_engine.assign_subject(Slot("not a week", "1반", 0, 0), "국어")

    assert blank_engine.store is before
    assert not blank_engine.history.can_undo


def test_conflicting_assignment_returns_ranked_plans(pe_engine, settings):
    slot = Slot(pe_engine.week_names[0], "2반", 0, 0)
    before = pe_engine.store
    outcome = pe_engine.assign_subject(slot, "체육")

    assert not outcome.committed
    assert outcome.conflicting_classes == ["1반"]
    assert pe_engine.store is before

    plans = outcome.plans
    assert len(plans) == settings.plan_limit
    assert [plan.id for plan in plans] == [f"plan-{rank}" for rank in range(1, len(plans) + 1)]
    assert [plan.score for plan in plans] == sorted(plan.score for plan in plans)
    assert sum(plan.family == PlanFamily.forced for plan in plans) == 1
    assert plans[0].family == PlanFamily.relocate_new
    assert plans[0].score == 16
    assert plans[-1].family == PlanFamily.forced
    assert plans[-1].remaining_overlaps == 1


def test_applying_best_plan_leaves_no_double_booking(pe_engine):
    week = pe_engine.week_names[0]
    outcome = pe_engine.assign_subject(Slot(week, "2반", 0, 0), "체육")
    result = pe_engine.apply_plan(outcome.plans[0].id)

    assert result.ok
    assert result.week_keys == [week]
    assert pe_engine.detect_conflicts(week).conflicts == []
    assert pe_engine.history.can_undo


def test_applying_forced_plan_flags_the_cell(pe_engine):
    week = pe_engine.week_names[0]
    outcome = pe_engine.assign_subject(Slot(week, "2반", 0, 0), "체육")
    forced = next(plan for plan in outcome.plans if plan.family == PlanFamily.forced)
    pe_engine.apply_plan(forced.id)

    cell = pe_engine.store.get(week, "2반", 0, 0)
    assert cell.forced_conflict
    report = pe_engine.detect_conflicts(week)
    assert report.forced_count == 1
    assert report.conflicts[0].classes == ["1반", "2반"]


def test_blocker_relocation_plan_moves_the_other_lesson(pe_engine):
    week = pe_engine.week_names[0]
    outcome = pe_engine.assign_subject(Slot(week, "2반", 0, 0), "체육")
    from_blocker = [plan for plan in outcome.plans if plan.family == PlanFamily.relocate_blocker]

    # Relocating a blocker costs two operations, so it ranks behind moving the new lesson.
    assert all(plan.score > outcome.plans[0].score for plan in from_blocker)


def test_plans_go_stale_after_any_engine_change(pe_engine):
    week = pe_engine.week_names[0]
    outcome = pe_engine.assign_subject(Slot(week, "2반", 0, 0), "체육")
    pe_engine.add_teacher(name="김음악", subject="음악", classes=[1])

    with pytest.raises(InputValidationError):
        pe_engine.apply_plan(outcome.plans[0].id)


def test_plans_are_discarded_by_a_commit(pe_engine):
    week = pe_engine.week_names[0]
    outcome = pe_engine.assign_subject(Slot(week, "2반", 0, 0), "체육")
    pe_engine.assign_subject(Slot(week, "2반", 3, 3), "국어")

    assert pe_engine.pending_plans == []
    with pytest.raises(ResourceNotFoundError):
        pe_engine.apply_plan(outcome.plans[0].id)


def test_set_location_updates_cell_and_rejects_holidays(blank_engine):
    week = blank_engine.week_names[0]
    updated = blank_engine.set_location(Slot(week, "1반", 0, 0), " 도서관 ")

    assert updated.location == "도서관"
    blank_engine.apply_holiday(week, [1])
    with pytest.raises(InputValidationError):
        blank_engine.set_location(Slot(week, "1반", 0, 1), "강당")


def test_concurrent_assignments_cannot_double_book(make_blank_engine, monkeypatch):
    engine = make_blank_engine(teachers=[PE_TEACHER], class_count=2)
    week = engine.week_names[0]
    real_find_overlaps = engine_module.find_overlaps

    def slow_find_overlaps(*args, **kwargs):
        found = real_find_overlaps(*args, **kwargs)
        # Widen the gap between the overlap check and the commit.
        time.sleep(0.05)
        return found

    monkeypatch.setattr(engine_module, "find_overlaps", slow_find_overlaps)
    start = threading.Barrier(2)
    outcomes = {}

    def assign(class_name):
        start.wait()
        outcomes[class_name] = engine.assign_subject(Slot(week, class_name, 0, 0), "체육")

    threads = [threading.Thread(target=assign, args=(label,)) for label in ("1반", "2반")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert sorted(outcome.committed for outcome in outcomes.values()) == [False, True]
    assert engine.detect_conflicts(week).conflicts == []
    assert [entry.type for entry in engine.history.change_log] == ["assign"]
