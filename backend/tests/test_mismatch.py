from weekgrid.schemas.timetable import Cell, CellType
from weekgrid.services.mismatch import MismatchClassifier


def _classify(engine, class_name, period, day, week=None):
    week = week or engine.week_names[0]
    classifier = engine.classifier()
    cell = engine.store.get(week, class_name, period, day)
    return classifier.is_mismatched(week, class_name, period, day, cell)


def test_baseline_mode_flags_only_changed_specialist_slots(blank_engine, place):
    assert not blank_engine.classifier().templates_configured
    assert not _classify(blank_engine, "1반", 0, 0)

    place(blank_engine, "1반", 0, 0, "t7")

    assert _classify(blank_engine, "1반", 0, 0)
    assert not _classify(blank_engine, "1반", 0, 1)


def test_baseline_mode_accepts_homeroom_flex_lesson_for_same_subject(blank_engine, place):
    place(blank_engine, "1반", 0, 0, "t1")
    blank_engine.baseline = blank_engine.store.clone()
    week = blank_engine.week_names[0]
    classifier = blank_engine.classifier()

    homeroom_pe = Cell(id="1반-0-0", subject="체육", type=CellType.homeroom)
    homeroom_music = Cell(id="1반-0-0", subject="음악", type=CellType.homeroom)
    holiday = Cell(id="1반-0-0", subject="휴업일", type=CellType.holiday)

    assert not classifier.is_mismatched(week, "1반", 0, 0, homeroom_pe)
    assert classifier.is_mismatched(week, "1반", 0, 0, homeroom_music)
    assert classifier.is_mismatched(week, "1반", 0, 0, holiday)


def test_without_baseline_nothing_is_mismatched(blank_engine, place):
    blank_engine.baseline = None
    place(blank_engine, "1반", 0, 0, "t7")

    assert not _classify(blank_engine, "1반", 0, 0)


def test_template_mode_compares_against_expected_teacher(blank_engine, place):
    blank_engine.set_template_cell("t1", 0, 0, "1반")
    assert blank_engine.classifier().templates_configured

    # Expected specialist missing: homeroom lesson in its place.
    assert _classify(blank_engine, "1반", 0, 0)

    place(blank_engine, "1반", 0, 0, "t1")
    assert not _classify(blank_engine, "1반", 0, 0)

    # A specialist where no template expects one.
    place(blank_engine, "2반", 1, 1, "t7")
    assert _classify(blank_engine, "2반", 1, 1)

    # Baseline differences no longer matter once templates exist.
    assert not _classify(blank_engine, "3반", 4, 4)


def test_template_mode_checks_location(blank_engine, place):
    blank_engine.set_template_cell("t1", 0, 0, "1반")
    blank_engine.set_template_location("t1", 0, 0, "운동장")
    place(blank_engine, "1반", 0, 0, "t1")

    assert _classify(blank_engine, "1반", 0, 0)


def test_template_mode_exempts_holidays_and_flex_homeroom(blank_engine):
    blank_engine.set_template_cell("t1", 0, 0, "1반")
    week = blank_engine.week_names[0]
    classifier = MismatchClassifier(blank_engine.registry, blank_engine.class_labels, blank_engine.baseline)

    assert not classifier.is_mismatched(week, "1반", 0, 0, Cell(subject="체육", type=CellType.homeroom))
    assert not classifier.is_mismatched(week, "1반", 0, 0, Cell(subject="휴업일", type=CellType.holiday))


def test_template_authoring_conflict_is_always_mismatched(blank_engine, place, caplog):
    blank_engine.set_template_cell("t1", 2, 2, "1반")
    blank_engine.set_template_cell("t5", 2, 2, "1반")
    place(blank_engine, "1반", 2, 2, "t1")

    with caplog.at_level("WARNING"):
        assert _classify(blank_engine, "1반", 2, 2)
    assert "Template authoring conflict" in caplog.text


def test_template_mode_still_tracks_original_placement(blank_engine, place):
    place(blank_engine, "1반", 0, 0, "t7")
    blank_engine.baseline = blank_engine.store.clone()
    blank_engine.set_template_cell("t1", 2, 2, "1반")
    week = blank_engine.week_names[0]
    classifier = blank_engine.classifier()
    assert classifier.templates_configured

    holiday = Cell(id="1반-0-0", subject="휴업일", type=CellType.holiday)
    homeroom_music = Cell(id="1반-0-0", subject="음악", type=CellType.homeroom)
    homeroom_pe = Cell(id="1반-0-0", subject="체육", type=CellType.homeroom)

    # The baseline held a music specialist here.
    assert classifier.is_mismatched(week, "1반", 0, 0, holiday)
    assert not classifier.is_mismatched(week, "1반", 0, 0, homeroom_music)
    assert classifier.is_mismatched(week, "1반", 0, 0, homeroom_pe)
    # No specialist in the baseline: both stay exempt.
    assert not classifier.is_mismatched(week, "1반", 1, 1, holiday)
    assert not classifier.is_mismatched(week, "1반", 1, 1, homeroom_pe)
