from weekgrid.services.overlap import detect_double_bookings, find_overlaps


def test_find_overlaps_lists_other_classes_with_same_teacher(blank_engine, place):
    week = blank_engine.week_names[0]
    place(blank_engine, "1반", 0, 0, "t7")
    place(blank_engine, "3반", 0, 0, "t7")

    assert find_overlaps(blank_engine.store, week, "2반", 0, 0, "t7") == ["1반", "3반"]
    assert find_overlaps(blank_engine.store, week, "1반", 0, 0, "t7") == ["3반"]
    assert find_overlaps(blank_engine.store, week, "1반", 0, 0, "t7", also_exclude=["3반"]) == []


def test_find_overlaps_ignores_missing_teacher_and_unknown_week(blank_engine, place):
    place(blank_engine, "1반", 0, 0, "t7")

    assert find_overlaps(blank_engine.store, blank_engine.week_names[0], "2반", 0, 0, None) == []
    assert find_overlaps(blank_engine.store, "no such week", "2반", 0, 0, "t7") == []


def test_overlap_is_scoped_to_a_single_week(blank_engine, place):
    place(blank_engine, "1반", 0, 0, "t7", week=blank_engine.week_names[0])
    place(blank_engine, "2반", 0, 0, "t7", week=blank_engine.week_names[1])

    assert detect_double_bookings(blank_engine.store).conflicts == []


def test_detect_double_bookings_marks_forced_conflicts(blank_engine, place):
    week = blank_engine.week_names[0]
    place(blank_engine, "1반", 1, 2, "t7")
    place(blank_engine, "2반", 1, 2, "t7", forced=True)
    place(blank_engine, "4반", 3, 4, "t3")
    place(blank_engine, "5반", 3, 4, "t3")

    report = detect_double_bookings(blank_engine.store, week)

    assert len(report.conflicts) == 2
    assert report.forced_count == 1
    assert report.unforced_count == 1
    by_teacher = {conflict.teacher_id: conflict for conflict in report.conflicts}
    assert by_teacher["t7"].severity == "forced"
    assert by_teacher["t7"].classes == ["1반", "2반"]
    assert by_teacher["t3"].severity == "hard"
