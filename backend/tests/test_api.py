def _week(client):
    response = client.get("/api/timetable/weeks")
    assert response.status_code == 200
    return response.json()[0]["name"]


def test_health_endpoints(client):
    assert client.get("/api/health").json() == {"status": "ok"}

    ready = client.get("/api/health/ready")
    assert ready.status_code == 200
    payload = ready.json()
    assert payload["database"]["ok"]
    assert payload["engine"]["classes"] == 12
    assert payload["sync"] == {"enabled": False, "status": "local"}


def test_weeks_and_grid(client):
    weeks = client.get("/api/timetable/weeks").json()
    assert weeks[0]["term"] == 1
    assert len(weeks[0]["days"]) == 5

    grid = client.get("/api/timetable/grid", params={"week": weeks[0]["name"], "className": "1반"})
    assert grid.status_code == 200
    cells = grid.json()
    assert len(cells) == 6 and len(cells[0]) == 5
    assert cells[0][0]["id"] == "1반-0-0"
    assert "teacherId" in cells[0][0]


def test_unknown_class_returns_not_found_message(client):
    response = client.get("/api/timetable/grid", params={"week": _week(client), "className": "99반"})

    assert response.status_code == 404
    assert response.json()["message"] == "Class with id 99반 not found"


def test_assign_conflict_and_apply_plan(client):
    week = _week(client)
    first = client.post(
        "/api/timetable/assign",
        json={"week": week, "className": "1반", "period": 0, "day": 0, "subject": "음악"},
    )
    assert first.status_code == 200
    assert first.json()["committed"]
    assert first.json()["cell"]["teacherId"] == "t7"

    second = client.post(
        "/api/timetable/assign",
        json={"week": week, "className": "2반", "period": 0, "day": 0, "subject": "음악"},
    )
    body = second.json()
    assert not body["committed"]
    assert body["conflictingClasses"] == ["1반"]
    assert body["plans"][-1]["family"] == "forced"

    pending = client.get("/api/conflicts/plans").json()
    assert [plan["id"] for plan in pending] == [plan["id"] for plan in body["plans"]]

    applied = client.post("/api/conflicts/apply", json={"planId": body["plans"][0]["id"]})
    assert applied.status_code == 200
    assert applied.json()["ok"]

    report = client.get("/api/conflicts/detect", params={"week": week}).json()
    assert report["conflicts"] == []

    stale = client.post("/api/conflicts/apply", json={"planId": body["plans"][0]["id"]})
    assert stale.status_code == 404


def test_swap_evaluate_and_force(client):
    week = _week(client)
    client.post(
        "/api/timetable/assign",
        json={"week": week, "className": "1반", "period": 0, "day": 0, "subject": "영어"},
    )
    swap = {
        "source": {"week": week, "className": "1반", "period": 0, "day": 0},
        "target": {"week": week, "className": "7반", "period": 0, "day": 1},
    }

    evaluation = client.post("/api/timetable/swap/evaluate", json=swap).json()
    assert evaluation["canSwap"] is False
    assert evaluation["blockReason"] == "teacher_class_mismatch"

    blocked = client.post("/api/timetable/swap", json=swap).json()
    assert not blocked["committed"]

    forced = client.post("/api/timetable/swap", json={**swap, "force": True}).json()
    assert forced["committed"] and forced["forced"]

    status = client.get("/api/timetable/status", params={"week": week, "className": "7반"}).json()
    assert status[0][1]["forcedConflict"] is True
    assert status[0][1]["mismatched"] is True


def test_swap_candidates_grid(client):
    week = _week(client)
    response = client.post(
        "/api/timetable/swap/candidates",
        json={"source": {"week": week, "className": "1반", "period": 0, "day": 0}, "week": week, "className": "2반"},
    )

    assert response.status_code == 200
    assert all(item["canSwap"] for row in response.json() for item in row)


def test_holiday_propagate_and_history(client):
    week = _week(client)
    holiday = client.post("/api/timetable/holidays", json={"week": week, "dayIndices": [0]})
    assert holiday.json()["affected"] == 12 * 6

    invalid = client.post("/api/timetable/holidays", json={"week": week, "dayIndices": [7]})
    assert invalid.status_code == 422

    propagated = client.post("/api/timetable/propagate", json={"week": week, "className": "1반"})
    assert propagated.json()["ok"]

    history = client.get("/api/timetable/history").json()
    assert history["canUndo"]
    assert history["changeLogs"][0]["type"] == "propagate"

    assert client.post("/api/timetable/undo").json()["ok"]
    assert client.post("/api/timetable/redo").json()["ok"]

    cleared = client.post("/api/timetable/holidays/clear", json={"week": week, "dayIndices": [0]})
    assert cleared.json()["ok"]


def test_teacher_crud_and_templates(client):
    created = client.post("/api/teachers/", json={"name": "정미술", "subject": "미술", "classes": [1, 2]})
    assert created.status_code == 201
    teacher_id = created.json()["id"]

    invalid = client.post("/api/teachers/", json={"name": "", "subject": "미술", "classes": [1]})
    assert invalid.status_code == 400
    assert invalid.json()["message"] == "Teacher name is required"

    template = client.put(
        f"/api/teachers/{teacher_id}/template",
        json={"period": 1, "day": 2, "className": "2반", "location": "미술실"},
    )
    assert template.status_code == 200
    assert template.json()[1][2] == {"className": "2반", "location": "미술실"}

    applied = client.post("/api/timetable/templates/apply", json={"weeks": [_week(client)]})
    assert applied.json()["ok"]
    grid = client.get("/api/timetable/grid", params={"week": _week(client), "className": "2반"}).json()
    assert grid[1][2]["teacherId"] == teacher_id
    assert grid[1][2]["location"] == "미술실"

    updated = client.put(f"/api/teachers/{teacher_id}", json={"name": "정미술", "subject": "미술", "classes": [1]})
    assert updated.json()["classes"] == [1]
    assert client.get(f"/api/teachers/{teacher_id}/template").json()[1][2]["className"] == ""

    assert client.delete(f"/api/teachers/{teacher_id}").status_code == 204
    assert client.get(f"/api/teachers/{teacher_id}").status_code == 404


def test_class_settings(client):
    response = client.put("/api/settings/classes", json={"classCount": 4})
    assert response.status_code == 200
    assert response.json()["classNames"] == ["1반", "2반", "3반", "4반"]

    too_many = client.put("/api/settings/classes", json={"classCount": 99})
    assert too_many.status_code == 400


def test_snapshot_publish_and_pull(client):
    week = _week(client)
    client.put("/api/timetable/notices", json={"week": week, "text": "체육대회"})

    missing = client.post("/api/timetable/pull")
    assert missing.status_code == 404

    assert client.post("/api/timetable/publish").json()["ok"]
    client.put("/api/timetable/notices", json={"week": week, "text": ""})
    assert client.get("/api/timetable/notices").json() == {}

    pulled = client.post("/api/timetable/pull")
    assert pulled.status_code == 200
    assert pulled.json()["repairedCells"] == 0
    assert client.get("/api/timetable/notices").json() == {week: "체육대회"}

    snapshot = client.get("/api/timetable/snapshot").json()
    assert snapshot["classCount"] == 12
    assert client.put("/api/timetable/snapshot", json=snapshot).status_code == 200


def test_summaries_and_sync_status(client):
    subjects = client.get("/api/timetable/summary/subjects").json()
    assert set(subjects) == {f"{number}반" for number in range(1, 13)}

    assert client.get("/api/timetable/summary/teachers").json()["t7"] == {}

    hours = client.put("/api/timetable/standard-hours", json={"subject": "국어", "hours": 408})
    assert hours.json()["국어"] == 408

    sync = client.get("/api/timetable/sync").json()
    assert sync["enabled"] is False
    assert sync["actor"] == "client-api"
