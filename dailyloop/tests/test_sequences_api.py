"""HTTP contract for the Startup/Shutdown sequence endpoints."""

from datetime import datetime, timezone

from dailyloop.models.habit import HabitTiming

USER = {"X-User-Id": "user-api"}


def _start(client, sequence):
    resp = client.post(f"/v1/sequences/{sequence}/start", headers=USER)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


def test_requires_user_header(api_client):
    resp = api_client.post("/v1/sequences/startup/start")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "http_error"


def test_unknown_sequence_is_rejected(api_client):
    resp = api_client.post("/v1/sequences/lunch/start", headers=USER)
    assert resp.status_code == 422


def test_get_without_run_is_not_found(api_client):
    resp = api_client.get("/v1/sequences/shutdown", headers=USER)
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_startup_flow_over_http(api_client, catalog):
    catalog.set_user_timezone("user-api", "America/New_York")
    stretch = catalog.create_habit("user-api", "Stretch", HabitTiming.MORNING)
    catalog.create_habit("user-api", "Floss", HabitTiming.EVENING)

    view = _start(api_client, "startup")
    assert view["local_date"] == "2025-03-09"
    assert view["step"] == "prev-evening-rating"
    assert view["step_count"] == 5

    for body in ({"prev_evening_rating": 4}, {"sleep_rating": 3}, {"morning_rating": 5}, {"feeling_morning": "ok"}):
        resp = api_client.post("/v1/sequences/startup/next", headers=USER, json=body)
        assert resp.status_code == 200, resp.text

    view = resp.json()["data"]
    assert view["step"] == "am-habits"
    assert [item["name"] for item in view["habits"]] == ["Stretch"]

    resp = api_client.post(f"/v1/sequences/startup/habits/{stretch.id}", headers=USER, json={"status": "deferred"})
    assert resp.status_code == 200
    assert resp.json()["data"]["habits"][0]["status"] == "deferred"
    assert resp.json()["notices"] == []

    resp = api_client.post("/v1/sequences/startup/next", headers=USER)
    body = resp.json()
    assert resp.status_code == 200, resp.text
    assert body["status"] == "submitted"
    assert body["record"]["sleep_rating"] == 3
    assert body["record"]["deferred_from_morning"] == [stretch.id]

    # Run is released once finished
    assert api_client.get("/v1/sequences/startup", headers=USER).status_code == 404


def test_shutdown_confirmation_gate(api_client, catalog, clock):
    catalog.set_user_timezone("user-api", "America/New_York")
    stretch = catalog.create_habit("user-api", "Stretch", HabitTiming.MORNING)

    _start(api_client, "startup")
    for _ in range(4):
        api_client.post("/v1/sequences/startup/next", headers=USER)
    api_client.post(f"/v1/sequences/startup/habits/{stretch.id}", headers=USER, json={"status": "deferred"})
    assert api_client.post("/v1/sequences/startup/next", headers=USER).json()["status"] == "submitted"

    clock.set(datetime(2025, 3, 10, 1, 0, tzinfo=timezone.utc))
    view = _start(api_client, "shutdown")
    assert view["step"] == "confirm-deferred-morning"
    assert view["can_advance"] is False
    assert view["confirmations"] == [{"habit_id": stretch.id, "name": "Stretch", "completed": None}]

    resp = api_client.post("/v1/sequences/shutdown/next", headers=USER)
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "unconfirmed_habits"
    assert resp.json()["error"]["habit_ids"] == [stretch.id]

    resp = api_client.post(f"/v1/sequences/shutdown/confirmations/{stretch.id}", headers=USER, json={"completed": True})
    assert resp.status_code == 200
    assert resp.json()["accepted"] is True
    assert resp.json()["data"]["can_advance"] is True

    resp = api_client.post("/v1/sequences/shutdown/next", headers=USER)
    assert resp.json()["data"]["step"] == "day-rating"


def test_foreign_field_and_bad_rating(api_client):
    _start(api_client, "shutdown")
    resp = api_client.post("/v1/sequences/shutdown/next", headers=USER, json={"sleep_rating": 3})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"

    resp = api_client.post("/v1/sequences/shutdown/next", headers=USER, json={"day_rating": 9})
    assert resp.status_code == 422


def test_back_from_first_step_exits(api_client):
    _start(api_client, "startup")
    resp = api_client.post("/v1/sequences/startup/back", headers=USER)
    assert resp.status_code == 200
    assert resp.json()["status"] == "exited"
    assert "record" not in resp.json()


def test_habit_action_outside_habit_step_conflicts(api_client, catalog):
    stretch = catalog.create_habit("user-api", "Stretch", HabitTiming.MORNING)
    _start(api_client, "startup")
    resp = api_client.post(f"/v1/sequences/startup/habits/{stretch.id}", headers=USER, json={"status": "done"})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "conflict"
