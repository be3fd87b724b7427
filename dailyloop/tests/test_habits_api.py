"""HTTP contract for habit catalog and profile timezone endpoints."""

USER = {"X-User-Id": "user-api"}


def test_create_list_update_delete(api_client):
    resp = api_client.post("/v1/habits", headers=USER, json={"name": "Stretch", "timing": "AM"})
    assert resp.status_code == 200, resp.text
    habit = resp.json()["data"]
    assert habit["timing"] == "AM"

    api_client.post("/v1/habits", headers=USER, json={"name": "Floss", "timing": "PM"})
    names = [h["name"] for h in api_client.get("/v1/habits", headers=USER).json()["data"]]
    assert names == ["Stretch", "Floss"]

    resp = api_client.patch(f"/v1/habits/{habit['id']}", headers=USER, json={"timing": "ANYTIME"})
    assert resp.json()["data"]["timing"] == "ANYTIME"

    assert api_client.delete(f"/v1/habits/{habit['id']}", headers=USER).json()["success"] is True
    resp = api_client.delete(f"/v1/habits/{habit['id']}", headers=USER)
    assert resp.status_code == 404


def test_invalid_timing_rejected(api_client):
    resp = api_client.post("/v1/habits", headers=USER, json={"name": "Nap", "timing": "NOON"})
    assert resp.status_code == 422


def test_reorder_endpoint(api_client):
    ids = [
        api_client.post("/v1/habits", headers=USER, json={"name": name, "timing": "AM"}).json()["data"]["id"]
        for name in ("A", "B")
    ]
    resp = api_client.put("/v1/habits/order", headers=USER, json={"ordered_ids": list(reversed(ids))})
    assert [h["name"] for h in resp.json()["data"]] == ["B", "A"]


def test_timezone_endpoints(api_client):
    assert api_client.get("/v1/profile/timezone", headers=USER).json()["timezone"] == "UTC"
    resp = api_client.put("/v1/profile/timezone", headers=USER, json={"timezone": "Europe/Paris"})
    assert resp.json()["timezone"] == "Europe/Paris"

    resp = api_client.put("/v1/profile/timezone", headers=USER, json={"timezone": "Moon/Base"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"
