from conftest import api_data, api_error, start_session


def _names(items):
    return [(r["name"], r["order"]) for r in items]


def test_create_appends_after_existing_rounds(app_client, world):
    _app, client = app_client
    _admin_id, admin = world.admin()
    job = world.job()
    url = f"/api/v1/admin/jobs/{job}/rounds"

    res = client.post(url, json={"names": ["Aptitude", " ", "Technical"]}, headers=admin)
    assert res.status_code == 201
    assert _names(api_data(res)["items"]) == [("Aptitude", 1), ("Technical", 2)]

    res = client.post(url, json={"name": "HR"}, headers=admin)
    assert _names(api_data(res)["items"]) == [("HR", 3)]

    listing = api_data(client.get(url, headers=admin))
    assert listing["total"] == 3
    assert all(item["latestSession"] is None for item in listing["items"])


def test_create_validation(app_client, world):
    _app, client = app_client
    _admin_id, admin = world.admin()
    job = world.job()
    url = f"/api/v1/admin/jobs/{job}/rounds"

    assert client.post(url, json={"names": []}, headers=admin).status_code == 400
    assert client.post(url, json={"names": "Aptitude"}, headers=admin).status_code == 400
    assert client.post("/api/v1/admin/jobs/JOB-none/rounds", json={"names": ["A"]}, headers=admin).status_code == 404


def test_reorder_swaps_orders(app_client, world):
    _app, client = app_client
    _admin_id, admin = world.admin()
    job = world.job()
    r1, _r2, r3 = world.rounds(job, ["Aptitude", "Technical", "HR"])

    res = client.put(f"/api/v1/admin/jobs/{job}/rounds", json={"roundId": r1, "otherRoundId": r3}, headers=admin)
    assert _names(api_data(res)["items"]) == [("HR", 1), ("Technical", 2), ("Aptitude", 3)]

    same = client.put(f"/api/v1/admin/jobs/{job}/rounds", json={"roundId": r1, "otherRoundId": r1}, headers=admin)
    assert same.status_code == 400


def test_move_up_and_down(app_client, world):
    _app, client = app_client
    _admin_id, admin = world.admin()
    job = world.job()
    r1, r2 = world.rounds(job, ["Aptitude", "Technical"])
    url = f"/api/v1/admin/jobs/{job}/rounds"

    res = client.put(url, json={"action": "move", "roundId": r2, "direction": "up"}, headers=admin)
    assert _names(api_data(res)["items"]) == [("Technical", 1), ("Aptitude", 2)]

    edge = client.put(url, json={"roundId": r2, "direction": "up"}, headers=admin)
    assert edge.status_code == 400
    assert api_error(edge)["message"] == "Round is already first"

    edge = client.put(url, json={"roundId": r1, "direction": "down"}, headers=admin)
    assert api_error(edge)["message"] == "Round is already last"


def test_rename(app_client, world):
    _app, client = app_client
    _admin_id, admin = world.admin()
    job = world.job()
    (r1,) = world.rounds(job, ["Aptitude"])

    res = client.put(f"/api/v1/admin/jobs/{job}/rounds", json={"roundId": r1, "name": "Online Test"}, headers=admin)
    assert api_data(res)["name"] == "Online Test"

    bad = client.put(f"/api/v1/admin/jobs/{job}/rounds", json={"action": "explode", "roundId": r1}, headers=admin)
    assert bad.status_code == 400


def test_remove_compacts_orders(app_client, world):
    _app, client = app_client
    _admin_id, admin = world.admin()
    job = world.job()
    _r1, r2, _r3 = world.rounds(job, ["Aptitude", "Technical", "HR"])

    res = client.delete(f"/api/v1/admin/jobs/{job}/rounds?roundId={r2}", headers=admin)
    data = api_data(res)
    assert data["removed"] == r2
    assert _names(data["items"]) == [("Aptitude", 1), ("HR", 2)]

    again = client.delete(f"/api/v1/admin/jobs/{job}/rounds?roundId={r2}", headers=admin)
    assert again.status_code == 404


def test_remove_blocked_while_session_open(app_client, world):
    _app, client = app_client
    _admin_id, admin = world.admin()
    job = world.job()
    (r1,) = world.rounds(job, ["Aptitude"])
    sid = start_session(client, admin, job, r1)

    res = client.delete(f"/api/v1/admin/jobs/{job}/rounds?roundId={r1}", headers=admin)
    assert res.status_code == 409
    assert api_error(res)["details"]["sessionId"] == sid

    listing = api_data(client.get(f"/api/v1/admin/jobs/{job}/rounds", headers=admin))
    assert listing["items"][0]["latestSession"]["sessionId"] == sid

    client.put(f"/api/v1/admin/jobs/{job}/sessions", json={"sessionId": sid, "action": "PERM_CLOSE"}, headers=admin)
    assert client.delete(f"/api/v1/admin/jobs/{job}/rounds?roundId={r1}", headers=admin).status_code == 200
