import json

from conftest import api_data, api_error


def _scan(client, headers, qr, **extra):
    return client.post("/api/v1/attendance/scan", json={"qrData": qr, **extra}, headers=headers)


def test_bare_application_id_records_once(app_client, world):
    _app, client = app_client
    _admin_id, admin = world.admin()
    uid, _h = world.student()
    job = world.job()
    app_id = world.apply(job, uid)

    res = _scan(client, admin, app_id, location="Gate 2")
    assert res.status_code == 200
    data = api_data(res)
    assert data["outcome"] == "LEGACY_RECORDED"
    assert data["legacy"] is True
    assert data["student"]["userId"] == uid
    assert data["job"]["jobId"] == job

    again = _scan(client, admin, app_id)
    assert again.status_code == 409
    err = api_error(again)
    assert err["code"] == "ALREADY_ATTENDED"
    assert err["details"]["legacy"] is True
    assert err["details"]["scannedAt"] == data["scannedAt"]


def test_json_wrapped_application_id(app_client, world):
    _app, client = app_client
    _admin_id, admin = world.admin()
    uid, _h = world.student()
    job = world.job()
    app_id = world.apply(job, uid)

    res = _scan(client, admin, json.dumps({"applicationId": app_id}))
    assert api_data(res)["outcome"] == "LEGACY_RECORDED"

    res = _scan(client, admin, json.dumps({"studentId": uid}))
    assert res.status_code == 400


def test_pre_generated_stub_is_stamped(app_client, world):
    from db import session_scope
    from models import Attendance

    _app, client = app_client
    admin_id, admin = world.admin()
    uid, _h = world.student()
    job = world.job()
    app_id = world.apply(job, uid)
    with session_scope() as db:
        db.add(Attendance(attendanceId="LAT-1", studentId=uid, jobId=job, qrCode=app_id))

    data = api_data(_scan(client, admin, app_id, jobId=job))
    assert data["message"] == "Attendance recorded successfully"

    with session_scope() as db:
        stub = db.get(Attendance, "LAT-1")
        assert stub.scannedBy == admin_id
        assert stub.scannedAt == data["scannedAt"]


def test_unknown_application_and_wrong_job(app_client, world):
    _app, client = app_client
    _admin_id, admin = world.admin()
    uid, _h = world.student()
    job = world.job()
    other = world.job()
    app_id = world.apply(job, uid)

    res = _scan(client, admin, "APP-does-not-exist")
    assert res.status_code == 404
    assert api_error(res)["code"] == "NOT_FOUND"

    res = _scan(client, admin, app_id, jobId=other)
    assert res.status_code == 400
    assert api_error(res)["message"] == "This application is for a different job"
