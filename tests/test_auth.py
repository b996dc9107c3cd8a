from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt

from conftest import api_data, api_error


def _me(client, headers=None):
    return client.get("/api/v1/auth/me", headers=headers or {})


def test_get_me_for_admin(app_client, world):
    _app, client = app_client
    admin_id, admin = world.admin()

    me = api_data(_me(client, admin))["me"]
    assert me == {"userId": admin_id, "email": f"{admin_id.lower()}@example.edu", "name": "Admin", "role": "ADMIN"}


def test_get_me_for_student_includes_placement_state(app_client, world):
    _app, client = app_client
    _sid, student = world.student(kyc="PENDING", highestPlacementTier="TIER_3")

    me = api_data(_me(client, student))["me"]
    assert me["role"] == "STUDENT"
    assert me["kycVerified"] is False
    assert me["highestPlacementTier"] == "TIER_3"


def test_missing_and_malformed_tokens(app_client):
    _app, client = app_client

    res = _me(client)
    assert res.status_code == 401
    assert api_error(res)["code"] == "AUTH_INVALID"

    res = _me(client, {"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


def test_expired_token(app_client, world):
    app, client = app_client
    admin_id, _admin = world.admin()
    past = datetime.now(timezone.utc) - timedelta(hours=2)
    token = jwt.encode(
        {"sub": admin_id, "role": "ADMIN", "iat": int(past.timestamp()), "exp": int((past + timedelta(minutes=5)).timestamp())},
        app.config["CFG"].JWT_SECRET,
        algorithm="HS256",
    )
    res = _me(client, {"Authorization": f"Bearer {token}"})
    assert res.status_code == 401
    assert api_error(res)["message"] == "Token expired"


def test_role_is_read_from_database(app_client, world):
    _app, client = app_client
    student_id, _student = world.student()
    job = world.job()

    # A student holding a token that claims ADMIN is still a student.
    forged = world.headers(student_id, "ADMIN")
    res = client.get(f"/api/v1/admin/jobs/{job}/rounds", headers=forged)
    assert res.status_code == 403
    err = api_error(res)
    assert err["code"] == "FORBIDDEN"
    assert err["details"]["required"] == ["ADMIN"]


def test_disabled_user_is_rejected_and_audited(app_client, world):
    from sqlalchemy import select

    from db import session_scope
    from models import AuditLog, User

    _app, client = app_client
    admin_id, admin = world.admin()
    with session_scope() as db:
        db.get(User, admin_id).status = "DISABLED"

    res = _me(client, admin)
    assert res.status_code == 403
    assert "request_id" in res.get_json()
    assert res.headers["X-Request-ID"] == res.get_json()["request_id"]

    with session_scope() as db:
        rows = db.execute(select(AuditLog).where(AuditLog.entityType == "API")).scalars().all()
        assert [(r.action, r.toState) for r in rows] == [("GET_ME", "FORBIDDEN")]


def test_unknown_user_token(app_client, world):
    _app, client = app_client
    res = _me(client, world.headers("GHOST", "ADMIN"))
    assert res.status_code == 401
