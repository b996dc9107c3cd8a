import sys
from pathlib import Path
from typing import Any

import pytest


BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture()
def app_client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    db_path = tmp_path / "test.db"

    monkeypatch.setenv("ENV", "testing")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path.as_posix()}")
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("QR_TOKEN_SECRET", "test-qr-secret")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")

    # Prevent accidental pollution from any existing env config.
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.delenv("APP_TIMEZONE", raising=False)
    monkeypatch.delenv("SESSION_DEFAULT_DURATION_MINUTES", raising=False)
    monkeypatch.delenv("QR_TOKEN_TTL_SECONDS", raising=False)
    monkeypatch.delenv("CORS_ORIGINS", raising=False)
    monkeypatch.delenv("RATE_LIMIT_GLOBAL", raising=False)
    monkeypatch.delenv("RATE_LIMIT_DEFAULT", raising=False)
    monkeypatch.delenv("RATE_LIMIT_SCAN", raising=False)

    from app import create_app
    from app.middlewares.rate_limit import reset_rate_limits

    reset_rate_limits()

    app = create_app()
    app.testing = True

    with app.test_client() as client:
        yield app, client


class World:
    """Seeds rows directly and mints bearer tokens for them."""

    def __init__(self, app):
        self.app = app
        self.cfg = app.config["CFG"]
        self._n = 0

    def _next(self, prefix: str) -> str:
        self._n += 1
        return f"{prefix}{self._n}"

    def headers(self, user_id: str, role: str) -> dict[str, str]:
        from app.utils.auth import create_access_token

        token = create_access_token(self.cfg, user_id=user_id, email=f"{user_id.lower()}@example.edu", role=role)
        return {"Authorization": f"Bearer {token}"}

    def admin(self) -> tuple[str, dict[str, str]]:
        from db import session_scope
        from models import User

        user_id = self._next("ADM")
        with session_scope() as db:
            db.add(User(userId=user_id, email=f"{user_id.lower()}@example.edu", name="Admin", role="ADMIN", status="ACTIVE"))
        return user_id, self.headers(user_id, "ADMIN")

    def student(self, *, kyc: str = "VERIFIED", **profile: Any) -> tuple[str, dict[str, str]]:
        from db import session_scope
        from models import Profile, User

        user_id = self._next("STU")
        fields = {
            "firstName": "Asha",
            "lastName": user_id,
            "usn": f"1XX21CS{self._n:03d}",
            "branch": "CSE",
            "batch": "2021-2025",
            "cgpa": 8.5,
            "kycStatus": kyc,
        }
        fields.update(profile)
        with session_scope() as db:
            db.add(User(userId=user_id, email=f"{user_id.lower()}@example.edu", name=f"Student {user_id}", role="STUDENT", status="ACTIVE"))
            db.add(Profile(userId=user_id, **fields))
        return user_id, self.headers(user_id, "STUDENT")

    def job(self, **fields: Any) -> str:
        from db import session_scope
        from models import Job

        job_id = self._next("JOB")
        values = {"title": "Software Engineer", "companyName": "Acme Corp", "tier": "TIER_2", "maxSalary": 12.0}
        values.update(fields)
        with session_scope() as db:
            db.add(Job(jobId=job_id, **values))
        return job_id

    def apply(self, job_id: str, user_id: str) -> str:
        from db import session_scope
        from models import Application

        app_id = self._next("APP")
        with session_scope() as db:
            db.add(Application(applicationId=app_id, jobId=job_id, userId=user_id, isRemoved=False))
        return app_id

    def rounds(self, job_id: str, names: list[str]) -> list[str]:
        from db import session_scope
        from models import JobRound

        ids = []
        with session_scope() as db:
            for i, name in enumerate(names, start=1):
                round_id = self._next("RND")
                db.add(JobRound(roundId=round_id, jobId=job_id, name=name, order=i, isRemoved=False))
                ids.append(round_id)
        return ids

    def attendance(self, job_id: str, round_id: str, user_id: str, status: str = "ATTENDED") -> str:
        from db import session_scope
        from models import RoundAttendance

        attendance_id = self._next("RAT")
        with session_scope() as db:
            db.add(
                RoundAttendance(
                    attendanceId=attendance_id,
                    userId=user_id,
                    jobId=job_id,
                    roundId=round_id,
                    sessionId="SES-seed",
                    status=status,
                    markedAt=f"2030-01-01T10:00:{self._n % 60:02d}.000Z",
                )
            )
        return attendance_id

    def profile(self, user_id: str):
        from db import session_scope
        from models import Profile

        with session_scope() as db:
            p = db.get(Profile, user_id)
            db.expunge(p)
            return p


@pytest.fixture()
def world(app_client):
    app, _client = app_client
    return World(app)


def api_data(res) -> Any:
    body = res.get_json()
    assert body["success"] is True, body
    return body["data"]


def api_error(res) -> dict[str, Any]:
    body = res.get_json()
    assert body["success"] is False, body
    return body["error"]


def start_session(client, headers, job_id: str, round_id: str) -> str:
    res = client.post(f"/api/v1/admin/jobs/{job_id}/sessions", json={"roundId": round_id}, headers=headers)
    assert res.status_code == 201, res.get_json()
    return api_data(res)["sessionId"]


def qr_token(client, headers, job_id: str, round_id: str) -> str:
    res = client.get(f"/api/v1/attendance/qr?jobId={job_id}", headers=headers)
    assert res.status_code == 200, res.get_json()
    item = next(r for r in api_data(res)["rounds"] if r["roundId"] == round_id)
    assert item["status"] == "ACTIVE", item
    return item["qrToken"]


def mark_attended(client, admin_headers, student_headers, job_id: str, round_id: str) -> dict[str, Any]:
    """Scan then confirm; returns the confirm payload."""
    token = qr_token(client, student_headers, job_id, round_id)
    scan = client.post("/api/v1/attendance/scan", json={"qrData": token}, headers=admin_headers)
    assert scan.status_code == 200, scan.get_json()
    res = client.post("/api/v1/attendance/confirm", json=api_data(scan)["tokenData"], headers=admin_headers)
    assert res.status_code == 201, res.get_json()
    return api_data(res)


def set_result(client, headers, job_id: str, attendance_ids: list[str], status: str):
    return client.put(
        f"/api/v1/admin/jobs/{job_id}/round-attendance",
        json={"attendanceIds": attendance_ids, "status": status},
        headers=headers,
    )
