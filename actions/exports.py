from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import select

from actions.helpers import live_rounds, require_field, require_job
from models import FinalSelected, JobRound, Profile, RoundAttendance, User
from utils import ApiError, AuthContext, clean_str

EXPORT_TYPES = {"attendance", "passed", "final_selected", "all_rounds"}
DEFAULT_COLUMNS = ["usn", "name", "branch", "cgpa", "status", "time"]

Row = dict[str, Any]


def _name(row: Row) -> str:
    user = row.get("user")
    profile = row.get("profile")
    name = str(getattr(user, "name", "") or "")
    if not name and profile is not None:
        name = f"{profile.firstName or ''} {profile.lastName or ''}".strip()
    return name or "N/A"


def _p(row: Row, attr: str) -> Any:
    return getattr(row.get("profile"), attr, None)


COLUMN_DEFS: dict[str, tuple[str, Callable[[Row], Any]]] = {
    "usn": ("USN", lambda r: _p(r, "usn") or "N/A"),
    "name": ("Student Name", _name),
    "email": ("Email", lambda r: getattr(r.get("user"), "email", "") or "N/A"),
    "branch": ("Branch", lambda r: _p(r, "branch") or "N/A"),
    "cgpa": ("CGPA", lambda r: _p(r, "finalCgpa") or _p(r, "cgpa") or "N/A"),
    "batch": ("Batch", lambda r: _p(r, "batch") or r.get("year") or "N/A"),
    "phone": ("Phone", lambda r: _p(r, "callingMobile") or "N/A"),
    "parentPhone": ("Parent Phone", lambda r: _p(r, "fatherMobile") or _p(r, "motherMobile") or "N/A"),
    "round": ("Round", lambda r: r.get("roundName") or "N/A"),
    "status": ("Status", lambda r: r.get("status") or "N/A"),
    "time": ("Marked At", lambda r: r.get("markedAt") or r.get("selectedAt") or "N/A"),
    "package": ("Package (LPA)", lambda r: r.get("package") if r.get("package") is not None else "N/A"),
    "tier": ("Tier", lambda r: r.get("tier") or "N/A"),
    "role": ("Role", lambda r: r.get("role") or "N/A"),
}


def _csv_or_list(value: Any) -> list[str]:
    if isinstance(value, list):
        items = value
    else:
        items = str(value or "").split(",")
    return [clean_str(x) for x in items if clean_str(x)]


def _columns(data: dict[str, Any]) -> list[str]:
    cols = _csv_or_list((data or {}).get("columns")) or list(DEFAULT_COLUMNS)
    unknown = [c for c in cols if c not in COLUMN_DEFS and c != "slNo"]
    if unknown:
        raise ApiError("BAD_REQUEST", f"Unknown export columns: {', '.join(unknown)}")
    return [c for c in cols if c != "slNo"]


def _people(db, user_ids: list[str]) -> tuple[dict[str, Profile], dict[str, User]]:
    if not user_ids:
        return {}, {}
    profiles = {p.userId: p for p in db.execute(select(Profile).where(Profile.userId.in_(user_ids))).scalars().all()}
    users = {u.userId: u for u in db.execute(select(User).where(User.userId.in_(user_ids))).scalars().all()}
    return profiles, users


def _attendance_rows(db, job_id: str, data: dict[str, Any], *, passed_only: bool) -> list[Row]:
    q = select(RoundAttendance).where(RoundAttendance.jobId == job_id)
    round_id = clean_str((data or {}).get("roundId"))
    status = clean_str((data or {}).get("status")).upper()
    selected = _csv_or_list((data or {}).get("selectedIds"))
    if round_id:
        q = q.where(RoundAttendance.roundId == round_id)
    if passed_only:
        q = q.where(RoundAttendance.status == "PASSED")
    elif status and status != "ALL":
        q = q.where(RoundAttendance.status == status)
    if selected:
        q = q.where(RoundAttendance.attendanceId.in_(selected))

    records = db.execute(q.order_by(RoundAttendance.markedAt.desc())).scalars().all()
    rounds = {r.roundId: r for r in db.execute(select(JobRound).where(JobRound.jobId == job_id)).scalars().all()}
    profiles, users = _people(db, list({r.userId for r in records}))
    return [
        {
            "user": users.get(r.userId),
            "profile": profiles.get(r.userId),
            "roundName": rounds[r.roundId].name if r.roundId in rounds else "",
            "status": r.status,
            "markedAt": r.markedAt,
        }
        for r in records
    ]


def _final_selected_rows(db, job_id: str, data: dict[str, Any]) -> list[Row]:
    q = select(FinalSelected).where(FinalSelected.jobId == job_id)
    selected = _csv_or_list((data or {}).get("selectedIds"))
    if selected:
        q = q.where(FinalSelected.selectionId.in_(selected))
    rows = db.execute(q.order_by(FinalSelected.selectedAt.desc())).scalars().all()
    profiles, users = _people(db, list({r.userId for r in rows}))
    return [
        {
            "user": users.get(r.userId),
            "profile": profiles.get(r.userId),
            "year": r.year,
            "tier": r.tier,
            "package": r.package,
            "role": r.role,
            "status": "SELECTED",
            "selectedAt": r.selectedAt,
        }
        for r in rows
    ]


def _table(rows: list[Row], columns: list[str]) -> tuple[list[str], list[list[Any]]]:
    headers = ["Sl. No."] + [COLUMN_DEFS[c][0] for c in columns]
    body = [[idx + 1] + [COLUMN_DEFS[c][1](row) for c in columns] for idx, row in enumerate(rows)]
    return headers, body


def _all_rounds_table(db, job_id: str) -> tuple[list[str], list[list[Any]]]:
    rounds = live_rounds(db, job_id)
    records = db.execute(select(RoundAttendance).where(RoundAttendance.jobId == job_id)).scalars().all()

    by_user: dict[str, dict[str, str]] = {}
    for r in records:
        by_user.setdefault(r.userId, {})[r.roundId] = r.status
    profiles, users = _people(db, list(by_user.keys()))

    ordered = sorted(by_user.keys(), key=lambda uid: (str(getattr(profiles.get(uid), "usn", "") or ""), uid))
    headers = ["Sl. No.", "USN", "Student Name", "Branch"] + [r.name for r in rounds]
    body: list[list[Any]] = []
    for idx, uid in enumerate(ordered):
        person = {"user": users.get(uid), "profile": profiles.get(uid)}
        statuses = by_user[uid]
        body.append(
            [idx + 1, _p(person, "usn") or "N/A", _name(person), _p(person, "branch") or "N/A"]
            + [statuses.get(r.roundId, "-") for r in rounds]
        )
    return headers, body


_SHEET_TITLES = {
    "attendance": "Attendance",
    "passed": "Passed Students",
    "final_selected": "Final Selected",
    "all_rounds": "All Rounds",
}


def export_job(data, auth: AuthContext | None, db, cfg):
    """Rows for the job export; the HTTP layer renders them to a workbook."""
    job_id = require_field(data, "jobId")
    export_type = clean_str((data or {}).get("type")).lower() or "attendance"
    if export_type not in EXPORT_TYPES:
        raise ApiError("BAD_REQUEST", "type must be attendance|passed|final_selected|all_rounds")
    job = require_job(db, job_id)

    if export_type == "all_rounds":
        headers, rows = _all_rounds_table(db, job_id)
    else:
        columns = _columns(data)
        if export_type == "final_selected":
            source = _final_selected_rows(db, job_id, data)
        else:
            source = _attendance_rows(db, job_id, data, passed_only=export_type == "passed")
        headers, rows = _table(source, columns)

    if not rows:
        raise ApiError("BAD_REQUEST", "No data to export")

    title = _SHEET_TITLES[export_type]
    company = re.sub(r"\s+", "_", str(job.companyName or job.jobId))
    day = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    return {
        "type": export_type,
        "job": {"jobId": job.jobId, "title": job.title or "", "company": job.companyName or ""},
        "sheet": {"title": title, "headers": headers, "rows": rows},
        "filename": f"{company}_{title.replace(' ', '_')}_{day}.xlsx",
    }
