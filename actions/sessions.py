from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import func, select

from actions.helpers import (
    actor_id,
    append_audit,
    latest_session,
    next_created_at,
    require_field,
    require_job,
)
from models import DriveSession, JobRound, RoundAttendance
from utils import ApiError, AuthContext, iso_utc_now, new_prefixed_id, parse_datetime_maybe, to_iso_utc

log = logging.getLogger("sessions")

ACTIVE = "ACTIVE"
TEMP_CLOSED = "TEMP_CLOSED"
PERM_CLOSED = "PERM_CLOSED"
OPEN_STATUSES = {ACTIVE, TEMP_CLOSED}

# action -> (allowed current statuses, next status)
_TRANSITIONS: dict[str, tuple[set[str], str]] = {
    "TEMP_CLOSE": ({ACTIVE}, TEMP_CLOSED),
    "REOPEN": ({TEMP_CLOSED}, ACTIVE),
    "RESUME": ({TEMP_CLOSED}, ACTIVE),
    "PERM_CLOSE": ({ACTIVE, TEMP_CLOSED}, PERM_CLOSED),
}


def is_session_expired(s: DriveSession, now: Optional[datetime] = None) -> bool:
    end = parse_datetime_maybe(s.endTime)
    if end is None:
        return False
    return end < (now or datetime.now(timezone.utc))


def session_dict(s: DriveSession, *, rnd: Optional[JobRound] = None, attendance_count: Optional[int] = None) -> dict[str, Any]:
    out: dict[str, Any] = {
        "sessionId": s.sessionId,
        "jobId": s.jobId,
        "roundId": s.roundId,
        "status": s.status,
        "startTime": s.startTime,
        "endTime": s.endTime,
        "createdAt": s.createdAt,
        "createdBy": s.createdBy,
        "updatedAt": s.updatedAt,
        "isExpired": is_session_expired(s),
    }
    if rnd is not None:
        out["round"] = {"roundId": rnd.roundId, "name": rnd.name, "order": int(rnd.order or 0)}
    if attendance_count is not None:
        out["attendanceCount"] = int(attendance_count)
    return out


def _duration_minutes(data: dict[str, Any], cfg) -> int:
    raw = (data or {}).get("duration")
    if raw is None or str(raw).strip() == "":
        return int(getattr(cfg, "SESSION_DEFAULT_DURATION_MINUTES", 60) or 60)
    try:
        minutes = int(raw)
    except (TypeError, ValueError) as e:
        raise ApiError("BAD_REQUEST", "duration must be a whole number of minutes") from e
    if minutes <= 0:
        raise ApiError("BAD_REQUEST", "duration must be positive")
    return minutes


def session_start(data, auth: AuthContext | None, db, cfg):
    job_id = require_field(data, "jobId")
    round_id = require_field(data, "roundId")

    require_job(db, job_id)
    rnd = (
        db.execute(
            select(JobRound).where(JobRound.roundId == round_id).where(JobRound.jobId == job_id).with_for_update()
        )
        .scalars()
        .first()
    )
    if not rnd or rnd.isRemoved:
        raise ApiError("NOT_FOUND", "Round not found")

    latest = latest_session(db, round_id)
    if latest and latest.status in OPEN_STATUSES:
        raise ApiError(
            "CONFLICT",
            "A session is already active or paused for this round",
            details={"sessionId": latest.sessionId, "status": latest.status},
        )

    start_raw = (data or {}).get("startTime")
    if start_raw:
        start_dt = parse_datetime_maybe(start_raw, app_timezone=getattr(cfg, "APP_TIMEZONE", "Asia/Kolkata"))
        if start_dt is None:
            raise ApiError("BAD_REQUEST", "startTime is not a valid date/time")
    else:
        start_dt = datetime.now(timezone.utc)
    end_dt = start_dt + timedelta(minutes=_duration_minutes(data, cfg))

    now = iso_utc_now()
    s = DriveSession(
        sessionId=new_prefixed_id("SES"),
        jobId=job_id,
        roundId=round_id,
        status=ACTIVE,
        startTime=to_iso_utc(start_dt),
        endTime=to_iso_utc(end_dt),
        createdAt=next_created_at(latest.createdAt if latest else None),
        createdBy=actor_id(auth),
        updatedAt=now,
        updatedBy=actor_id(auth),
    )
    db.add(s)
    db.flush([s])

    append_audit(
        db,
        entityType="DRIVE_SESSION",
        entityId=s.sessionId,
        action="SESSION_START",
        actor=auth,
        toState=ACTIVE,
        meta={"jobId": job_id, "roundId": round_id, "endTime": s.endTime},
    )
    log.info("session started session=%s job=%s round=%s by=%s", s.sessionId, job_id, round_id, actor_id(auth))
    return session_dict(s, rnd=rnd, attendance_count=0)


def session_update(data, auth: AuthContext | None, db, cfg):
    session_id = require_field(data, "sessionId")
    action = str((data or {}).get("action") or "").upper().strip()
    if action not in _TRANSITIONS:
        raise ApiError("BAD_REQUEST", "action must be TEMP_CLOSE|REOPEN|RESUME|PERM_CLOSE")

    s = (
        db.execute(select(DriveSession).where(DriveSession.sessionId == session_id).with_for_update())
        .scalars()
        .first()
    )
    job_id = str((data or {}).get("jobId") or "").strip()
    if not s or (job_id and s.jobId != job_id):
        raise ApiError("NOT_FOUND", "Session not found")

    allowed, target = _TRANSITIONS[action]
    if s.status not in allowed:
        raise ApiError(
            "CONFLICT",
            f"Cannot {action} a session that is {s.status}",
            details={"sessionId": s.sessionId, "status": s.status},
        )

    from_status = s.status
    s.status = target
    s.updatedAt = iso_utc_now()
    s.updatedBy = actor_id(auth)

    append_audit(
        db,
        entityType="DRIVE_SESSION",
        entityId=s.sessionId,
        action=f"SESSION_{action}",
        actor=auth,
        fromState=from_status,
        toState=target,
        meta={"jobId": s.jobId, "roundId": s.roundId},
    )
    log.info("session %s -> %s session=%s by=%s", from_status, target, s.sessionId, actor_id(auth))
    return session_dict(s)


def sessions_list(data, auth: AuthContext | None, db, cfg):
    job_id = require_field(data, "jobId")
    require_job(db, job_id)

    rows = (
        db.execute(select(DriveSession).where(DriveSession.jobId == job_id).order_by(DriveSession.createdAt.desc()))
        .scalars()
        .all()
    )
    rounds = {r.roundId: r for r in db.execute(select(JobRound).where(JobRound.jobId == job_id)).scalars().all()}
    counts = dict(
        db.execute(
            select(RoundAttendance.sessionId, func.count())
            .where(RoundAttendance.jobId == job_id)
            .group_by(RoundAttendance.sessionId)
        ).all()
    )

    items = [session_dict(s, rnd=rounds.get(s.roundId), attendance_count=counts.get(s.sessionId, 0)) for s in rows]
    return {"items": items, "total": len(items)}


def round_session_summary(db, job_id: str) -> dict[str, Optional[DriveSession]]:
    """Latest session per round of a job."""
    out: dict[str, Optional[DriveSession]] = {}
    for s in (
        db.execute(select(DriveSession).where(DriveSession.jobId == job_id).order_by(DriveSession.createdAt.asc()))
        .scalars()
        .all()
    ):
        out[s.roundId] = s
    return out


def assert_round_has_no_open_session(db, round_id: str) -> None:
    latest = latest_session(db, round_id)
    if latest and latest.status in OPEN_STATUSES:
        raise ApiError(
            "CONFLICT",
            "Close the round's active or paused session first",
            details={"sessionId": latest.sessionId, "status": latest.status},
        )

