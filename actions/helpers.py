from __future__ import annotations

from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import select

from models import Application, AuditLog, DriveSession, Job, JobRound, Profile, RoundAttendance, User
from utils import (
    ApiError,
    AuthContext,
    clean_str,
    iso_utc_now,
    new_log_id,
    parse_datetime_maybe,
    safe_json_string,
    to_iso_utc,
)


def append_audit(
    db,
    *,
    entityType: str,
    entityId: str,
    action: str,
    actor: AuthContext | None,
    fromState: str = "",
    toState: str = "",
    remark: str = "",
    meta: Any = None,
    at: Optional[str] = None,
) -> None:
    if meta is None:
        meta_json = "{}"
    elif isinstance(meta, str):
        meta_json = meta
    else:
        meta_json = safe_json_string(meta, "{}")

    db.add(
        AuditLog(
            logId=new_log_id(),
            entityType=str(entityType or ""),
            entityId=str(entityId or ""),
            action=str(action or "").upper(),
            fromState=str(fromState or ""),
            toState=str(toState or ""),
            remark=str(remark or ""),
            actorUserId=str(actor.userId if actor else "SYSTEM"),
            actorRole=str(actor.role if actor else "SYSTEM"),
            at=str(at or iso_utc_now()),
            metaJson=meta_json,
        )
    )


def actor_id(auth: AuthContext | None) -> str:
    return str(auth.userId if auth and auth.valid else "SYSTEM")


def require_field(data: dict[str, Any], key: str, label: Optional[str] = None) -> str:
    value = clean_str((data or {}).get(key))
    if not value:
        raise ApiError("BAD_REQUEST", f"{label or key} is required")
    return value


def require_job(db, job_id: str) -> Job:
    job = db.execute(select(Job).where(Job.jobId == job_id)).scalar_one_or_none()
    if not job:
        raise ApiError("NOT_FOUND", "Job not found")
    return job


def live_rounds(db, job_id: str) -> list[JobRound]:
    return list(
        db.execute(
            select(JobRound)
            .where(JobRound.jobId == job_id)
            .where(JobRound.isRemoved == False)  # noqa: E712
            .order_by(JobRound.order.asc())
        )
        .scalars()
        .all()
    )


def find_application(db, job_id: str, user_id: str) -> Optional[Application]:
    return (
        db.execute(
            select(Application)
            .where(Application.jobId == job_id)
            .where(Application.userId == user_id)
            .where(Application.isRemoved == False)  # noqa: E712
        )
        .scalars()
        .first()
    )


def load_profile(db, user_id: str) -> Optional[Profile]:
    return db.execute(select(Profile).where(Profile.userId == user_id)).scalar_one_or_none()


def load_user(db, user_id: str) -> Optional[User]:
    return db.execute(select(User).where(User.userId == user_id)).scalar_one_or_none()


def is_kyc_verified(profile: Optional[Profile]) -> bool:
    return bool(profile) and str(profile.kycStatus or "").upper() == "VERIFIED"


def latest_session(db, round_id: str) -> Optional[DriveSession]:
    return (
        db.execute(
            select(DriveSession)
            .where(DriveSession.roundId == round_id)
            .order_by(DriveSession.createdAt.desc())
            .limit(1)
        )
        .scalars()
        .first()
    )


def next_created_at(previous: Optional[str]) -> str:
    """A createdAt strictly after `previous`, so "latest" stays well defined within one millisecond."""
    now = iso_utc_now()
    if not previous or now > previous:
        return now
    prev_dt = parse_datetime_maybe(previous)
    if prev_dt is None:
        return now
    return to_iso_utc(prev_dt + timedelta(milliseconds=1))


def attendance_by_round(db, user_id: str, job_id: str) -> dict[str, RoundAttendance]:
    rows = (
        db.execute(
            select(RoundAttendance).where(RoundAttendance.userId == user_id).where(RoundAttendance.jobId == job_id)
        )
        .scalars()
        .all()
    )
    return {r.roundId: r for r in rows}


def student_card(user: Optional[User], profile: Optional[Profile]) -> dict[str, Any]:
    first = str(getattr(profile, "firstName", "") or "")
    last = str(getattr(profile, "lastName", "") or "")
    name = str(getattr(user, "name", "") or "") or f"{first} {last}".strip()
    cgpa = None
    if profile is not None:
        cgpa = profile.finalCgpa or profile.cgpa
    return {
        "userId": str(getattr(user, "userId", "") or getattr(profile, "userId", "") or ""),
        "name": name,
        "email": str(getattr(user, "email", "") or ""),
        "usn": str(getattr(profile, "usn", "") or ""),
        "branch": str(getattr(profile, "branch", "") or ""),
        "batch": str(getattr(profile, "batch", "") or ""),
        "profilePhoto": str(getattr(profile, "profilePhoto", "") or "") or str(getattr(user, "image", "") or ""),
        "phone": str(getattr(profile, "callingMobile", "") or ""),
        "parentPhone": str(getattr(profile, "fatherMobile", "") or "") or str(getattr(profile, "motherMobile", "") or ""),
        "cgpa": cgpa,
    }


def job_card(job: Optional[Job]) -> dict[str, Any]:
    if job is None:
        return {}
    return {
        "jobId": job.jobId,
        "title": job.title or "",
        "company": job.companyName or "",
        "tier": job.tier or "",
    }


def round_card(rnd: Optional[JobRound]) -> dict[str, Any]:
    if rnd is None:
        return {}
    return {"roundId": rnd.roundId, "name": rnd.name or "", "order": int(rnd.order or 0)}
