from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from actions.helpers import (
    actor_id,
    append_audit,
    attendance_by_round,
    find_application,
    is_kyc_verified,
    job_card,
    live_rounds,
    load_profile,
    load_user,
    require_field,
    require_job,
    round_card,
    student_card,
)
from actions.legacy_attendance import legacy_scan
from actions.sessions import ACTIVE, round_session_summary
from eligibility import ELIGIBLE, JobCriteria, StudentSnapshot, check_job_eligibility, check_round_eligibility
from models import DriveSession, Job, JobRound, Profile, RoundAttendance, User
from qr_token import EXPIRED, INVALID, NOT_SIGNED, QR_PAYLOAD_FIELDS, issue_qr_token, verify_qr_token
from utils import ApiError, AuthContext, clean_str, iso_utc_now, new_prefixed_id

log = logging.getLogger("attendance")


@dataclass
class RoundScan:
    session: DriveSession
    round: JobRound
    job: Job
    user: Optional[User]
    profile: Profile
    existing: Optional[RoundAttendance]

    def cards(self) -> dict[str, Any]:
        return {
            "student": student_card(self.user, self.profile),
            "round": round_card(self.round),
            "job": job_card(self.job),
        }


def _already_attended(scan: RoundScan) -> ApiError:
    return ApiError(
        "ALREADY_ATTENDED",
        "Attendance already recorded for this round",
        details={"outcome": "ALREADY_ATTENDED", "markedAt": scan.existing.markedAt if scan.existing else "", **scan.cards()},
    )


def _validate_round_scan(db, payload: dict[str, str]) -> RoundScan:
    """
    Every check a scan must pass before attendance can be recorded.

    Runs identically for the verify and the confirm phase; nothing from an
    earlier phase is trusted.
    """

    user_id = payload["userId"]
    job_id = payload["jobId"]
    round_id = payload["roundId"]
    session_id = payload["sessionId"]

    session = (
        db.execute(
            select(DriveSession)
            .where(DriveSession.sessionId == session_id)
            .where(DriveSession.jobId == job_id)
            .where(DriveSession.roundId == round_id)
        )
        .scalars()
        .first()
    )
    if not session:
        raise ApiError("NOT_FOUND", "Session not found. The QR code may be invalid")
    if session.status != ACTIVE:
        closed = "temporarily" if session.status == "TEMP_CLOSED" else "permanently"
        raise ApiError(
            "SESSION_NOT_ACTIVE",
            f"Session is {closed} closed. QR is no longer valid",
            details={"sessionStatus": session.status},
        )

    rnd = (
        db.execute(select(JobRound).where(JobRound.roundId == round_id).where(JobRound.jobId == job_id))
        .scalars()
        .first()
    )
    if not rnd or rnd.isRemoved:
        raise ApiError("NOT_FOUND", "Round not found")

    if not find_application(db, job_id, user_id):
        raise ApiError("NOT_APPLIED", "Student has not applied to this job")
    job = require_job(db, job_id)

    profile = load_profile(db, user_id)
    if not is_kyc_verified(profile):
        raise ApiError("KYC_REQUIRED", "Student's KYC is not verified")

    attendance = attendance_by_round(db, user_id, job_id)
    scan = RoundScan(
        session=session,
        round=rnd,
        job=job,
        user=load_user(db, user_id),
        profile=profile,
        existing=attendance.get(round_id),
    )
    if scan.existing is not None:
        return scan

    # Job criteria were enforced at application time; only progression gates the scan.
    verdict = check_round_eligibility(rnd, live_rounds(db, job_id), attendance, ELIGIBLE)
    if not verdict.eligible:
        raise ApiError(
            "ROUND_NOT_REACHABLE",
            verdict.reason or "Student is not eligible for this round",
            details={"reason": verdict.code, **scan.cards()},
        )
    return scan


def attendance_qr_status(data, auth: AuthContext | None, db, cfg):
    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Login required")
    job_id = require_field(data, "jobId")
    user_id = auth.userId

    if not find_application(db, job_id, user_id):
        raise ApiError("NOT_APPLIED", "You have not applied to this job")
    job = require_job(db, job_id)

    profile = load_profile(db, user_id)
    if not is_kyc_verified(profile):
        raise ApiError("KYC_REQUIRED", "Your KYC must be verified to access attendance", details={"kycRequired": True})

    job_eligibility = check_job_eligibility(StudentSnapshot.from_profile(profile), JobCriteria.from_job(job))

    rounds = live_rounds(db, job_id)
    latest = round_session_summary(db, job_id)
    attendance = attendance_by_round(db, user_id, job_id)

    items: list[dict[str, Any]] = []
    for rnd in rounds:
        s = latest.get(rnd.roundId)
        record = attendance.get(rnd.roundId)
        qr = None
        reason = None

        if record is not None:
            status = f"ATTENDED_{record.status}"
        elif s is None:
            status = "NOT_STARTED"
        elif s.status == ACTIVE:
            verdict = check_round_eligibility(rnd, rounds, attendance, job_eligibility)
            if verdict.eligible:
                qr = issue_qr_token(
                    {"userId": user_id, "jobId": job_id, "roundId": rnd.roundId, "sessionId": s.sessionId},
                    secret=cfg.QR_TOKEN_SECRET,
                    ttl_seconds=cfg.QR_TOKEN_TTL_SECONDS,
                )
                status = "ACTIVE"
            else:
                status = "NOT_ELIGIBLE"
                reason = verdict.reason
        elif s.status in {"TEMP_CLOSED", "PERM_CLOSED"}:
            status = s.status
        else:
            status = "NOT_STARTED"

        items.append(
            {
                "roundId": rnd.roundId,
                "roundName": rnd.name,
                "roundOrder": int(rnd.order or 0),
                "status": status,
                "qrToken": qr,
                "ineligibleReason": reason,
                "attendance": {"markedAt": record.markedAt, "result": record.status} if record else None,
            }
        )

    return {
        "rounds": items,
        "jobEligibility": job_eligibility.as_dict(),
        "tokenTtlSeconds": int(cfg.QR_TOKEN_TTL_SECONDS),
    }


def attendance_scan(data, auth: AuthContext | None, db, cfg):
    qr_data = clean_str((data or {}).get("qrData"))
    if not qr_data:
        raise ApiError("BAD_REQUEST", "QR data is required")
    filter_job_id = clean_str((data or {}).get("jobId"))
    location = clean_str((data or {}).get("location"))

    verification = verify_qr_token(qr_data, secret=cfg.QR_TOKEN_SECRET)
    if verification.status == NOT_SIGNED:
        return legacy_scan(qr_data, filter_job_id=filter_job_id, location=location, auth=auth, db=db)
    if verification.status == EXPIRED:
        raise ApiError("TOKEN_EXPIRED", verification.reason)
    if verification.status == INVALID:
        raise ApiError("TOKEN_INVALID", verification.reason)

    payload = verification.payload
    if filter_job_id and payload["jobId"] != filter_job_id:
        raise ApiError("BAD_REQUEST", "This QR code is for a different job")

    scan = _validate_round_scan(db, payload)
    if scan.existing is not None:
        raise _already_attended(scan)

    return {
        "outcome": "CONFIRMATION_REQUIRED",
        "requireConfirmation": True,
        "message": "Student verified. Ready to mark attendance",
        "tokenData": dict(payload),
        **scan.cards(),
    }


def attendance_confirm(data, auth: AuthContext | None, db, cfg):
    payload = {key: require_field(data, key) for key in QR_PAYLOAD_FIELDS}
    location = clean_str((data or {}).get("location"))

    scan = _validate_round_scan(db, payload)
    if scan.existing is not None:
        raise _already_attended(scan)

    now = iso_utc_now()
    record = RoundAttendance(
        attendanceId=new_prefixed_id("RAT"),
        userId=payload["userId"],
        jobId=payload["jobId"],
        roundId=payload["roundId"],
        sessionId=payload["sessionId"],
        status="ATTENDED",
        markedAt=now,
        markedBy=actor_id(auth),
        location=location,
        updatedAt=now,
        updatedBy=actor_id(auth),
    )
    try:
        with db.begin_nested():
            db.add(record)
    except IntegrityError as e:
        # Lost the race against a concurrent confirm for the same (student, round).
        winner = (
            db.execute(
                select(RoundAttendance)
                .where(RoundAttendance.userId == payload["userId"])
                .where(RoundAttendance.roundId == payload["roundId"])
            )
            .scalars()
            .first()
        )
        scan.existing = winner
        log.info("duplicate confirm user=%s round=%s", payload["userId"], payload["roundId"])
        raise _already_attended(scan) from e

    append_audit(
        db,
        entityType="ROUND_ATTENDANCE",
        entityId=record.attendanceId,
        action="ATTENDANCE_CONFIRM",
        actor=auth,
        toState="ATTENDED",
        meta={k: payload[k] for k in QR_PAYLOAD_FIELDS},
    )
    log.info(
        "attendance marked user=%s job=%s round=%s session=%s by=%s",
        payload["userId"],
        payload["jobId"],
        payload["roundId"],
        payload["sessionId"],
        actor_id(auth),
    )
    return {
        "outcome": "MARKED",
        "message": "Attendance marked",
        "attendance": {
            "attendanceId": record.attendanceId,
            "status": record.status,
            "markedAt": record.markedAt,
            "markedBy": record.markedBy,
        },
        **scan.cards(),
    }
