from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from actions.helpers import actor_id, append_audit, job_card, load_profile, load_user, student_card
from models import Application, Attendance, Job
from utils import ApiError, AuthContext, clean_str, iso_utc_now, new_prefixed_id

log = logging.getLogger("attendance")


def application_id_from_qr(raw: str) -> str:
    """Old QR codes carry either the bare application id or `{"applicationId": ...}`."""
    try:
        parsed = json.loads(raw)
    except ValueError:
        return raw
    if isinstance(parsed, dict):
        app_id = clean_str(parsed.get("applicationId"))
        if not app_id:
            raise ApiError("BAD_REQUEST", "QR code does not name an application")
        return app_id
    return raw


def _cards(db, user_id: str, job_id: str) -> dict[str, Any]:
    job = db.execute(select(Job).where(Job.jobId == job_id)).scalar_one_or_none() if job_id else None
    return {
        "student": student_card(load_user(db, user_id), load_profile(db, user_id)),
        "job": job_card(job) or None,
    }


def legacy_scan(raw: str, *, filter_job_id: str, location: str, auth: AuthContext | None, db) -> dict[str, Any]:
    application_id = application_id_from_qr(raw)

    stub = (
        db.execute(select(Attendance).where(Attendance.qrCode == application_id).with_for_update())
        .scalars()
        .first()
    )
    if stub is not None:
        if filter_job_id and stub.jobId and stub.jobId != filter_job_id:
            raise ApiError("BAD_REQUEST", "This application is for a different job")
        if stub.scannedAt:
            raise ApiError(
                "ALREADY_ATTENDED",
                "Attendance already recorded",
                details={"outcome": "ALREADY_ATTENDED", "legacy": True, "scannedAt": stub.scannedAt, **_cards(db, stub.studentId, stub.jobId)},
            )

        stub.scannedAt = iso_utc_now()
        stub.scannedBy = actor_id(auth)
        stub.location = location or stub.location
        append_audit(
            db,
            entityType="LEGACY_ATTENDANCE",
            entityId=stub.attendanceId,
            action="LEGACY_ATTENDANCE_RECORDED",
            actor=auth,
            meta={"applicationId": application_id, "studentId": stub.studentId},
        )
        log.info("legacy attendance stamped application=%s student=%s", application_id, stub.studentId)
        return {
            "outcome": "LEGACY_RECORDED",
            "legacy": True,
            "message": "Attendance recorded successfully",
            "scannedAt": stub.scannedAt,
            **_cards(db, stub.studentId, stub.jobId),
        }

    application = db.execute(select(Application).where(Application.applicationId == application_id)).scalars().first()
    if application is None:
        raise ApiError("NOT_FOUND", "Invalid QR code. Token verification failed and no matching application found")
    if filter_job_id and application.jobId != filter_job_id:
        raise ApiError("BAD_REQUEST", "This application is for a different job")

    now = iso_utc_now()
    row = Attendance(
        attendanceId=new_prefixed_id("LAT"),
        studentId=application.userId,
        jobId=application.jobId,
        qrCode=application_id,
        scannedAt=now,
        scannedBy=actor_id(auth),
        location=location or "",
        createdAt=now,
    )
    try:
        with db.begin_nested():
            db.add(row)
    except IntegrityError as e:
        raise ApiError("ALREADY_ATTENDED", "Attendance already recorded", details={"legacy": True}) from e

    append_audit(
        db,
        entityType="LEGACY_ATTENDANCE",
        entityId=row.attendanceId,
        action="LEGACY_ATTENDANCE_RECORDED",
        actor=auth,
        meta={"applicationId": application_id, "studentId": application.userId},
    )
    log.info("legacy attendance recorded application=%s student=%s", application_id, application.userId)
    return {
        "outcome": "LEGACY_RECORDED",
        "legacy": True,
        "message": "Attendance recorded successfully (legacy mode)",
        "scannedAt": row.scannedAt,
        **_cards(db, application.userId, application.jobId),
    }
