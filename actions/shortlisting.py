"""
Round results and final selection.

Marking a student PASSED on a job's final round cascades into three writes:
the FinalSelected row, the Placement row and the student's highest placement
tier. Each cascade step runs in its own savepoint; a failed step is logged and
reported back to the caller while the result write itself is kept.
Re-sending PASSED for a record that already passed replays the cascade, and
FINAL_SELECTION_RECONCILE replays it for every PASSED final-round record, so a
partial failure can always be repaired.

A recorded result can be corrected (PASSED <-> FAILED). Correcting a final-round
PASSED to FAILED leaves the selection, the Placement and the tier in place;
FINAL_SELECTED_REMOVE drops the selection, and tiers are never downgraded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from actions.helpers import (
    actor_id,
    append_audit,
    find_application,
    live_rounds,
    load_profile,
    require_field,
    require_job,
    student_card,
)
from eligibility import PlacementTier, final_round, is_higher_tier
from models import FinalSelected, Job, JobRound, Placement, Profile, RoundAttendance, User
from utils import ApiError, AuthContext, clean_str, iso_utc_now, new_prefixed_id, parse_page_args

log = logging.getLogger("shortlisting")

RESULT_STATUSES = {"PASSED", "FAILED"}


@dataclass
class CascadeResult:
    user_id: str
    selection: Optional[FinalSelected] = None
    placement: Optional[Placement] = None
    tier_upgraded: bool = False
    errors: list[dict[str, Any]] = field(default_factory=list)


def final_selected_dict(row: FinalSelected) -> dict[str, Any]:
    return {
        "selectionId": row.selectionId,
        "userId": row.userId,
        "jobId": row.jobId,
        "usn": row.usn,
        "year": row.year,
        "tier": row.tier,
        "package": row.package,
        "role": row.role,
        "isManual": bool(row.isManual),
        "selectedAt": row.selectedAt,
        "updatedAt": row.updatedAt,
    }


def _upsert_by_user_job(db, model, *, id_field: str, id_prefix: str, user_id: str, job_id: str, values: dict[str, Any], create_values: dict[str, Any]):
    """Conditional insert on the (userId, jobId) key; a concurrent insert turns into an update."""

    def _read():
        return (
            db.execute(select(model).where(model.userId == user_id).where(model.jobId == job_id).with_for_update())
            .scalars()
            .first()
        )

    now = iso_utc_now()
    row = _read()
    if row is None:
        row = model(userId=user_id, jobId=job_id, **create_values, **values)
        setattr(row, id_field, new_prefixed_id(id_prefix))
        try:
            with db.begin_nested():
                db.add(row)
            return row, True
        except IntegrityError:
            row = _read()
            if row is None:
                raise

    for k, v in values.items():
        setattr(row, k, v)
    row.updatedAt = now
    return row, False


def upsert_final_selected(db, *, job: Job, user_id: str, values: dict[str, Any], profile: Optional[Profile]) -> tuple[FinalSelected, bool]:
    now = iso_utc_now()
    return _upsert_by_user_job(
        db,
        FinalSelected,
        id_field="selectionId",
        id_prefix="SEL",
        user_id=user_id,
        job_id=job.jobId,
        values=values,
        create_values={
            "usn": str(getattr(profile, "usn", "") or ""),
            "year": str(getattr(profile, "batch", "") or ""),
            "selectedAt": now,
            "updatedAt": now,
        },
    )


def _merge_tier(db, user_id: str, tier: str) -> bool:
    profile = (
        db.execute(
            select(Profile)
            .where(Profile.userId == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .first()
    )
    if profile is None or not is_higher_tier(tier, profile.highestPlacementTier):
        return False

    now = iso_utc_now()
    profile.highestPlacementTier = tier
    profile.placedAt = now
    profile.updatedAt = now
    return True


def run_final_selection_cascade(db, *, job: Job, user_id: str, auth: AuthContext | None) -> CascadeResult:
    result = CascadeResult(user_id=user_id)
    tier = str(job.tier or PlacementTier.TIER_3.value)
    profile = load_profile(db, user_id)

    def _final_selected():
        row, created = upsert_final_selected(
            db,
            job=job,
            user_id=user_id,
            profile=profile,
            values={
                "tier": tier,
                "package": job.maxSalary,
                "role": job.title or "",
                "isManual": False,
                "updatedBy": actor_id(auth),
            },
        )
        result.selection = row
        if created:
            append_audit(
                db,
                entityType="FINAL_SELECTED",
                entityId=row.selectionId,
                action="FINAL_SELECTION_CREATED",
                actor=auth,
                meta={"jobId": job.jobId, "userId": user_id, "isManual": False},
            )

    def _placement():
        row, _ = _upsert_by_user_job(
            db,
            Placement,
            id_field="placementId",
            id_prefix="PLC",
            user_id=user_id,
            job_id=job.jobId,
            values={"tier": tier, "salary": float(job.maxSalary or 0)},
            create_values={"companyName": job.companyName or "Unknown", "createdAt": iso_utc_now(), "updatedAt": iso_utc_now()},
        )
        result.placement = row

    def _tier():
        previous = str(getattr(profile, "highestPlacementTier", "") or "")
        result.tier_upgraded = _merge_tier(db, user_id, tier)
        if result.tier_upgraded:
            append_audit(
                db,
                entityType="PROFILE",
                entityId=user_id,
                action="PLACEMENT_TIER_UPGRADED",
                actor=auth,
                fromState=previous,
                toState=tier,
                meta={"jobId": job.jobId},
            )

    steps: list[tuple[str, Callable[[], None]]] = [
        ("FINAL_SELECTED", _final_selected),
        ("PLACEMENT", _placement),
        ("TIER_MERGE", _tier),
    ]
    for name, step in steps:
        try:
            with db.begin_nested():
                step()
        except SQLAlchemyError as e:
            log.exception("cascade step failed step=%s job=%s user=%s", name, job.jobId, user_id)
            result.errors.append({"userId": user_id, "step": name, "error": e.__class__.__name__})
            if name == "FINAL_SELECTED":
                result.selection = None
            elif name == "PLACEMENT":
                result.placement = None
    return result


def _profile_map(db, user_ids: list[str]) -> tuple[dict[str, Profile], dict[str, User]]:
    if not user_ids:
        return {}, {}
    profiles = {p.userId: p for p in db.execute(select(Profile).where(Profile.userId.in_(user_ids))).scalars().all()}
    users = {u.userId: u for u in db.execute(select(User).where(User.userId.in_(user_ids))).scalars().all()}
    return profiles, users


def _pagination(total: int, page: int, limit: int) -> dict[str, int]:
    return {"total": total, "page": page, "limit": limit, "pages": (total + limit - 1) // limit}


def round_attendance_list(data, auth: AuthContext | None, db, cfg):
    job_id = require_field(data, "jobId")
    require_job(db, job_id)
    round_id = clean_str((data or {}).get("roundId"))
    status = clean_str((data or {}).get("status")).upper()
    page, limit = parse_page_args(data or {})

    q = select(RoundAttendance).where(RoundAttendance.jobId == job_id)
    cq = select(func.count()).select_from(RoundAttendance).where(RoundAttendance.jobId == job_id)
    if round_id:
        q = q.where(RoundAttendance.roundId == round_id)
        cq = cq.where(RoundAttendance.roundId == round_id)
    if status:
        q = q.where(RoundAttendance.status == status)
        cq = cq.where(RoundAttendance.status == status)

    total = int(db.execute(cq).scalar() or 0)
    rows = (
        db.execute(
            q.order_by(RoundAttendance.markedAt.desc(), RoundAttendance.attendanceId.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        .scalars()
        .all()
    )

    rounds = {r.roundId: r for r in db.execute(select(JobRound).where(JobRound.jobId == job_id)).scalars().all()}
    profiles, users = _profile_map(db, list({r.userId for r in rows}))

    items: list[dict[str, Any]] = []
    for r in rows:
        rnd = rounds.get(r.roundId)
        items.append(
            {
                "attendanceId": r.attendanceId,
                "userId": r.userId,
                "jobId": r.jobId,
                "roundId": r.roundId,
                "roundName": rnd.name if rnd else "",
                "roundOrder": int(rnd.order or 0) if rnd else None,
                "sessionId": r.sessionId,
                "status": r.status,
                "markedAt": r.markedAt,
                "markedBy": r.markedBy,
                "student": student_card(users.get(r.userId), profiles.get(r.userId)),
            }
        )
    return {"items": items, "pagination": _pagination(total, page, limit)}


def _attendance_ids(data: dict[str, Any]) -> list[str]:
    raw = (data or {}).get("attendanceIds")
    if raw is None and (data or {}).get("attendanceId"):
        raw = [data.get("attendanceId")]
    if not isinstance(raw, list):
        raise ApiError("BAD_REQUEST", "attendanceIds must be a list")
    ids: list[str] = []
    for x in raw:
        s = clean_str(x)
        if s and s not in ids:
            ids.append(s)
    if not ids:
        raise ApiError("BAD_REQUEST", "attendanceId(s) and status are required")
    return ids


def round_attendance_status_update(data, auth: AuthContext | None, db, cfg):
    job_id = require_field(data, "jobId")
    status = clean_str((data or {}).get("status")).upper()
    if status not in RESULT_STATUSES:
        raise ApiError("BAD_REQUEST", "Invalid status. Use PASSED or FAILED")
    ids = _attendance_ids(data)

    job = require_job(db, job_id)
    records = (
        db.execute(
            select(RoundAttendance)
            .where(RoundAttendance.attendanceId.in_(ids))
            .where(RoundAttendance.jobId == job_id)
            .order_by(RoundAttendance.markedAt.asc())
            .with_for_update()
        )
        .scalars()
        .all()
    )
    if not records:
        raise ApiError("NOT_FOUND", "No attendance records found")

    last = final_round(live_rounds(db, job_id))

    updated: list[str] = []
    skipped: list[dict[str, Any]] = []
    selections: list[dict[str, Any]] = []
    cascade_errors: list[dict[str, Any]] = []

    found = {r.attendanceId for r in records}
    for missing in ids:
        if missing not in found:
            skipped.append({"attendanceId": missing, "reason": "NOT_FOUND"})

    for rec in records:
        current = str(rec.status or "").upper()
        is_final = last is not None and rec.roundId == last.roundId

        if current == status:
            skipped.append({"attendanceId": rec.attendanceId, "reason": "UNCHANGED", "status": current})
        else:
            try:
                with db.begin_nested():
                    rec.status = status
                    rec.updatedAt = iso_utc_now()
                    rec.updatedBy = actor_id(auth)
            except SQLAlchemyError:
                log.exception("status update failed attendance=%s", rec.attendanceId)
                skipped.append({"attendanceId": rec.attendanceId, "reason": "ERROR"})
                continue

            append_audit(
                db,
                entityType="ROUND_ATTENDANCE",
                entityId=rec.attendanceId,
                action="ROUND_RESULT_CORRECTED" if current in RESULT_STATUSES else "ROUND_RESULT_UPDATE",
                actor=auth,
                fromState=current,
                toState=status,
                meta={"jobId": job_id, "roundId": rec.roundId, "userId": rec.userId},
            )
            updated.append(rec.attendanceId)

        # Re-sending PASSED replays the cascade so a retry repairs a partial failure.
        if status == "PASSED" and is_final:
            result = run_final_selection_cascade(db, job=job, user_id=rec.userId, auth=auth)
            if result.selection is not None:
                selections.append(final_selected_dict(result.selection))
            cascade_errors.extend(result.errors)

    log.info(
        "round results job=%s status=%s updated=%s skipped=%s selections=%s cascade_errors=%s by=%s",
        job_id,
        status,
        len(updated),
        len(skipped),
        len(selections),
        len(cascade_errors),
        actor_id(auth),
    )
    return {
        "status": status,
        "updated": len(updated),
        "updatedIds": updated,
        "skipped": skipped,
        "finalSelections": selections,
        "cascadeErrors": cascade_errors,
        "message": f"{len(updated)} attendance record(s) updated to {status}",
    }


def final_selection_reconcile(data, auth: AuthContext | None, db, cfg):
    job_id = require_field(data, "jobId")
    job = require_job(db, job_id)

    last = final_round(live_rounds(db, job_id))
    if last is None:
        return {"processed": 0, "tierUpgrades": 0, "finalSelections": [], "cascadeErrors": []}

    passed = (
        db.execute(
            select(RoundAttendance)
            .where(RoundAttendance.jobId == job_id)
            .where(RoundAttendance.roundId == last.roundId)
            .where(RoundAttendance.status == "PASSED")
            .order_by(RoundAttendance.markedAt.asc())
        )
        .scalars()
        .all()
    )

    selections: list[dict[str, Any]] = []
    cascade_errors: list[dict[str, Any]] = []
    upgraded = 0
    for rec in passed:
        result = run_final_selection_cascade(db, job=job, user_id=rec.userId, auth=auth)
        if result.selection is not None:
            selections.append(final_selected_dict(result.selection))
        if result.tier_upgraded:
            upgraded += 1
        cascade_errors.extend(result.errors)

    append_audit(
        db,
        entityType="JOB",
        entityId=job_id,
        action="FINAL_SELECTION_RECONCILE",
        actor=auth,
        meta={"processed": len(passed), "tierUpgrades": upgraded, "errors": len(cascade_errors)},
    )
    log.info("reconcile job=%s processed=%s errors=%s", job_id, len(passed), len(cascade_errors))
    return {
        "processed": len(passed),
        "tierUpgrades": upgraded,
        "finalSelections": selections,
        "cascadeErrors": cascade_errors,
    }


def final_selected_list(data, auth: AuthContext | None, db, cfg):
    job_id = require_field(data, "jobId")
    job = require_job(db, job_id)
    year = clean_str((data or {}).get("year"))
    page, limit = parse_page_args(data or {})

    q = select(FinalSelected).where(FinalSelected.jobId == job_id)
    cq = select(func.count()).select_from(FinalSelected).where(FinalSelected.jobId == job_id)
    if year:
        q = q.where(FinalSelected.year == year)
        cq = cq.where(FinalSelected.year == year)

    total = int(db.execute(cq).scalar() or 0)
    rows = (
        db.execute(
            q.order_by(FinalSelected.selectedAt.desc(), FinalSelected.selectionId.asc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        .scalars()
        .all()
    )
    profiles, users = _profile_map(db, list({r.userId for r in rows}))

    items = []
    for r in rows:
        item = final_selected_dict(r)
        item["student"] = student_card(users.get(r.userId), profiles.get(r.userId))
        item["job"] = {"title": job.title or "", "company": job.companyName or ""}
        items.append(item)
    return {"items": items, "pagination": _pagination(total, page, limit)}


def _optional_float(value: Any, label: str) -> Optional[float]:
    if value is None or str(value).strip() == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ApiError("BAD_REQUEST", f"{label} must be a number") from e


def final_selected_manual_upsert(data, auth: AuthContext | None, db, cfg):
    job_id = require_field(data, "jobId")
    user_id = require_field(data, "userId")
    job = require_job(db, job_id)

    if not find_application(db, job_id, user_id):
        raise ApiError("NOT_APPLIED", "User has not applied to this job")

    tier_raw = clean_str((data or {}).get("tier"))
    if tier_raw:
        tier = PlacementTier.parse(tier_raw)
        if tier is None:
            raise ApiError("BAD_REQUEST", "tier must be TIER_1|DREAM|TIER_2|TIER_3")
        tier_value = tier.value
    else:
        tier_value = str(job.tier or PlacementTier.TIER_3.value)
    package = _optional_float((data or {}).get("package"), "package")

    # Manual selections are an override only: no Placement row, no tier merge.
    row, created = upsert_final_selected(
        db,
        job=job,
        user_id=user_id,
        profile=load_profile(db, user_id),
        values={
            "tier": tier_value,
            "package": package if package is not None else job.maxSalary,
            "role": clean_str((data or {}).get("role")) or job.title or "",
            "isManual": True,
            "updatedBy": actor_id(auth),
        },
    )
    append_audit(
        db,
        entityType="FINAL_SELECTED",
        entityId=row.selectionId,
        action="FINAL_SELECTION_MANUAL_ADDED" if created else "FINAL_SELECTION_MANUAL_UPDATED",
        actor=auth,
        meta={"jobId": job_id, "userId": user_id, "isManual": True},
    )
    log.info("manual final selection job=%s user=%s created=%s by=%s", job_id, user_id, created, actor_id(auth))
    return {"selection": final_selected_dict(row), "created": created}


def final_selected_remove(data, auth: AuthContext | None, db, cfg):
    job_id = require_field(data, "jobId")
    selection_id = require_field(data, "selectionId")

    row = (
        db.execute(
            select(FinalSelected).where(FinalSelected.selectionId == selection_id).where(FinalSelected.jobId == job_id)
        )
        .scalars()
        .first()
    )
    if row is None:
        raise ApiError("NOT_FOUND", "Selection not found")

    user_id = row.userId
    db.delete(row)
    append_audit(
        db,
        entityType="FINAL_SELECTED",
        entityId=selection_id,
        action="FINAL_SELECTION_REMOVED",
        actor=auth,
        meta={"jobId": job_id, "userId": user_id},
    )
    log.info("final selection removed job=%s selection=%s by=%s", job_id, selection_id, actor_id(auth))
    return {"removed": selection_id, "message": "Selection removed successfully"}
