from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select

from actions.helpers import actor_id, append_audit, live_rounds, require_field, require_job
from actions.sessions import assert_round_has_no_open_session, round_session_summary, session_dict
from models import JobRound, RoundAttendance
from utils import ApiError, AuthContext, clean_str, iso_utc_now, new_prefixed_id

log = logging.getLogger("rounds")


def _round_dict(r: JobRound) -> dict[str, Any]:
    return {
        "roundId": r.roundId,
        "jobId": r.jobId,
        "name": r.name,
        "order": int(r.order or 0),
        "updatedAt": r.updatedAt,
    }


def _lock_live_round(db, job_id: str, round_id: str) -> JobRound:
    rnd = (
        db.execute(
            select(JobRound).where(JobRound.roundId == round_id).where(JobRound.jobId == job_id).with_for_update()
        )
        .scalars()
        .first()
    )
    if not rnd or rnd.isRemoved:
        raise ApiError("NOT_FOUND", "Round not found")
    return rnd


def rounds_list(data, auth: AuthContext | None, db, cfg):
    job_id = require_field(data, "jobId")
    require_job(db, job_id)

    rounds = live_rounds(db, job_id)
    latest = round_session_summary(db, job_id)
    counts = dict(
        db.execute(
            select(RoundAttendance.roundId, func.count())
            .where(RoundAttendance.jobId == job_id)
            .group_by(RoundAttendance.roundId)
        ).all()
    )

    items: list[dict[str, Any]] = []
    for r in rounds:
        item = _round_dict(r)
        s = latest.get(r.roundId)
        item["latestSession"] = session_dict(s) if s else None
        item["attendanceCount"] = int(counts.get(r.roundId, 0))
        items.append(item)
    return {"items": items, "total": len(items)}


def round_create(data, auth: AuthContext | None, db, cfg):
    job_id = require_field(data, "jobId")
    require_job(db, job_id)

    raw_names = (data or {}).get("names")
    if raw_names is None and (data or {}).get("name") is not None:
        raw_names = [data.get("name")]
    if not isinstance(raw_names, list):
        raise ApiError("BAD_REQUEST", "names must be a list")
    names = [clean_str(n) for n in raw_names if clean_str(n)]
    if not names:
        raise ApiError("BAD_REQUEST", "At least one round name is required")

    max_order = db.execute(
        select(func.max(JobRound.order)).where(JobRound.jobId == job_id).where(JobRound.isRemoved == False)  # noqa: E712
    ).scalar()
    next_order = int(max_order or 0) + 1

    now = iso_utc_now()
    created: list[JobRound] = []
    for name in names:
        r = JobRound(
            roundId=new_prefixed_id("RND"),
            jobId=job_id,
            name=name,
            order=next_order,
            isRemoved=False,
            createdAt=now,
            updatedAt=now,
            updatedBy=actor_id(auth),
        )
        db.add(r)
        created.append(r)
        next_order += 1
    db.flush(created)

    append_audit(
        db,
        entityType="JOB",
        entityId=job_id,
        action="ROUND_CREATE",
        actor=auth,
        meta={"rounds": [{"roundId": r.roundId, "name": r.name, "order": r.order} for r in created]},
    )
    return {"items": [_round_dict(r) for r in created]}


def _swap(db, auth, a: JobRound, b: JobRound) -> None:
    now = iso_utc_now()
    a_order, b_order = int(a.order), int(b.order)
    a.order, b.order = b_order, a_order
    for r in (a, b):
        r.updatedAt = now
        r.updatedBy = actor_id(auth)
    db.flush([a, b])

    append_audit(
        db,
        entityType="JOB",
        entityId=a.jobId,
        action="ROUND_REORDER",
        actor=auth,
        meta={"swapped": [{"roundId": a.roundId, "order": a.order}, {"roundId": b.roundId, "order": b.order}]},
    )


def round_reorder(data, auth: AuthContext | None, db, cfg):
    job_id = require_field(data, "jobId")
    round_id = require_field(data, "roundId")
    other_id = require_field(data, "otherRoundId")
    if round_id == other_id:
        raise ApiError("BAD_REQUEST", "Pick two different rounds to swap")

    a = _lock_live_round(db, job_id, round_id)
    b = _lock_live_round(db, job_id, other_id)
    _swap(db, auth, a, b)
    return {"items": [_round_dict(r) for r in live_rounds(db, job_id)]}


def round_move(data, auth: AuthContext | None, db, cfg):
    job_id = require_field(data, "jobId")
    round_id = require_field(data, "roundId")
    direction = str((data or {}).get("direction") or "").lower().strip()
    if direction not in {"up", "down"}:
        raise ApiError("BAD_REQUEST", "direction must be up|down")

    rounds = live_rounds(db, job_id)
    idx = next((i for i, r in enumerate(rounds) if r.roundId == round_id), None)
    if idx is None:
        raise ApiError("NOT_FOUND", "Round not found")

    other_idx = idx - 1 if direction == "up" else idx + 1
    if other_idx < 0 or other_idx >= len(rounds):
        raise ApiError("BAD_REQUEST", f"Round is already {'first' if direction == 'up' else 'last'}")

    a = _lock_live_round(db, job_id, round_id)
    b = _lock_live_round(db, job_id, rounds[other_idx].roundId)
    _swap(db, auth, a, b)
    return {"items": [_round_dict(r) for r in live_rounds(db, job_id)]}


def round_rename(data, auth: AuthContext | None, db, cfg):
    job_id = require_field(data, "jobId")
    round_id = require_field(data, "roundId")
    name = require_field(data, "name")

    rnd = _lock_live_round(db, job_id, round_id)
    old = rnd.name
    rnd.name = name
    rnd.updatedAt = iso_utc_now()
    rnd.updatedBy = actor_id(auth)

    append_audit(
        db,
        entityType="JOB_ROUND",
        entityId=rnd.roundId,
        action="ROUND_RENAME",
        actor=auth,
        fromState=old,
        toState=name,
    )
    return _round_dict(rnd)


def round_remove(data, auth: AuthContext | None, db, cfg):
    job_id = require_field(data, "jobId")
    round_id = require_field(data, "roundId")

    rnd = _lock_live_round(db, job_id, round_id)
    assert_round_has_no_open_session(db, round_id)

    removed_order = int(rnd.order)
    now = iso_utc_now()
    rnd.isRemoved = True
    rnd.updatedAt = now
    rnd.updatedBy = actor_id(auth)

    # Keep live orders contiguous (1..n).
    later = (
        db.execute(
            select(JobRound)
            .where(JobRound.jobId == job_id)
            .where(JobRound.isRemoved == False)  # noqa: E712
            .where(JobRound.order > removed_order)
            .where(JobRound.roundId != round_id)
            .with_for_update()
        )
        .scalars()
        .all()
    )
    for r in later:
        r.order = int(r.order) - 1
        r.updatedAt = now
        r.updatedBy = actor_id(auth)

    append_audit(
        db,
        entityType="JOB_ROUND",
        entityId=rnd.roundId,
        action="ROUND_REMOVE",
        actor=auth,
        meta={"jobId": job_id, "order": removed_order, "shifted": len(later)},
    )
    log.info("round removed job=%s round=%s shifted=%s", job_id, round_id, len(later))
    db.flush()
    return {"removed": rnd.roundId, "items": [_round_dict(r) for r in live_rounds(db, job_id)]}
