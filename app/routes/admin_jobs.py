from __future__ import annotations

from io import BytesIO

from flask import Blueprint, current_app, jsonify, send_file

from app.reports.excel import build_workbook_bytes
from app.utils.dispatch import run_action
from app.utils.validators import optional_json, query_args, require_json
from utils import ApiError

admin_jobs_bp = Blueprint("admin_jobs", __name__)

_ROUND_UPDATE_ACTIONS = {"reorder": "ROUND_REORDER", "move": "ROUND_MOVE", "rename": "ROUND_RENAME"}


def _ok(data, status: int = 200):
    return jsonify({"success": True, "data": data}), status


def _round_update_action(body: dict) -> str:
    op = str(body.get("action") or "").strip().lower()
    if op:
        if op not in _ROUND_UPDATE_ACTIONS:
            raise ApiError("BAD_REQUEST", "action must be reorder|move|rename")
        return _ROUND_UPDATE_ACTIONS[op]
    if body.get("otherRoundId"):
        return "ROUND_REORDER"
    if body.get("direction"):
        return "ROUND_MOVE"
    if body.get("name"):
        return "ROUND_RENAME"
    raise ApiError("BAD_REQUEST", "Nothing to update")


@admin_jobs_bp.get("/<job_id>/rounds")
def rounds_list(job_id: str):
    return _ok(run_action("ROUNDS_LIST", {"jobId": job_id}))


@admin_jobs_bp.post("/<job_id>/rounds")
def rounds_create(job_id: str):
    body = require_json()
    return _ok(run_action("ROUND_CREATE", {**body, "jobId": job_id}), 201)


@admin_jobs_bp.put("/<job_id>/rounds")
def rounds_update(job_id: str):
    body = require_json()
    return _ok(run_action(_round_update_action(body), {**body, "jobId": job_id}))


@admin_jobs_bp.delete("/<job_id>/rounds")
def rounds_remove(job_id: str):
    data = {**optional_json(), **query_args("roundId"), "jobId": job_id}
    return _ok(run_action("ROUND_REMOVE", data))


@admin_jobs_bp.get("/<job_id>/sessions")
def sessions_list(job_id: str):
    return _ok(run_action("SESSIONS_LIST", {"jobId": job_id}))


@admin_jobs_bp.post("/<job_id>/sessions")
def sessions_start(job_id: str):
    body = require_json()
    return _ok(run_action("SESSION_START", {**body, "jobId": job_id}), 201)


@admin_jobs_bp.put("/<job_id>/sessions")
def sessions_update(job_id: str):
    body = require_json()
    return _ok(run_action("SESSION_UPDATE", {**body, "jobId": job_id}))


@admin_jobs_bp.get("/<job_id>/round-attendance")
def round_attendance_list(job_id: str):
    data = {**query_args("roundId", "status", "page", "limit"), "jobId": job_id}
    return _ok(run_action("ROUND_ATTENDANCE_LIST", data))


@admin_jobs_bp.put("/<job_id>/round-attendance")
def round_attendance_update(job_id: str):
    body = require_json()
    return _ok(run_action("ROUND_ATTENDANCE_STATUS_UPDATE", {**body, "jobId": job_id}))


@admin_jobs_bp.get("/<job_id>/final-selected")
def final_selected_list(job_id: str):
    data = {**query_args("year", "page", "limit"), "jobId": job_id}
    return _ok(run_action("FINAL_SELECTED_LIST", data))


@admin_jobs_bp.post("/<job_id>/final-selected")
def final_selected_add(job_id: str):
    body = require_json()
    return _ok(run_action("FINAL_SELECTED_MANUAL_UPSERT", {**body, "jobId": job_id}), 201)


@admin_jobs_bp.delete("/<job_id>/final-selected")
def final_selected_remove(job_id: str):
    data = {**optional_json(), **query_args("selectionId"), "jobId": job_id}
    return _ok(run_action("FINAL_SELECTED_REMOVE", data))


@admin_jobs_bp.post("/<job_id>/final-selected/reconcile")
def final_selected_reconcile(job_id: str):
    return _ok(run_action("FINAL_SELECTION_RECONCILE", {"jobId": job_id}))


@admin_jobs_bp.get("/<job_id>/export.xlsx")
def export_xlsx(job_id: str):
    data = {**query_args("type", "roundId", "status", "columns", "selectedIds"), "jobId": job_id}
    export = run_action("EXPORT", data)

    xlsx_bytes = build_workbook_bytes(
        report_type=export["type"],
        job=export["job"],
        sheet=export["sheet"],
        filters={k: v for k, v in data.items() if k in {"roundId", "status"}},
        timezone_display=current_app.config["CFG"].APP_TIMEZONE,
    )
    return send_file(
        BytesIO(xlsx_bytes),
        as_attachment=True,
        download_name=export["filename"],
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
