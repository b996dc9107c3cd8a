from __future__ import annotations

from flask import Blueprint, jsonify

from app.utils.dispatch import run_action
from app.utils.validators import query_args, require_json

attendance_bp = Blueprint("attendance", __name__)


@attendance_bp.get("/qr")
def qr_status():
    return jsonify({"success": True, "data": run_action("ATTENDANCE_QR_STATUS", query_args("jobId"))})


@attendance_bp.post("/scan")
def scan():
    body = require_json()
    data = {
        "qrData": body.get("qrData"),
        "jobId": body.get("jobId"),
        "location": body.get("location"),
    }
    return jsonify({"success": True, "data": run_action("ATTENDANCE_SCAN", data)})


@attendance_bp.post("/confirm")
def confirm():
    body = require_json()
    data = {k: body.get(k) for k in ("userId", "jobId", "roundId", "sessionId", "location")}
    return jsonify({"success": True, "data": run_action("ATTENDANCE_CONFIRM", data)}), 201
