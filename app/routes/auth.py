from __future__ import annotations

from flask import Blueprint, jsonify

from app.utils.dispatch import run_action

auth_bp = Blueprint("auth", __name__)


@auth_bp.get("/me")
def me():
    return jsonify({"success": True, "data": run_action("GET_ME", {})})
