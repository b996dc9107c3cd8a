from __future__ import annotations

from typing import Any, Callable

from actions.attendance import attendance_confirm, attendance_qr_status, attendance_scan
from actions.auth_actions import get_me
from actions.exports import export_job
from actions.rounds import round_create, round_move, round_remove, round_rename, round_reorder, rounds_list
from actions.sessions import session_start, session_update, sessions_list
from actions.shortlisting import (
    final_selected_list,
    final_selected_manual_upsert,
    final_selected_remove,
    final_selection_reconcile,
    round_attendance_list,
    round_attendance_status_update,
)
from utils import ApiError, AuthContext

Handler = Callable[..., Any]

ACTION_HANDLERS: dict[str, Handler] = {
    "GET_ME": get_me,
    "ATTENDANCE_QR_STATUS": attendance_qr_status,
    "ATTENDANCE_SCAN": attendance_scan,
    "ATTENDANCE_CONFIRM": attendance_confirm,
    "ROUNDS_LIST": rounds_list,
    "ROUND_CREATE": round_create,
    "ROUND_REORDER": round_reorder,
    "ROUND_MOVE": round_move,
    "ROUND_RENAME": round_rename,
    "ROUND_REMOVE": round_remove,
    "SESSIONS_LIST": sessions_list,
    "SESSION_START": session_start,
    "SESSION_UPDATE": session_update,
    "ROUND_ATTENDANCE_LIST": round_attendance_list,
    "ROUND_ATTENDANCE_STATUS_UPDATE": round_attendance_status_update,
    "FINAL_SELECTED_LIST": final_selected_list,
    "FINAL_SELECTED_MANUAL_UPSERT": final_selected_manual_upsert,
    "FINAL_SELECTED_REMOVE": final_selected_remove,
    "FINAL_SELECTION_RECONCILE": final_selection_reconcile,
    "EXPORT": export_job,
}


def dispatch(action: str, data: dict, auth: AuthContext | None, db, cfg):
    action_u = str(action or "").upper().strip()
    handler = ACTION_HANDLERS.get(action_u)
    if handler is None:
        raise ApiError("BAD_REQUEST", f"Unknown action: {action_u}")
    return handler(data or {}, auth, db, cfg)
