from __future__ import annotations

from typing import Optional

from utils import ApiError, AuthContext, normalize_role


STATIC_RBAC_PERMISSIONS: dict[str, list[str]] = {
    "GET_ME": ["ADMIN", "STUDENT"],
    "ATTENDANCE_QR_STATUS": ["STUDENT"],
    "ATTENDANCE_SCAN": ["ADMIN"],
    "ATTENDANCE_CONFIRM": ["ADMIN"],
    "ROUNDS_LIST": ["ADMIN"],
    "ROUND_CREATE": ["ADMIN"],
    "ROUND_REORDER": ["ADMIN"],
    "ROUND_MOVE": ["ADMIN"],
    "ROUND_RENAME": ["ADMIN"],
    "ROUND_REMOVE": ["ADMIN"],
    "SESSIONS_LIST": ["ADMIN"],
    "SESSION_START": ["ADMIN"],
    "SESSION_UPDATE": ["ADMIN"],
    "ROUND_ATTENDANCE_LIST": ["ADMIN"],
    "ROUND_ATTENDANCE_STATUS_UPDATE": ["ADMIN"],
    "FINAL_SELECTED_LIST": ["ADMIN"],
    "FINAL_SELECTED_MANUAL_UPSERT": ["ADMIN"],
    "FINAL_SELECTED_REMOVE": ["ADMIN"],
    "FINAL_SELECTION_RECONCILE": ["ADMIN"],
    "EXPORT": ["ADMIN"],
}

KNOWN_ROLES = {"ADMIN", "STUDENT"}


def role_or_public(auth: Optional[AuthContext]) -> str:
    if not auth or not auth.valid:
        return "PUBLIC"
    return normalize_role(auth.role) or "PUBLIC"


def assert_permission(role: str, action: str) -> None:
    role_u = normalize_role(role) or ""
    action_u = str(action or "").upper().strip()

    allowed = STATIC_RBAC_PERMISSIONS.get(action_u)
    if not allowed:
        raise ApiError("BAD_REQUEST", f"Unknown action: {action_u}")

    if not role_u or role_u == "PUBLIC":
        raise ApiError("AUTH_INVALID", "Login required")
    if role_u not in KNOWN_ROLES:
        raise ApiError("FORBIDDEN", f"Inactive or unknown role: {role_u}")

    if role_u not in allowed:
        raise ApiError("FORBIDDEN", "Not allowed", details={"action": action_u, "required": allowed})
