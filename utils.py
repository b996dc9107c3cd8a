from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as dt_parser
from zoneinfo import ZoneInfo

_STATUS_BY_CODE = {
    "BAD_REQUEST": 400,
    "TOKEN_INVALID": 400,
    "TOKEN_EXPIRED": 400,
    "AUTH_INVALID": 401,
    "FORBIDDEN": 403,
    "KYC_REQUIRED": 403,
    "NOT_APPLIED": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "ALREADY_ATTENDED": 409,
    "SESSION_NOT_ACTIVE": 409,
    "ROUND_NOT_REACHABLE": 409,
    "NOT_ELIGIBLE": 409,
    "RATE_LIMITED": 429,
    "INTERNAL": 500,
}


def status_for_code(code: str) -> int:
    return _STATUS_BY_CODE.get(str(code or "").upper().strip(), 500)


class ApiError(Exception):
    def __init__(self, code: str, message: str, status: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.code = str(code or "INTERNAL").upper().strip()
        self.message = str(message or "")
        self.status = int(status) if status is not None else status_for_code(self.code)
        self.details = details


@dataclass(frozen=True)
class AuthContext:
    valid: bool
    userId: str
    email: str
    role: str


def normalize_role(role: Any) -> Optional[str]:
    r = str(role or "").strip().upper()
    return r or None


def iso_utc_now() -> str:
    dt = datetime.now(timezone.utc)
    # Match JS Date.toJSON() millisecond precision.
    dt = dt.replace(microsecond=(dt.microsecond // 1000) * 1000)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_iso_utc(dt: datetime) -> str:
    x = dt.astimezone(timezone.utc)
    x = x.replace(microsecond=(x.microsecond // 1000) * 1000)
    return x.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_datetime_maybe(value: Any, *, app_timezone: str = "Asia/Kolkata") -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value or "").strip()
        if not s:
            return None
        try:
            dt = dt_parser.parse(s)
        except (ValueError, OverflowError):
            return None

    if dt.tzinfo is None:
        try:
            dt = dt.replace(tzinfo=ZoneInfo(app_timezone))
        except Exception:
            dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def new_prefixed_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def new_log_id() -> str:
    return new_prefixed_id("LOG")


def safe_json_string(value: Any, fallback: str = "") -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return fallback


def parse_json_list(raw: Any) -> list[Any]:
    if isinstance(raw, list):
        return raw
    s = str(raw or "").strip()
    if not s:
        return []
    try:
        v = json.loads(s)
    except ValueError:
        return []
    return v if isinstance(v, list) else []


def clean_str(value: Any) -> str:
    return str(value or "").strip()


def parse_page_args(data: dict[str, Any], *, default_limit: int = 50, max_limit: int = 500) -> tuple[int, int]:
    try:
        page = int(data.get("page") or 1)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(data.get("limit") or default_limit)
    except (TypeError, ValueError):
        limit = default_limit
    return max(1, page), max(1, min(max_limit, limit))
