from __future__ import annotations

from typing import Any

from flask import request

from utils import ApiError


def require_json() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ApiError("BAD_REQUEST", "JSON body must be an object", status=400)
    return body


def optional_json() -> dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def query_args(*names: str) -> dict[str, str]:
    out: dict[str, str] = {}
    for name in names:
        value = str(request.args.get(name) or "").strip()
        if value:
            out[name] = value
    return out
