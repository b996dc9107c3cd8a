from __future__ import annotations

from flask import Flask, request

from app.middlewares.logging import client_ip
from app.utils.rate_limiter import InMemoryRateLimiter

_limiter = InMemoryRateLimiter()

_SCAN_PATHS = {"/api/v1/attendance/scan", "/api/v1/attendance/confirm"}


def reset_rate_limits() -> None:
    _limiter.reset()


def init_rate_limiting(app: Flask) -> None:
    cfg = app.config["CFG"]

    @app.before_request
    def _rate_limit():
        path = request.path or ""
        if not path.startswith("/api/v1/"):
            return None

        ip = client_ip()
        _limiter.check(f"{ip}:GLOBAL", cfg.RATE_LIMIT_GLOBAL)
        if path in _SCAN_PATHS:
            _limiter.check(f"{ip}:SCAN", cfg.RATE_LIMIT_SCAN)
        else:
            _limiter.check(f"{ip}:PATH:{path}", cfg.RATE_LIMIT_DEFAULT)
        return None
