from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from app.db import ping_db
from utils import iso_utc_now

core_bp = Blueprint("core", __name__)


@core_bp.get("/health")
def health():
    cfg = current_app.config["CFG"]
    engine = current_app.extensions.get("db_engine")
    db_ok = engine is not None and ping_db(engine)
    body = {
        "status": "ok" if db_ok else "degraded",
        "time": iso_utc_now(),
        "version": cfg.APP_VERSION,
        "db": "ok" if db_ok else "error",
        "dbDialect": engine.dialect.name if engine is not None else None,
    }
    return jsonify(body), 200 if db_ok else 503


@core_bp.get("/version")
def version():
    cfg = current_app.config["CFG"]
    return jsonify(
        {
            "version": cfg.APP_VERSION,
            "env": cfg.ENV,
            "timezone": cfg.APP_TIMEZONE,
            "qrTokenTtlSeconds": cfg.QR_TOKEN_TTL_SECONDS,
            "time": iso_utc_now(),
        }
    )
