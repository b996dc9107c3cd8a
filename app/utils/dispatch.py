from __future__ import annotations

import logging
from typing import Any, Optional

from flask import current_app, g

import db as db_module
from actions import dispatch
from actions.helpers import append_audit
from app.utils.auth import get_current_user
from auth import assert_permission, role_or_public
from utils import ApiError, AuthContext

log = logging.getLogger("api")

# Rejections worth keeping in the audit trail even though the request rolled back.
_AUDITED_ERROR_CODES = {"AUTH_INVALID", "FORBIDDEN"}


def _write_error_audit(action: str, auth: Optional[AuthContext], err: ApiError) -> None:
    if err.code not in _AUDITED_ERROR_CODES:
        return
    db = db_module.SessionLocal()
    try:
        append_audit(
            db,
            entityType="API",
            entityId=str(auth.userId if auth else ""),
            action=action,
            actor=auth,
            toState=err.code,
            remark=err.message,
        )
        db.commit()
    except Exception:
        db.rollback()
        log.exception("failed to write error audit action=%s", action)
    finally:
        db.close()


def run_action(action: str, data: dict[str, Any]):
    """One unit of work per request: authenticate, authorize, dispatch, commit."""

    cfg = current_app.config["CFG"]
    action_u = str(action or "").upper().strip()

    db = db_module.SessionLocal()
    auth_ctx: Optional[AuthContext] = None
    try:
        auth_ctx = get_current_user(db)
        g.actor_user_id = auth_ctx.userId
        assert_permission(role_or_public(auth_ctx), action_u)

        out = dispatch(action_u, data or {}, auth_ctx, db, cfg)
        db.commit()
        return out
    except ApiError as e:
        db.rollback()
        _write_error_audit(action_u, auth_ctx, e)
        raise
    except Exception:
        db.rollback()
        log.exception("action failed action=%s", action_u)
        raise
    finally:
        db.close()
