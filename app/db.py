from __future__ import annotations

import logging

from flask import Flask
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

import models  # noqa: F401  registers tables on Base.metadata
from db import Base, init_engine


def init_database(app: Flask) -> None:
    cfg = app.config["CFG"]
    engine = init_engine(cfg.DATABASE_URL)
    Base.metadata.create_all(engine)
    app.extensions["db_engine"] = engine


def ping_db(engine) -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        logging.getLogger("app").warning("database ping failed", exc_info=True)
        return False
