from __future__ import annotations

import atexit
import os
import weakref
from contextlib import contextmanager
from collections.abc import Generator

from flask import Flask
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.crm.errors import DatabaseUnavailable

# Engines opened by init_db and not yet closed. Held weakly so a discarded app
# (tests build many) does not keep its engine alive.
_live_engines: weakref.WeakSet[Engine] = weakref.WeakSet()


def _dispose_live_engines(close: bool = True) -> None:
    for engine in list(_live_engines):
        engine.dispose(close=close)


atexit.register(_dispose_live_engines)
if hasattr(os, "register_at_fork"):
    # Connections inherited from a preloading parent must not be shared.
    os.register_at_fork(after_in_child=lambda: _dispose_live_engines(close=False))


def create_db_engine(db_url: str) -> Engine:
    return create_engine(db_url, future=True, pool_pre_ping=True)


def ping(engine: Engine) -> None:
    """
    Synchronous health check. Raises DatabaseUnavailable if the store
    cannot be reached.
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        raise DatabaseUnavailable(f"Failed to ping database: {e}") from e


def init_db(app: Flask) -> None:
    db_url = app.config["DATABASE_URL"]
    if app.config.get("DATABASE_URL_IS_FALLBACK"):
        app.logger.warning(
            "CRM_DB_CONNECTION_STRING not set. Using fallback for local development."
        )
    try:
        engine = create_db_engine(db_url)
    except (SQLAlchemyError, ImportError, ValueError) as e:
        raise DatabaseUnavailable(f"Failed to open database connection: {e}") from e
    if app.config.get("ENV") != "production":
        @event.listens_for(engine, "checkout")
        def _receive_checkout(dbapi_connection, connection_record, connection_proxy):  # type: ignore[no-redef]
            app.logger.debug("DB connection checkout from pool")

    try:
        ping(engine)
    except DatabaseUnavailable:
        engine.dispose()
        raise
    app.logger.info("Successfully connected to database.")

    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )
    _live_engines.add(engine)


def close_db(app: Flask) -> None:
    engine: Engine | None = app.extensions.pop("sqlalchemy_engine", None)
    app.extensions.pop("sqlalchemy_sessionmaker", None)
    if engine is not None:
        _live_engines.discard(engine)
        engine.dispose()


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """
    Non-request helper for scripts and tests: yields a session and commits/rolls back.
    """
    sm = app.extensions["sqlalchemy_sessionmaker"]
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
