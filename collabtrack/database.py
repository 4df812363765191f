# collabtrack/database.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger("collabtrack.database")

Base = declarative_base()


class Database:
    """Owns the engine and session factory for one application instance.

    Built once by ``create_app``; ``initialize`` runs at startup and
    ``dispose`` at shutdown.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url

        # For SQLite we must add connect_args
        connect_args = {}
        if url.startswith("sqlite"):
            connect_args = {"check_same_thread": False}

        self.engine: Engine = create_engine(url, connect_args=connect_args, echo=echo)
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def initialize(self) -> None:
        # every model module must be imported so its table is on Base.metadata
        from collabtrack.models import attachment, comment, notification, project, task, user  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info("database_ready", extra={"url": self.engine.url.render_as_string(hide_password=True)})

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_db(request: Request) -> Iterator[Session]:
    database: Database = request.app.state.database
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()
