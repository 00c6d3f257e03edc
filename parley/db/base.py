from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session


def get_engine(database_url: str) -> Engine:
    """Create an engine for the given database URL.

    For file-backed SQLite the parent directory is created and
    check_same_thread is disabled so worker threads can share the engine.
    """
    url = make_url(database_url)
    connect_args = {}
    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        if url.database and url.database != ":memory:":
            Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, connect_args=connect_args)


@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Context manager yielding a SQLAlchemy Session bound to engine."""
    session = Session(engine)
    try:
        yield session
    finally:
        session.close()
