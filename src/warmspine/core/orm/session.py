"""SQLAlchemy engine factory for the state database.

* ``create_state_engine`` -- Create a SA engine from a URL.
* ``init_schema``         -- Create the warmspine tables if missing.
* ``session_factory``     -- A pre-configured ``sessionmaker``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from warmspine.core.orm.base import WarmBase


def create_state_engine(url: str = "sqlite:///data/warmspine.db", *, echo: bool = False, **kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    SQLite files get their parent directory created and WAL mode enabled;
    ``sqlite://`` (in-memory) uses a single shared connection so every
    thread sees the same database.
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs.setdefault("poolclass", StaticPool)
        else:
            db_path = url.split("///", 1)[-1]
            if db_path:
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        return engine

    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, echo=echo, **kwargs)


def init_schema(engine: Engine) -> None:
    """Create all warmspine tables that do not exist yet."""
    from warmspine.core.orm import tables  # noqa: F401  (register mappers)

    WarmBase.metadata.create_all(engine)


def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


__all__ = ["create_state_engine", "init_schema", "session_factory"]
