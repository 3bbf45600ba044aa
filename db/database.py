"""
DeckRecall – Database initialisation & session management
==========================================================
Creates the SQLite database file next to the application and provides
a session factory for the rest of the app.
"""

import os
import sys
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from db.models import Base

# ---------------------------------------------------------------------------
# Resolve a user-data directory that survives packaging with PyInstaller.
# ---------------------------------------------------------------------------

def _app_data_dir() -> Path:
    """Return a stable directory for the SQLite file."""
    if getattr(sys, "frozen", False):
        # Running as a PyInstaller bundle
        base = Path(sys.executable).parent
    else:
        base = Path(__file__).resolve().parent.parent
    return base / "data"


def _database_url() -> str:
    url = os.environ.get("DECKRECALL_DATABASE_URL")
    if url:
        return url
    data_dir = _app_data_dir()
    data_dir.mkdir(exist_ok=True)
    return f"sqlite:///{data_dir / 'deckrecall.db'}"


def _set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key enforcement for every SQLite connection."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str) -> Engine:
    """Create an engine; SQLite connections get foreign keys switched on."""
    kwargs = {"echo": False}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    engine = create_engine(url, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _set_sqlite_pragma)
    return engine


# Created lazily by get_engine().
_engine = None
SessionLocal = sessionmaker(expire_on_commit=False)


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = make_engine(_database_url())
        SessionLocal.configure(bind=_engine)
    return _engine


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------

def init_db(engine: Engine = None) -> None:
    """Create all tables if they do not exist yet."""
    Base.metadata.create_all(bind=engine or get_engine())


def get_session() -> Session:
    """Return a new SQLAlchemy session."""
    get_engine()
    return SessionLocal()
