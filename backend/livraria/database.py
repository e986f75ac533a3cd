"""Database engine and helpers.

The engine points at `DATABASE_URL` when set and otherwise at a local
SQLite file `livraria.db` next to the backend package. SQLite
connections get foreign keys switched on so cascades and constraints
behave like they do on a server database.
"""

from pathlib import Path

from sqlalchemy import event
from sqlmodel import SQLModel, create_engine, Session

from .config import settings

BASE = Path(__file__).resolve().parent.parent
DB_URL = settings.DATABASE_URL or f"sqlite:///{BASE / 'livraria.db'}"

_connect_args = {"check_same_thread": False} if DB_URL.startswith("sqlite") else {}
engine = create_engine(DB_URL, echo=False, connect_args=_connect_args)


if DB_URL.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def _sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_db_and_tables():
    """Create database tables using SQLModel metadata.

    Intended for local development, tests and the bootstrap scripts.
    """
    # models must be imported so their tables are registered
    from . import models  # noqa: F401
    SQLModel.metadata.create_all(engine)


def get_session():
    """Yield a database `Session` for FastAPI dependency injection."""
    with Session(engine) as session:
        yield session
