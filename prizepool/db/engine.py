import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .utils import resolve_sqlite_url

# Get DB url
load_dotenv()
# Project root directory (repo root)
ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_SQLITE_URL = resolve_sqlite_url(
    os.getenv("POOL_DB_URL", "sqlite:///./pool.db"), ROOT_DIR
)


def _configure_sqlite(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Let SQLAlchemy own BEGIN so SAVEPOINTs nest inside a real transaction.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def make_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """Create the pool database engine.

    ``database_url`` defaults to ``POOL_DB_URL`` (relative SQLite paths are
    resolved against the repository root).
    """

    url = database_url or DEFAULT_SQLITE_URL
    engine = create_engine(url, echo=echo, future=True)
    if url.startswith("sqlite"):
        _configure_sqlite(engine)
    return engine


def get_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,  # Keep draws and distributions readable after commit
        future=True,
    )
