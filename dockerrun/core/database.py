# dockerrun/core/database.py
from databases import Database
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url

from dockerrun.models.db import Base


def sync_url(database_url: str) -> str:
    """The async URL with its driver dropped (sqlite+aiosqlite -> sqlite)."""
    url = make_url(database_url)
    return url.set(drivername=url.get_backend_name()).render_as_string(hide_password=False)


def create_schema(database_url: str) -> None:
    # Create tables if they don't exist (synchronous)
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_engine(sync_url(database_url), connect_args=connect_args)
    try:
        Base.metadata.create_all(engine)
    finally:
        engine.dispose()


def create_database(database_url: str) -> Database:
    create_schema(database_url)
    return Database(database_url)
