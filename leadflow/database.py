"""
Database engine + session factory.

DATABASE_URL picks the backend: SQLite for local work, Postgres when deployed.
Services open one session per unit of work with get_session() and own its
commit/rollback/close.
"""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from leadflow.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


def normalize_database_url(url: str) -> str:
    """SQLAlchemy 2.x only accepts the postgresql:// scheme."""
    if url.startswith('postgres://'):
        return 'postgresql://' + url[len('postgres://'):]
    return url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # Entries, checklist states and tags reference leads/stages by id.
    cursor = dbapi_connection.cursor()
    cursor.execute('PRAGMA foreign_keys=ON')
    cursor.close()


def build_engine(url: str):
    url = normalize_database_url(url)
    if url.startswith('sqlite'):
        sqlite_engine = create_engine(url, connect_args={'check_same_thread': False})
        event.listen(sqlite_engine, 'connect', _enable_sqlite_foreign_keys)
        return sqlite_engine
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine)


def get_session():
    """Return a new DB session."""
    return SessionLocal()
