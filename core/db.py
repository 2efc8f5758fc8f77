import logging
from contextlib import contextmanager
from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine configured for the given database type."""
    if url.startswith("sqlite"):
        # For SQLite, use StaticPool for in-memory databases and enable foreign keys
        engine = create_engine(
            url,
            echo=echo,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool if ":memory:" in url else None,
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    # For PostgreSQL and other databases
    return create_engine(url, echo=echo, future=True, pool_pre_ping=True)


class Database:
    """
    Storage handle owning the engine and session factory.

    Built once at process start (see the lifespan in main.py) and disposed
    on shutdown; request handlers get sessions through ``get_db``.
    """

    def __init__(self, url: str, echo: bool = False, engine: Engine | None = None):
        self.url = url
        self.engine = engine or build_engine(url, echo=echo)
        self.SessionLocal = sessionmaker(
            bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    def create_all(self) -> None:
        # Import models so that SQLAlchemy metadata includes them
        import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        Base.metadata.drop_all(bind=self.engine)

    def dispose(self) -> None:
        logger.info("Closing database connections")
        self.engine.dispose()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.database.SessionLocal()
    try:
        yield db
    finally:
        db.close()
