from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from app.core.config import Settings
from app.core.exceptions import DatabaseUnavailableError
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Engine plus session factory for one database.

    Created once at application startup, shared by every request (the engine
    owns the connection pool) and disposed at shutdown.
    """

    def __init__(self, url: str, echo: bool = False, **engine_kwargs):
        self.url = url
        self.engine: Engine = create_engine(url, pool_pre_ping=True, echo=echo, **engine_kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        if url.startswith("sqlite"):
            # ON DELETE SET NULL / CASCADE need foreign keys enabled per connection
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        url = settings.database_url
        if url.startswith("sqlite"):
            # Sessions are handed to FastAPI worker threads
            return cls(url, echo=False, connect_args={"check_same_thread": False})
        return cls(
            url,
            echo=settings.DEBUG,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )

    def create_all(self) -> None:
        """Create missing tables (development and tests; production uses managed DDL)."""
        # Register every model on Base.metadata
        import app.modules.auth.models  # noqa: F401
        import app.modules.clients.models  # noqa: F401
        import app.modules.invoices.models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def session(self) -> Session:
        return self.SessionLocal()

    def ping(self) -> bool:
        """Return True when a round trip to the database succeeds."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    def dispose(self) -> None:
        self.engine.dispose()


def get_database(request: Request) -> Database:
    database = getattr(request.app.state, "database", None)
    if database is None:
        raise DatabaseUnavailableError()
    return database


def get_db(request: Request) -> Iterator[Session]:
    """Genera una sesión de base de datos por petición."""
    db = get_database(request).session()
    try:
        yield db
    except Exception as e:
        logger.debug(f"Rolling back session after error: {e}")
        db.rollback()
        raise
    finally:
        db.close()
