"""Engine and session handling for the project database."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from project_service.config import Settings
from project_service.db.base import Base

logger = logging.getLogger(__name__)

_IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")

_SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA foreign_keys=ON",
    "PRAGMA synchronous=NORMAL",
    # Wait for the writer lock instead of failing immediately
    "PRAGMA busy_timeout=5000",
)


def _engine_options(database_url: str, echo: bool) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        return options

    # Sessions are opened from the API thread pool and the event consumer thread
    options["connect_args"] = {"check_same_thread": False}
    if database_url in _IN_MEMORY_URLS:
        options["poolclass"] = StaticPool
    elif database_url.startswith("sqlite:///"):
        Path(database_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
    return options


class DatabaseManager:
    """
    Owns the engine for projects, domains, repositories and tenant usage.

    The engine is created lazily. Every unit of work goes through
    :meth:`get_session`, which maps one ``with`` block to one transaction.
    """

    def __init__(
        self,
        database_url: str = "sqlite:///data/project_service.db",
        echo: bool = False,
    ) -> None:
        self._database_url = database_url
        self._echo = echo
        self._engine: Engine | None = None
        self._sessions: sessionmaker[Session] | None = None

    @classmethod
    def from_settings(cls, config: Settings) -> "DatabaseManager":
        return cls(database_url=config.database_url)

    @property
    def is_sqlite(self) -> bool:
        return self._database_url.startswith("sqlite")

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = create_engine(
                self._database_url, **_engine_options(self._database_url, self._echo)
            )
            if self.is_sqlite:
                event.listen(self._engine, "connect", self._apply_pragmas)
                logger.info("SQLite pragmas configured")
        return self._engine

    @staticmethod
    def _apply_pragmas(dbapi_connection: Any, connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        for pragma in _SQLITE_PRAGMAS:
            cursor.execute(pragma)
        cursor.close()

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Open a session bound to a single transaction.

        The transaction commits when the block exits normally and rolls back
        on any exception. Loaded objects stay usable after the block.

        Usage:
            with db_manager.get_session() as session:
                project = session.get(Project, project_id)
        """
        if self._sessions is None:
            self._sessions = sessionmaker(
                bind=self.engine,
                autoflush=False,
                expire_on_commit=False,
            )
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_db(self) -> None:
        """Create missing tables."""
        Base.metadata.create_all(bind=self.engine)
        logger.info(f"Schema ready ({len(Base.metadata.tables)} tables)")

    def health_check(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False
        return True

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._sessions = None
        logger.info("Database connection closed")
