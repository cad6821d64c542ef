"""
Database management layer.

Owns the SQLAlchemy engine and session factory behind the SQL session and
course stores, plus the transactional scope they write through.
"""

from contextlib import contextmanager
from typing import Generator, Optional
from sqlalchemy import create_engine, text, Engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool
from config import Settings, get_settings
import logging

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Lazily builds one engine per configured database URL.

    Server databases get a pre-pinged QueuePool sized from settings; SQLite
    URLs share a single StaticPool connection so an in-memory database
    survives across store calls.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = self._create_engine()
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            # Stores hand back detached rows, so attributes must survive commit
            self._session_factory = sessionmaker(
                bind=self.engine,
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
            )
        return self._session_factory

    def _create_engine(self) -> Engine:
        url = str(self.settings.database_url)
        echo = self.settings.log_level == "DEBUG"
        logger.info(f"Creating database engine for: {self._mask_password(url)}")

        if url.startswith("sqlite"):
            engine = create_engine(
                url,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
                echo=echo,
            )
        else:
            engine = create_engine(
                url,
                poolclass=QueuePool,
                pool_size=self.settings.db_pool_size,
                max_overflow=self.settings.db_max_overflow,
                pool_timeout=self.settings.db_pool_timeout,
                pool_pre_ping=True,
                echo=echo,
            )

        logger.info("Database engine created successfully")
        return engine

    def create_tables(self) -> None:
        """Create the session and course tables if they do not exist."""
        from persistence.models.entities import Base

        Base.metadata.create_all(self.engine)

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Yield a session that commits when the block exits cleanly.

        Any exception rolls the transaction back and propagates unchanged;
        the stores translate it into StoreFailureError.
        """
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Database transaction failed: {e}")
            raise
        finally:
            db.close()

    def health_check(self) -> bool:
        """True when a trivial query succeeds against the engine."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def close(self):
        """Dispose of pooled connections; the next use rebuilds the engine."""
        if self._engine:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine closed")

    @staticmethod
    def _mask_password(url: str) -> str:
        try:
            return make_url(url).render_as_string(hide_password=True)
        except ArgumentError:
            return url
