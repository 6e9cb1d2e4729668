"""Database configuration and session management"""

from typing import Generator, Optional
import logging

from fastapi import Request
from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# Create base class for models
Base = declarative_base()

# Import models after Base is defined so metadata is populated.
from trackyr import models  # noqa: E402,F401


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Process-wide persistence handle.

    The engine is created by ``connect()`` and released by ``disconnect()``;
    the application calls both from its startup/shutdown hooks and hands the
    instance to request handlers through ``app.state``.
    """

    def __init__(
        self,
        url: str,
        *,
        pool_size: int = 10,
        max_overflow: int = 20,
        echo: bool = False,
        init_mode: str = "migrate",
        require_head: bool = True,
    ) -> None:
        self.url = url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.echo = echo
        self.init_mode = init_mode
        self.require_head = require_head
        self._engine: Optional[Engine] = None
        self._sessionmaker: Optional[sessionmaker] = None

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            settings.get_database_url(),
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            echo=settings.DEBUG,
            init_mode=settings.DB_INIT_MODE,
            require_head=settings.DB_REQUIRE_HEAD,
        )

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not connected. Call connect() first.")
        return self._engine

    def _create_engine(self) -> Engine:
        if self.url.startswith("sqlite"):
            kwargs = {"connect_args": {"check_same_thread": False}, "echo": self.echo}
            if self.url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
            engine = create_engine(self.url, **kwargs)
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
            return engine

        return create_engine(
            self.url,
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
            pool_timeout=30,
            pool_recycle=3600,
            pool_pre_ping=True,
            echo=self.echo,
        )

    def connect(self) -> None:
        """Create the engine, verify connectivity and apply the init strategy"""
        if self._engine is not None:
            return
        self._engine = self._create_engine()
        self._sessionmaker = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self._engine
        )
        try:
            self.ping()
            self._init_schema()
        except Exception:
            self.disconnect()
            raise
        logger.info("Database connected (%s)", self._engine.dialect.name)

    def disconnect(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.info("Database disconnected")

    def session(self) -> Session:
        if self._sessionmaker is None:
            raise RuntimeError("Database is not connected. Call connect() first.")
        return self._sessionmaker()

    def ping(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def _init_schema(self) -> None:
        """
        Initialize database according to configured strategy.

        DB_INIT_MODE:
          - migrate: require alembic_version table (migration-first discipline)
          - create_all: create tables from model metadata (local/dev, tests)
          - off: skip initialization check
        """
        mode = self.init_mode.lower().strip()
        if mode == "off":
            logger.info("DB initialization check skipped (DB_INIT_MODE=off)")
            return

        if mode == "create_all":
            Base.metadata.create_all(bind=self.engine)
            logger.warning("Using create_all database initialization (recommended only for local development).")
            return

        if mode == "migrate":
            with self.engine.connect() as conn:
                exists = "alembic_version" in inspect(conn).get_table_names()
            if self.require_head and not exists:
                raise RuntimeError(
                    "Migration table missing. Run Alembic migrations before starting the API."
                )
            logger.info("Migration metadata detected.")
            return

        raise RuntimeError(f"Unknown DB_INIT_MODE: {self.init_mode}")


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Dependency for getting database session

    Yields:
        Session: Database session
    """
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
