"""Database session management for synchronous SQLAlchemy.

The analysis engine runs request/response style, so it uses the
synchronous engine and ``Session``. Hosts either pass their own
``sessionmaker`` to the services or use the module-level helpers here,
which are configured lazily from ``DatabaseConfig``.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from featuregraph.config import DatabaseConfig
from featuregraph.db.models import Base
from featuregraph.logging_config import get_logger

logger = get_logger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def create_db_engine(config: DatabaseConfig) -> Engine:
    """Create an engine for the configured database URL.

    SQLite connections are shared across threads (the orchestrator runs
    jobs on a thread pool); in-memory SQLite additionally needs a single
    static connection so every session sees the same database. SQLite
    transactions start with BEGIN IMMEDIATE: a second writer waits up to
    ``busy_timeout_seconds`` for the write lock instead of failing with
    "database is locked" when it upgrades a read transaction.
    """
    kwargs: dict = {"echo": config.echo}
    if config.url.startswith("sqlite"):
        kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": config.busy_timeout_seconds,
        }
        if ":memory:" in config.url or config.url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_size"] = config.pool_size
        kwargs["max_overflow"] = config.max_overflow
        kwargs["pool_pre_ping"] = True
    engine = create_engine(config.url, **kwargs)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_savepoints(engine)
    return engine


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy own BEGIN so SAVEPOINT works with pysqlite.

    Every transaction takes the write lock up front, so sessions that read
    and then write queue on the busy timeout rather than deadlocking.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to ``engine``."""
    return sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


def configure_database(config: DatabaseConfig) -> sessionmaker:
    """Configure the module-level engine and session factory."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = create_db_engine(config)
    _session_factory = create_session_factory(_engine)
    return _session_factory


def get_session_factory() -> sessionmaker:
    """Return the module-level session factory, configuring defaults if needed."""
    if _session_factory is None:
        return configure_database(DatabaseConfig())
    return _session_factory


@contextmanager
def get_sync_session(factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    """Provide a session that commits on success and rolls back on error.

    Usage:
        with get_sync_session() as session:
            ConnectionService(session).create_connection(...)
    """
    factory = factory or get_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """Create all tables and verify connectivity."""
    try:
        Base.metadata.create_all(engine)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Database schema ready")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def close_db() -> None:
    """Dispose of the module-level engine."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
        logger.info("Database connections closed")
    _engine = None
    _session_factory = None
