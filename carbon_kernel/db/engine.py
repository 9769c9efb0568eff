"""
Module: carbon_kernel.db.engine
Responsibility: Engine initialization, session factory and transactional
    scope helpers.  Single point of database connection configuration.
Architecture position: Kernel > DB.  Imports db/base.py only (models are
    imported lazily by create_tables so their tables are registered).

Backends:
    - PostgreSQL (psycopg2): QueuePool with pre-ping, READ COMMITTED, and
      ``SELECT ... FOR UPDATE`` row locks taken by the services.
    - SQLite: for tests and local runs.  In-memory URLs share one connection
      (StaticPool).  Transactions start with ``BEGIN IMMEDIATE`` so writers
      serialize on the database lock instead of failing on lock upgrade;
      SQLite ignores FOR UPDATE.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory are called
      before init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from carbon_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    # pysqlite's own BEGIN handling breaks SAVEPOINT; take it over.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Initialize the module-level engine and session factory.

    A second call replaces the first; call ``reset_engine()`` in between
    to release the old pool.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        in_memory = url.database in (None, "", ":memory:")
        kwargs: dict = {
            "connect_args": {"check_same_thread": False, "timeout": pool_timeout},
        }
        if in_memory:
            kwargs["poolclass"] = StaticPool
        _engine = create_engine(database_url, echo=echo, **kwargs)
        _install_sqlite_transaction_hooks(_engine)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """Factory for callers that need one session per thread."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Commit on normal exit, roll back and re-raise on error, always close."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    from carbon_kernel.db.base import Base
    import carbon_kernel.models  # noqa: F401  registers tables

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop every gateway table. Tests only."""
    from carbon_kernel.db.base import Base
    import carbon_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None
    _SessionFactory = None


def _atexit_dispose() -> None:
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)
