"""
Engine and session management.

One process-wide engine, created by ``init_engine_from_url``.  Sessions
handed out by ``get_session`` first pass through every registered session
callback; billing_config registers one so each logical connection starts
with a fresh configuration cache.

PostgreSQL runs at READ COMMITTED.  SQLite engines get explicit BEGIN
handling so ``session.begin_nested()`` produces real SAVEPOINTs.
"""

import atexit
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from billing_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

SessionCallback = Callable[[Session], None]

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None
_session_callbacks: list[SessionCallback] = []


def enable_sqlite_savepoints(engine: Engine) -> None:
    """Take BEGIN away from pysqlite so nested transactions work."""

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_recycle: int = 1800,
) -> Engine:
    """(Re)initialize the process-wide engine and session factory."""
    global _engine, _SessionFactory

    if database_url.startswith("sqlite"):
        _engine = create_engine(database_url, echo=echo)
        enable_sqlite_savepoints(_engine)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": _engine.dialect.name})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def install_session_callback(callback: SessionCallback) -> None:
    """Run ``callback`` on every new session, in registration order.

    Registering the same callable twice is a no-op.
    """
    if callback not in _session_callbacks:
        _session_callbacks.append(callback)


def remove_session_callback(callback: SessionCallback) -> None:
    if callback in _session_callbacks:
        _session_callbacks.remove(callback)


def get_session() -> Session:
    """A new session with the session callbacks applied.

    A failing callback closes the session and propagates.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    session = _SessionFactory()
    try:
        for callback in list(_session_callbacks):
            callback(session)
    except Exception:
        session.close()
        raise
    return session


@contextmanager
def session_scope() -> Iterator[Session]:
    """Commit on clean exit, roll back and re-raise otherwise.

        with session_scope() as session:
            LocationReconciler(session, policy).find_or_insert(location)
    """
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
    """Create every table registered on ``Base``.

    billing_batch models register only once imported; import them first.
    """
    from billing_kernel.db.base import Base
    import billing_kernel.models  # noqa: F401

    Base.metadata.create_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget factory and callbacks (tests)."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
    _session_callbacks.clear()


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
