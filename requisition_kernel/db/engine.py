"""
Module: requisition_kernel.db.engine
Responsibility: Engine and session-factory lifecycle for the requisition
    database, plus table creation (which also seeds the sequence counters).
Architecture position: Kernel > DB.  Imports models and SequenceService
    lazily, inside create_tables/drop_tables only.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED; the state machine takes
      ``FOR UPDATE`` on the requisition row it is about to change.
    - SQLite (tests, local runs) ignores ``FOR UPDATE``.  Lost updates are
      still caught by the requisition ``version`` column.
    - Sessions never expire attributes on commit, so DTOs built inside a
      transaction stay readable after it.

Failure modes:
    - RuntimeError from any accessor used before init_engine_from_url().
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker

from requisition_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_timeout: int = 30,
) -> Engine:
    """
    Create the module-level engine and session factory for ``database_url``.

    Pool arguments apply to server databases only.  Calling this again
    replaces the previous engine without disposing it; use reset_engine()
    first when switching databases.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    backend = url.get_backend_name()

    if backend == "sqlite":
        engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})
        event.listen(engine, "connect", _sqlite_pragmas)
    else:
        engine = create_engine(
            url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_pre_ping=True,
            isolation_level="READ COMMITTED",
        )

    _engine = engine
    _SessionFactory = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": backend, "echo": echo})
    return engine


def _require_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_engine() -> Engine:
    return _require_engine()


def get_session_factory() -> sessionmaker[Session]:
    """Factory handed to WorkflowOrchestrator; one Session per operation."""
    _require_engine()
    assert _SessionFactory is not None
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


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
    """Create every mapped table and seed the well-known sequence counters."""
    from requisition_kernel.db.base import Base
    import requisition_kernel.models  # noqa: F401  (registers all tables)
    from requisition_kernel.services.sequence_service import SequenceService

    Base.metadata.create_all(_require_engine())
    with session_scope() as session:
        SequenceService(session).initialize_sequences()
    logger.info("tables_created", extra={"tables": len(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop every mapped table.  Test and local use only."""
    from requisition_kernel.db.base import Base
    import requisition_kernel.models  # noqa: F401
    import requisition_kernel.services.sequence_service  # noqa: F401

    Base.metadata.drop_all(_require_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
