"""
Module: invoice_kernel.db.engine
Responsibility: Process-wide engine and session factory, plus the
    ``session_scope`` unit-of-work helper used by services and scripts.
Architecture position: Kernel > DB.  ``create_tables`` imports the kernel
    and batch model packages so their tables register on ``Base.metadata``;
    nothing else here reaches outside the kernel.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with pre-ping and recycling; the
      invoice number allocator relies on its row locks.
    - SQLite (tests, local CLI runs) gets a thread-tolerant connection and
      no pool sizing.

Failure modes:
    - RuntimeError from any accessor called before ``init_engine_from_url``.
"""

import atexit
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import MetaData, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from invoice_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_factory: sessionmaker[Session] | None = None


def _engine_options(database_url: str, **pool: Any) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {**pool, "isolation_level": "READ COMMITTED"}


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the process engine and session factory for ``database_url``.

    Calling it again replaces both; the previous engine is disposed.
    """
    global _engine, _factory

    reset_engine()
    options = _engine_options(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=True,
    )
    _engine = create_engine(database_url, echo=echo, **options)
    _factory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "pool_size": options.get("pool_size"),
            "echo": echo,
        },
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    The shared session factory.

    The orchestrator and workers open one short session per unit of work,
    so they hold the factory rather than a session.
    """
    if _factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _factory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Commit on normal exit, roll back and re-raise on error, always close.

        with session_scope(factory) as session:
            session.add(record)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _metadata() -> MetaData:
    from invoice_kernel.db.base import Base

    # registers every mapped table
    import invoice_kernel.models  # noqa: F401
    import invoice_batch.models  # noqa: F401

    return Base.metadata


def create_tables() -> None:
    _metadata().create_all(get_engine())


def drop_tables() -> None:
    """Drop every table.  Tests and local resets only."""
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _factory = None


atexit.register(reset_engine)
