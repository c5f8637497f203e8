"""
Pytest fixtures for the invoice kernel test suite.

Provides:
- Structured logging capture
- In-memory SQLite sessions (single-session unit tests)
- File-backed SQLite session factories (orchestrator, worker and thread
  tests, where several sessions or threads share the database)
- Deterministic clock, artifact storage and collaborator fakes
  (builders and fakes live in tests.factories)
- A fake monotonic clock, work queue, rasterizer and JobOrchestrator
  factory for batch tests
"""

import json
import logging
from io import StringIO

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import invoice_batch.models  # noqa: F401
import invoice_kernel.models  # noqa: F401
from invoice_batch.queue import InMemoryWorkQueue
from invoice_batch.services.job_orchestrator import JobOrchestrator
from invoice_kernel.db.base import Base
from invoice_kernel.domain.clock import DeterministicClock
from invoice_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from invoice_kernel.services.storage_gateway import FileStorageGateway
from invoice_render.rasterizer import DocumentRasterizer, RenderingPool

from tests.factories import (
    FIXED_NOW,
    FakeOrderSource,
    FakeSettingsSource,
    RecordingMailer,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture invoice_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "invoice_generated" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("invoice_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def memory_engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(memory_engine):
    factory = sessionmaker(bind=memory_engine, expire_on_commit=False)
    session = factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite: one connection per session, safe across threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'invoices.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(file_engine):
    return sessionmaker(bind=file_engine, expire_on_commit=False)


# =============================================================================
# Clock and storage
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def storage(tmp_path, clock):
    return FileStorageGateway(tmp_path / "artifacts", clock=clock)


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def order_source():
    return FakeOrderSource()


@pytest.fixture
def settings_source():
    return FakeSettingsSource()


@pytest.fixture
def mailer():
    return RecordingMailer()


# =============================================================================
# Batch
# =============================================================================


class FakeMonotonic:
    """Manually advanced stand-in for time.monotonic."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def work_queue(monotonic):
    return InMemoryWorkQueue(monotonic=monotonic)


@pytest.fixture
def rasterizer():
    rasterizer = DocumentRasterizer(RenderingPool(size=1, acquire_timeout=1.0))
    yield rasterizer
    rasterizer.close()


@pytest.fixture
def make_orchestrator(
    session_factory, order_source, settings_source, storage, rasterizer,
    work_queue, mailer, clock, monotonic,
):
    """Factory for a JobOrchestrator over the file database; kwargs override."""

    def _make(**overrides) -> JobOrchestrator:
        values = {
            "session_factory": session_factory,
            "order_source": order_source,
            "settings_source": settings_source,
            "storage": storage,
            "rasterizer": rasterizer,
            "work_queue": work_queue,
            "mailer": mailer,
            "clock": clock,
            "monotonic": monotonic,
        }
        values.update(overrides)
        return JobOrchestrator(**values)

    return _make


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()
