"""
Tests for invoice_kernel.db.engine -- process engine lifecycle and
session_scope commit/rollback behaviour.
"""

import pytest
from sqlalchemy import inspect, select

from invoice_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from invoice_kernel.services.sequence_service import SequenceCounter


@pytest.fixture
def engine(tmp_path):
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'engine.db'}")
    yield engine
    reset_engine()


class TestLifecycle:
    def test_accessors_require_initialization(self):
        reset_engine()

        with pytest.raises(RuntimeError, match="not initialized"):
            get_engine()
        with pytest.raises(RuntimeError, match="not initialized"):
            get_session_factory()

    def test_create_and_drop_tables(self, engine):
        create_tables()

        tables = set(inspect(engine).get_table_names())
        assert {"invoice_records", "sequence_counters", "print_jobs", "print_job_items"} <= tables

        drop_tables()

        assert inspect(engine).get_table_names() == []

    def test_initialization_is_logged(self, tmp_path, captured_logs):
        init_engine_from_url(f"sqlite:///{tmp_path / 'logged.db'}")
        reset_engine()

        records = [r for r in captured_logs() if r["message"] == "engine_initialized"]
        assert records[-1]["dialect"] == "sqlite"
        assert records[-1]["pool_size"] is None


class TestSessionScope:
    def test_commits_on_success(self, engine):
        create_tables()

        with session_scope() as session:
            session.add(SequenceCounter(name="invoice:demo", current_value=1000))

        with session_scope() as session:
            counter = session.scalars(select(SequenceCounter)).one()
            assert counter.current_value == 1000

    def test_rolls_back_on_error(self, engine):
        create_tables()

        with pytest.raises(ValueError):
            with session_scope() as session:
                session.add(SequenceCounter(name="invoice:demo", current_value=1000))
                session.flush()
                raise ValueError("boom")

        with session_scope() as session:
            assert session.scalars(select(SequenceCounter)).all() == []
