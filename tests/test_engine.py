"""Tests for billing_kernel.db.engine."""

import pytest
from sqlalchemy import select

from billing_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    install_session_callback,
    remove_session_callback,
    reset_engine,
    session_scope,
)
from billing_kernel.models import ConfigEntryModel


@pytest.fixture
def engine():
    engine = init_engine_from_url("sqlite://")
    create_tables()
    yield engine
    reset_engine()


def _names() -> list[str]:
    session = get_session()
    try:
        return list(session.scalars(select(ConfigEntryModel.name)))
    finally:
        session.close()


class TestInitialization:
    def test_uninitialized(self):
        reset_engine()
        with pytest.raises(RuntimeError, match="not initialized"):
            get_engine()
        with pytest.raises(RuntimeError, match="not initialized"):
            get_session()

    def test_sqlite_engine(self, engine):
        assert get_engine() is engine
        assert engine.dialect.name == "sqlite"


class TestSessionScope:
    def test_commits_on_success(self, engine):
        with session_scope() as session:
            session.add(ConfigEntryModel(name="currency", value="USD"))

        assert _names() == ["currency"]

    def test_rolls_back_and_reraises(self, engine):
        with pytest.raises(ValueError, match="abort"):
            with session_scope() as session:
                session.add(ConfigEntryModel(name="currency", value="USD"))
                session.flush()
                raise ValueError("abort")

        assert _names() == []

    def test_savepoint_rollback_keeps_outer_work(self, engine):
        with session_scope() as session:
            session.add(ConfigEntryModel(name="kept", value="1"))
            savepoint = session.begin_nested()
            session.add(ConfigEntryModel(name="discarded", value="1"))
            session.flush()
            savepoint.rollback()

        assert _names() == ["kept"]


class TestSessionCallbacks:
    def test_run_for_each_session_in_order(self, engine):
        calls = []
        first = lambda session: calls.append(("first", session))  # noqa: E731
        second = lambda session: calls.append(("second", session))  # noqa: E731
        install_session_callback(first)
        install_session_callback(second)
        install_session_callback(first)

        session = get_session()
        session.close()

        assert [name for name, _ in calls] == ["first", "second"]
        assert calls[0][1] is session

    def test_removed_callback_not_run(self, engine):
        calls = []
        callback = calls.append
        install_session_callback(callback)
        remove_session_callback(callback)
        remove_session_callback(callback)

        get_session().close()

        assert calls == []

    def test_failing_callback_propagates(self, engine):
        def explode(session):
            raise LookupError("no context")

        install_session_callback(explode)

        with pytest.raises(LookupError):
            get_session()

    def test_reset_forgets_callbacks(self, engine):
        calls = []
        install_session_callback(calls.append)
        reset_engine()
        init_engine_from_url("sqlite://")

        get_session().close()

        assert calls == []
