"""Tests for SQLAlchemy engine instrumentation."""

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError

from querybench.advisor.collector import QueryCollector
from querybench.advisor.instrument import QueryListener, flatten_parameters, instrument_engine


@pytest.fixture
def engine():
    engine = create_engine("sqlite://")
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT)"))
        conn.execute(text("INSERT INTO users (id, name) VALUES (1, 'ada'), (2, 'bob')"))
    yield engine
    engine.dispose()


def lookup_users(conn, ids):
    for user_id in ids:
        conn.execute(text("SELECT * FROM users WHERE id = :id"), {"id": user_id}).fetchall()


class TestQueryListener:
    """Tests for recording engine executions."""

    def test_records_statements_and_bindings(self, engine):
        collector = QueryCollector()
        with QueryListener(collector, engine), engine.connect() as conn:
            collector.start()
            lookup_users(conn, [1, 2])
            collector.stop()

        assert collector.query_count == 2
        first = collector.queries[0]
        assert first.sql == "SELECT * FROM users WHERE id = ?"
        assert first.bindings == (1,)
        assert first.connection == "sqlite"
        assert first.time >= 0
        assert collector.unique_query_count == 1

    def test_attributes_application_frame(self, engine):
        collector = QueryCollector()
        with QueryListener(collector, engine), engine.connect() as conn:
            collector.start()
            lookup_users(conn, [1])
            collector.stop()

        query = collector.queries[0]
        assert query.method == "lookup_users"
        assert query.file.endswith("test_instrument.py")

    def test_inactive_collector_ignores_executions(self, engine):
        collector = QueryCollector()
        with QueryListener(collector, engine), engine.connect() as conn:
            lookup_users(conn, [1])

        assert collector.query_count == 0

    def test_detach_stops_recording(self, engine):
        collector = QueryCollector()
        listener = instrument_engine(engine, collector)
        assert listener.attached

        listener.detach()
        listener.detach()
        assert not listener.attached

        collector.start()
        with engine.connect() as conn:
            lookup_users(conn, [1])
        collector.stop()

        assert collector.query_count == 0

    def test_attach_is_idempotent(self, engine):
        collector = QueryCollector()
        listener = QueryListener(collector, engine, connection_name="primary")
        listener.attach()
        listener.attach()

        collector.start()
        with engine.connect() as conn:
            lookup_users(conn, [1])
        collector.stop()
        listener.detach()

        assert collector.query_count == 1
        assert collector.queries[0].connection == "primary"

    def test_failed_statement_clears_start_time(self, engine):
        collector = QueryCollector()
        with QueryListener(collector, engine), engine.connect() as conn:
            collector.start()
            with pytest.raises(OperationalError):
                conn.execute(text("SELECT * FROM missing_table"))
            pending = list(conn.info.get("querybench_query_start_time", []))
            lookup_users(conn, [1])
            collector.stop()

        assert pending == []
        assert collector.query_count == 1
        assert collector.queries[0].sql == "SELECT * FROM users WHERE id = ?"


class TestFlattenParameters:
    """Tests for DBAPI parameter flattening."""

    def test_none(self):
        assert flatten_parameters(None) == []

    def test_mapping_values_in_order(self):
        assert flatten_parameters({"b": 2, "a": 1}) == [2, 1]

    def test_sequence(self):
        assert flatten_parameters((1, "x")) == [1, "x"]

    def test_scalar(self):
        assert flatten_parameters(5) == [5]

    def test_executemany(self):
        assert flatten_parameters([(1, "a"), (2, "b")], executemany=True) == [1, "a", 2, "b"]
        assert flatten_parameters([{"id": 1}, {"id": 2}], executemany=True) == [1, 2]
