"""
SQLAlchemy instrumentation: feed a QueryCollector from engine executions.

Hooks the engine's before_cursor_execute / after_cursor_execute events.
Start times are kept on a stack in conn.info, so nested executions on the
same connection time correctly, and the call stack is captured when the
cursor returns. A failed statement pops its start time in handle_error.

Usage:
    from sqlalchemy import create_engine

    engine = create_engine("sqlite://")
    collector = QueryCollector()

    with QueryListener(collector, engine):
        collector.start()
        run_workload(engine)
        collector.stop()
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Mapping

from sqlalchemy import event
from sqlalchemy.engine import Engine

from querybench.advisor.callsite import capture_backtrace
from querybench.advisor.models import QueryEvent

if TYPE_CHECKING:
    from querybench.advisor.collector import QueryCollector

logger = logging.getLogger(__name__)

_START_TIMES_KEY = "querybench_query_start_time"


def flatten_parameters(parameters: Any, executemany: bool = False) -> list[Any]:
    """
    Ordered list of bound values from a DBAPI parameter structure.

    Mappings contribute their values in insertion order; sequences their
    items. For executemany, every parameter set is flattened in turn.
    """
    if parameters is None:
        return []
    if isinstance(parameters, Mapping):
        return list(parameters.values())
    if isinstance(parameters, (list, tuple)):
        if executemany:
            flattened: list[Any] = []
            for parameter_set in parameters:
                flattened.extend(flatten_parameters(parameter_set))
            return flattened
        return list(parameters)
    return [parameters]


class QueryListener:
    """
    Attaches a QueryCollector to a SQLAlchemy Engine.

    The listener only forwards events; whether they are kept is up to the
    collector (inactive collectors drop them).
    """

    def __init__(
        self,
        collector: "QueryCollector",
        engine: Engine,
        connection_name: str | None = None,
    ) -> None:
        self.collector = collector
        self.engine = engine
        self.connection_name = connection_name or engine.url.get_backend_name()
        self._attached = False

    @property
    def attached(self) -> bool:
        return self._attached

    def attach(self) -> "QueryListener":
        """Register the engine event hooks (idempotent)."""
        if self._attached:
            return self
        event.listen(self.engine, "before_cursor_execute", self._before_cursor_execute)
        event.listen(self.engine, "after_cursor_execute", self._after_cursor_execute)
        event.listen(self.engine, "handle_error", self._handle_error)
        self._attached = True
        logger.debug("Query listener attached to %s", self.engine.url)
        return self

    def detach(self) -> None:
        """Remove the engine event hooks (idempotent)."""
        if not self._attached:
            return
        event.remove(self.engine, "before_cursor_execute", self._before_cursor_execute)
        event.remove(self.engine, "after_cursor_execute", self._after_cursor_execute)
        event.remove(self.engine, "handle_error", self._handle_error)
        self._attached = False
        logger.debug("Query listener detached from %s", self.engine.url)

    def __enter__(self) -> "QueryListener":
        return self.attach()

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.detach()

    def _before_cursor_execute(
        self, conn, cursor, statement, parameters, context, executemany
    ) -> None:
        conn.info.setdefault(_START_TIMES_KEY, []).append(time.perf_counter())

    def _after_cursor_execute(
        self, conn, cursor, statement, parameters, context, executemany
    ) -> None:
        start_times = conn.info.get(_START_TIMES_KEY)
        if not start_times:
            return
        elapsed_ms = (time.perf_counter() - start_times.pop()) * 1000

        if not self.collector.is_active:
            return

        self.collector.record(QueryEvent(
            sql=statement,
            bindings=tuple(flatten_parameters(parameters, executemany)),
            time_ms=elapsed_ms,
            connection=self.connection_name,
            backtrace=capture_backtrace(skip=2),
        ))

    def _handle_error(self, exception_context) -> None:
        conn = exception_context.connection
        if conn is None:
            return
        start_times = conn.info.get(_START_TIMES_KEY)
        if start_times:
            start_times.pop()


def instrument_engine(engine: Engine, collector: "QueryCollector") -> QueryListener:
    """Attach a new QueryListener for collector to engine and return it."""
    return QueryListener(collector, engine).attach()
