"""
Query collector: accumulates query executions during a measurement window.

The collector is the only shared mutable state in the advisor. The measured
workload writes to it (record / record_query), the Advisor reads it after
stop(). Appends are lock-guarded so a workload that executes queries from
several threads can record safely; start/stop/reset are expected to be
called while the workload is idle.

Events recorded while the collector is inactive are dropped: a window that
has ended is never extended by late events.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Sequence

from querybench.advisor.callsite import StackFrame, capture_backtrace
from querybench.advisor.models import CollectedQuery, QueryEvent

logger = logging.getLogger(__name__)


class QueryCollector:
    """
    Collects SQL queries during benchmark execution.

    One collector is typically reused across iterations of a benchmark and
    reset between them.

    Example:
        collector = QueryCollector()
        collector.start()
        collector.record_query("SELECT * FROM users WHERE id = ?", [1], time_ms=0.4)
        collector.stop()

        collector.query_count         # 1
        collector.group_by_location() # {"test_users.py:12": [...]}
    """

    def __init__(
        self,
        skip_modules: Sequence[str] | None = None,
        app_paths: Sequence[str] | None = None,
    ) -> None:
        """
        Args:
            skip_modules: Namespaces never attributed as call sites
                (default: callsite.DEFAULT_SKIP_MODULES)
            app_paths: Application source roots for call-site fallback
                (default: current working directory)
        """
        self.skip_modules = skip_modules
        self.app_paths = app_paths
        self._queries: list[CollectedQuery] = []
        self._active = False
        self._lock = threading.Lock()

    # ── Lifecycle ─────────────────────────────────────────────────────

    def start(self) -> None:
        """Start collecting. No-op if already active; otherwise clears prior queries."""
        with self._lock:
            if self._active:
                return
            self._queries = []
            self._active = True
        logger.debug("Query collection started")

    def stop(self) -> None:
        """Stop collecting. Collected queries are kept."""
        with self._lock:
            if not self._active:
                return
            self._active = False
            count = len(self._queries)
        logger.debug("Query collection stopped (%d queries)", count)

    def reset(self) -> None:
        """Clear collected queries unconditionally."""
        with self._lock:
            self._queries = []

    @property
    def is_active(self) -> bool:
        return self._active

    # ── Recording ─────────────────────────────────────────────────────

    def record(self, event: QueryEvent) -> CollectedQuery | None:
        """
        Record one query event.

        Returns the CollectedQuery, or None when the collector is inactive
        and the event was dropped.
        """
        if not self._active:
            return None

        query = CollectedQuery.from_event(
            event,
            skip_modules=self.skip_modules,
            app_paths=self.app_paths,
        )

        with self._lock:
            # Re-check under the lock: stop() may have run since the first check
            if not self._active:
                return None
            self._queries.append(query)
        return query

    def record_query(
        self,
        sql: str,
        bindings: Sequence[Any] = (),
        time_ms: float = 0.0,
        connection: str = "default",
        backtrace: Sequence[StackFrame] | None = None,
    ) -> CollectedQuery | None:
        """
        Record a query from its parts.

        When no backtrace is given, the caller's live stack is captured.
        """
        if not self._active:
            return None
        if backtrace is None:
            backtrace = capture_backtrace(skip=2)
        return self.record(QueryEvent(
            sql=sql,
            bindings=tuple(bindings),
            time_ms=time_ms,
            connection=connection,
            backtrace=tuple(backtrace),
        ))

    # ── Read accessors ────────────────────────────────────────────────

    @property
    def queries(self) -> tuple[CollectedQuery, ...]:
        """Snapshot of collected queries, in execution order."""
        with self._lock:
            return tuple(self._queries)

    @property
    def query_count(self) -> int:
        return len(self.queries)

    @property
    def total_time(self) -> float:
        """Total time spent in the database, in milliseconds."""
        return sum(q.time for q in self.queries)

    @property
    def unique_query_count(self) -> int:
        """Number of distinct normalized SQL forms."""
        return len({q.normalized_sql for q in self.queries})

    def group_by_normalized_sql(self) -> dict[str, list[CollectedQuery]]:
        """Group queries by normalized SQL, in first-seen order."""
        grouped: dict[str, list[CollectedQuery]] = {}
        for query in self.queries:
            grouped.setdefault(query.normalized_sql, []).append(query)
        return grouped

    def group_by_location(self) -> dict[str, list[CollectedQuery]]:
        """Group queries by call-site location string, in first-seen order."""
        grouped: dict[str, list[CollectedQuery]] = {}
        for query in self.queries:
            grouped.setdefault(query.location, []).append(query)
        return grouped

    def slow_queries(self, threshold_ms: float) -> list[CollectedQuery]:
        """Queries whose time strictly exceeds threshold_ms."""
        return [q for q in self.queries if q.time > threshold_ms]

    def __len__(self) -> int:
        return self.query_count

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(queries={self.query_count}, active={self._active})"
