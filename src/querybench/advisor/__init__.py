"""
Query advisor: collect the queries a workload runs and detect inefficiencies.

Quick start:
    from querybench.advisor import Advisor, PerformanceScore

    advisor = Advisor()
    advisor.start()
    ...  # run the workload, recording queries into advisor.collector
    report = advisor.stop()

    score = PerformanceScore(report, execution_time_seconds=0.8)
"""

from querybench.advisor.advisor import Advisor
from querybench.advisor.callsite import StackFrame, capture_backtrace, extract_origin
from querybench.advisor.collector import QueryCollector
from querybench.advisor.instrument import QueryListener, instrument_engine
from querybench.advisor.models import (
    AdvisorReport,
    AdvisorSuggestion,
    CollectedQuery,
    QueryEvent,
    Severity,
)
from querybench.advisor.normalize import normalize_sql, query_signature
from querybench.advisor.scoring import Grade, PerformanceScore

__all__ = [
    "Advisor",
    "AdvisorReport",
    "AdvisorSuggestion",
    "CollectedQuery",
    "Grade",
    "PerformanceScore",
    "QueryCollector",
    "QueryEvent",
    "QueryListener",
    "Severity",
    "StackFrame",
    "capture_backtrace",
    "extract_origin",
    "instrument_engine",
    "normalize_sql",
    "query_signature",
]
