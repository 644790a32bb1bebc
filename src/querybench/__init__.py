"""QueryBench - Query advisor, performance scoring and benchmark regression detection."""

__version__ = "0.3.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from querybench.exceptions import (
    QueryBenchError,
    AdvisorError,
    RuleError,
    ConfigurationError,
    BaselineError,
)

# Public API exports
from querybench.advisor import (
    Advisor,
    AdvisorReport,
    AdvisorSuggestion,
    CollectedQuery,
    PerformanceScore,
    QueryCollector,
    QueryEvent,
    QueryListener,
    Severity,
    instrument_engine,
    normalize_sql,
)
from querybench.baseline import (
    BaselineResult,
    BaselineStore,
    ComparisonResult,
    RegressionDetector,
)
from querybench.config import Config, get_config, reset_config
from querybench.stats import BenchmarkStats, IterationResult

__all__ = [
    "__version__",
    # Exceptions
    "QueryBenchError",
    "AdvisorError",
    "RuleError",
    "ConfigurationError",
    "BaselineError",
    # Advisor
    "Advisor",
    "AdvisorReport",
    "AdvisorSuggestion",
    "CollectedQuery",
    "PerformanceScore",
    "QueryCollector",
    "QueryEvent",
    "QueryListener",
    "Severity",
    "instrument_engine",
    "normalize_sql",
    # Statistics and baselines
    "BenchmarkStats",
    "IterationResult",
    "BaselineResult",
    "BaselineStore",
    "ComparisonResult",
    "RegressionDetector",
    # Configuration
    "Config",
    "get_config",
    "reset_config",
]
