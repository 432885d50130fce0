from .ledger import (
    InMemoryPerformanceLedger,
    PerformanceLedger,
    SqlitePerformanceLedger,
)
from .trends import (
    TREND_METRICS,
    category_trend,
    effective_history,
    latest_metrics,
    moving_average,
)

__all__ = [
    "PerformanceLedger",
    "InMemoryPerformanceLedger",
    "SqlitePerformanceLedger",
    "TREND_METRICS",
    "effective_history",
    "moving_average",
    "category_trend",
    "latest_metrics",
]
