"""metrictrack: in-process counters and timers with metricd export."""

from .export import MetricdClient
from .metrics import (
    MEMORY_METRIC_KEY,
    MetricStore,
    ReportEncoder,
    ScopedTimer,
    method_to_metric,
    qualified_name,
)

__version__ = "0.1.0"

__all__ = [
    "MEMORY_METRIC_KEY",
    "MetricStore",
    "MetricdClient",
    "ReportEncoder",
    "ScopedTimer",
    "method_to_metric",
    "qualified_name",
]
