"""Metric accumulation and reporting module."""

from .models import SendResult, StoreSnapshot
from .report import MEMORY_METRIC_KEY, ReportEncoder, max_memory_bytes, method_to_metric, qualified_name
from .scope_timer import ScopedTimer
from .store import MetricStore, current_time_millis

__all__ = [
    "MEMORY_METRIC_KEY",
    "MetricStore",
    "ReportEncoder",
    "ScopedTimer",
    "SendResult",
    "StoreSnapshot",
    "current_time_millis",
    "max_memory_bytes",
    "method_to_metric",
    "qualified_name",
]
