"""Report rendering and metric naming helpers."""

import functools
import json
import logging
import sys
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

from .scope_timer import ScopedTimer
from .store import MetricStore

try:
    import resource
except ImportError:  # Windows
    resource = None

if TYPE_CHECKING:
    from ..export.metricd_client import MetricdClient

logger = logging.getLogger(__name__)

# Reserved report key for process memory usage
MEMORY_METRIC_KEY = "python.max_mem"

_SEPARATORS = ("::", "\\", "/", "_")


def max_memory_bytes() -> int:
    """Peak resident set size of this process in bytes (0 if unknown)."""
    if resource is None:
        return 0
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS, kilobytes elsewhere
    if sys.platform == "darwin":
        return int(peak)
    return int(peak) * 1024


def qualified_name(func: Callable) -> str:
    """Module qualified name of a function, class or method.
    
    ``<locals>`` markers of nested definitions are dropped, so ``inner``
    defined in ``outer`` is named ``module.outer.inner``.
    """
    qualname = func.__qualname__.replace("<locals>.", "")
    return f"{func.__module__}.{qualname}"


def method_to_metric(
    name: str, suffix: Optional[str] = None, instance: Any = None
) -> str:
    """Convert a fully qualified method name into a metric name.
    
    The name is lower cased and every separator (``::``, ``.``, ``\\``, ``/``)
    and underscore becomes a period, so ``Data_Dao::getUserTypes`` becomes
    ``data.dao.getusertypes``.
    
    Args:
        name: Qualified method name, e.g. from :func:`qualified_name`
        suffix: Optional suffix appended as ``.<suffix>``
        instance: Object whose runtime type replaces the class portion of
            ``name`` (for methods inherited by subclasses)
            
    Returns:
        Normalized metric name
    """
    if instance is not None:
        if "::" in name:
            _, method = name.split("::", 1)
        else:
            method = name.rsplit(".", 1)[-1]
        name = f"{qualified_name(type(instance))}.{method}"
    
    for sep in _SEPARATORS:
        name = name.replace(sep, ".")
    name = name.lower()
    if suffix:
        name = f"{name}.{suffix}"
    return name


class ReportEncoder:
    """Renders MetricStore state into report mappings and wraps scoped timers.
    
    Counters are reported as ``'<count>|c'`` and timers as ``'<elapsed>|ms'``.
    A timer stopped more than once is reported as a semicolon separated list of
    samples in stop order (eg ``'1;2;3|ms'``). Every report also carries the
    process memory usage under :data:`MEMORY_METRIC_KEY`.
    """
    
    def __init__(
        self,
        store: MetricStore,
        memory_probe: Callable[[], int] = max_memory_bytes,
    ):
        """Initialize the encoder.
        
        Args:
            store: Store to read metrics from and to time into
            memory_probe: Callable returning process memory usage in bytes
        """
        self.store = store
        self.memory_probe = memory_probe
    
    def report(self, stop_running: bool = True) -> Dict[str, str]:
        """Report on currently collected metrics.
        
        Args:
            stop_running: Stop running timers before reporting
            
        Returns:
            Metric name to formatted value, sorted by name
        """
        snapshot = self.store.snapshot(stop_running=stop_running)
        
        r: Dict[str, str] = {}
        for metric, count in snapshot.counters.items():
            r[metric] = f"{count}|c"
        for metric, samples in snapshot.timers.items():
            r[metric] = ";".join(str(s) for s in samples) + "|ms"
        r[MEMORY_METRIC_KEY] = f"{self.memory_probe()}|bytes"
        
        return dict(sorted(r.items()))
    
    def log_report(
        self,
        log: logging.Logger,
        msg: str = "",
        stop_running: bool = True,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Write the current report to a logger as a single INFO line.
        
        Args:
            log: Logger to write to
            msg: Message prefixed to the JSON encoded report
            stop_running: Stop running timers before reporting
            context: Diagnostic values attached to the record as its
                ``context`` attribute
        """
        report = self.report(stop_running)
        log.info(msg + json.dumps(report), extra={"context": dict(context) if context else {}})
    
    def send_to_metricd(
        self,
        app: str,
        host: Optional[str] = None,
        port: Optional[int] = None,
        stop_running: bool = True,
        client: Optional["MetricdClient"] = None,
        extra_meta: Optional[Mapping[str, Any]] = None,
    ) -> "MetricdClient":
        """Send the current report to a metricd aggregator.
        
        Args:
            app: Application name
            host: Metricd host (client default when None)
            port: Metricd port (client default when None)
            stop_running: Stop running timers before reporting
            client: Preconfigured client; ``host``/``port`` override it when given
            extra_meta: Additional meta information sent with the report
            
        Returns:
            The client used, whose ``last_result`` describes the send
        """
        from ..export.metricd_client import MetricdClient
        
        if client is None:
            client = MetricdClient(host, port)
        else:
            if host is not None:
                client.set_host(host)
            if port is not None:
                client.set_port(port)
        client.set_app(app)
        return client.send(self.report(stop_running), extra_meta)
    
    def time_scope(self, name: str) -> ScopedTimer:
        """Create a scoped timer for the given metric name."""
        return ScopedTimer(self.store, name)
    
    def time_method(
        self, name: str, suffix: Optional[str] = None, instance: Any = None
    ) -> ScopedTimer:
        """Create a scoped timer named after a qualified method name.
        
        Typical use is the first line of the method being timed:
        ``with encoder.time_method(qualified_name(MyClass.run)): ...``
        
        See :func:`method_to_metric` for the naming rules.
        """
        return self.time_scope(method_to_metric(name, suffix, instance))
    
    def timed(self, suffix: Optional[str] = None, use_instance_type: bool = False):
        """Decorator timing every call of a function under its metric name.
        
        Args:
            suffix: Optional suffix for the metric name
            use_instance_type: Name the metric after the runtime type of the
                first positional argument (``self``) rather than the defining class
        """
        def decorator(func):
            name = qualified_name(func)
            
            @functools.wraps(func)
            def wrapper(*args, **kwargs):
                instance = args[0] if use_instance_type and args else None
                with self.time_method(name, suffix, instance):
                    return func(*args, **kwargs)
            
            return wrapper
        
        return decorator
