"""Best-effort UDP client for a metricd aggregation daemon.

Metricd accepts UDP datagrams carrying a JSON payload made of metadata about
the sending client and a collection of counter and timer metrics::

    {
      "meta": {"host": "web01.example.com", "app": "checkout", "shard": "7"},
      "metrics": {
        "fizz": "3|c",
        "foo": "9|ms",
        "bar": "1;2;3|ms"
      }
    }

Sending never raises: failures are recorded on the client, logged and handed
to an optional callback.
"""

import copy
import json
import logging
import socket
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

from ..metrics.models import SendResult

if TYPE_CHECKING:
    from ..utils.config_validator import MetricdSettings

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8125
DEFAULT_TIMEOUT_S = 0.5


class MetricdClient:
    """Fire-and-forget sender of metric reports, one datagram per send."""
    
    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
        hostname: Optional[str] = None,
        app: Optional[str] = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        """Initialize the client.
        
        Args:
            host: Metricd hostname or ip address. None for ``127.0.0.1``
            port: Metricd port. None for ``8125``
            logger: Logger receiving send failures (module logger when None)
            hostname: Name of the host metrics are sent on behalf of
                (defaults to this machine's hostname)
            app: Application submitting metrics
            timeout_s: Upper bound on the blocking time of a send
            on_error: Callback invoked with the exception of a failed send
        """
        self.host = host if host is not None else DEFAULT_HOST
        self.port = port if port is not None else DEFAULT_PORT
        self.logger = logger
        self.hostname = hostname if hostname is not None else socket.gethostname()
        self.app = app
        self.timeout_s = timeout_s
        self.on_error = on_error
        self.last_result: Optional[SendResult] = None
    
    @classmethod
    def from_settings(cls, settings: "MetricdSettings", **kwargs) -> "MetricdClient":
        """Build a client from validated settings."""
        return cls(
            host=settings.host,
            port=settings.port,
            hostname=settings.hostname,
            app=settings.app,
            timeout_s=settings.timeout_s,
            **kwargs,
        )
    
    @property
    def destination(self) -> str:
        return f"{self.host}:{self.port}"
    
    def set_logger(self, logger: logging.Logger) -> "MetricdClient":
        self.logger = logger
        return self
    
    def set_host(self, host: str) -> "MetricdClient":
        self.host = host
        return self
    
    def set_port(self, port: int) -> "MetricdClient":
        self.port = port
        return self
    
    def set_hostname(self, hostname: str) -> "MetricdClient":
        self.hostname = hostname
        return self
    
    def set_app(self, app: str) -> "MetricdClient":
        self.app = app
        return self
    
    def build_packet(
        self, metrics: Mapping[str, str], extra_meta: Optional[Mapping[str, Any]] = None
    ) -> bytes:
        """Serialize metrics and metadata into a datagram payload.
        
        Raises:
            TypeError: If ``metrics`` is not a mapping or holds unserializable values
            ValueError: If ``metrics`` contains a circular reference
        """
        if not isinstance(metrics, Mapping):
            raise TypeError(f"metrics must be a mapping, got {type(metrics).__name__}")
        
        meta: Dict[str, Any] = {"host": self.hostname, "app": self.app}
        if extra_meta is not None:
            if isinstance(extra_meta, Mapping):
                meta.update(extra_meta)
            else:
                logger.warning(
                    f"Ignoring extra meta of type {type(extra_meta).__name__}, expected a mapping"
                )
        
        payload = {"meta": meta, "metrics": dict(metrics)}
        # ASCII escaping keeps the datagram valid as both latin-1 and utf-8
        return json.dumps(payload, ensure_ascii=True, separators=(",", ":")).encode("ascii")
    
    def send(
        self, metrics: Mapping[str, str], extra_meta: Optional[Mapping[str, Any]] = None
    ) -> "MetricdClient":
        """Send metrics to the metricd host as a single UDP datagram.
        
        Any serialization or transport failure is absorbed. Inspect
        ``last_result`` for the outcome.
        
        Args:
            metrics: Metric name to formatted value
            extra_meta: Additional meta information sent along with metrics
            
        Returns:
            Self, for method chaining
        """
        try:
            packet = self.build_packet(metrics, extra_meta)
            family, kind, _, _, address = socket.getaddrinfo(
                self.host, self.port, type=socket.SOCK_DGRAM
            )[0]
            with socket.socket(family, kind) as sock:
                sock.settimeout(self.timeout_s)
                sent = sock.sendto(packet, address)
            self.last_result = SendResult(ok=True, destination=self.destination, bytes_sent=sent)
            logger.debug(f"Sent {sent} bytes of metrics to {self.destination}")
        except Exception as e:
            self.last_result = SendResult(ok=False, destination=self.destination, error=e)
            self._report_failure(e)
        return self
    
    def send_in_background(
        self, metrics: Mapping[str, str], extra_meta: Optional[Mapping[str, Any]] = None
    ) -> threading.Thread:
        """Send a deep copy of the metrics from a daemon thread.
        
        Returns:
            The started thread
        """
        try:
            metrics = copy.deepcopy(metrics)
            extra_meta = copy.deepcopy(extra_meta)
        except Exception as e:
            logger.warning(f"Could not copy metrics for background send: {e}")
        thread = threading.Thread(
            target=self.send, args=(metrics, extra_meta), name="metricd-send", daemon=True
        )
        thread.start()
        return thread
    
    def _report_failure(self, error: Exception) -> None:
        log = self.logger or logger
        log.error(f"Failure sending metrics to {self.destination}: {error}")
        if self.on_error is not None:
            try:
                self.on_error(error)
            except Exception as callback_error:
                log.error(f"Metrics error callback failed: {callback_error}")
