"""Data models for metric tracking and export."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class StoreSnapshot:
    """Deep copy of the metric store state at a point in time."""
    
    timestamp_ms: int
    counters: Dict[str, int] = field(default_factory=dict)
    timers: Dict[str, List[int]] = field(default_factory=dict)
    running: Dict[str, int] = field(default_factory=dict)  # name -> start epoch ms
    
    def is_empty(self) -> bool:
        """True when no counters, samples or running timers are held."""
        return not (self.counters or self.timers or self.running)


@dataclass
class SendResult:
    """Outcome of a single best-effort datagram send."""
    
    ok: bool
    destination: str
    bytes_sent: int = 0
    error: Optional[Exception] = None
