"""Process-local accumulator for counters and elapsed-time metrics."""

import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional

from .models import StoreSnapshot

logger = logging.getLogger(__name__)


def current_time_millis() -> int:
    """Get current system time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def _check_name(name: str) -> None:
    if not isinstance(name, str):
        raise TypeError(f"Metric name must be a str, got {type(name).__name__}")


def _check_int(value: int, what: str) -> None:
    if not isinstance(value, int):
        raise TypeError(f"{what} must be an int, got {type(value).__name__}")


def _as_names(names: Iterable[str]) -> List[str]:
    if isinstance(names, str):
        raise TypeError("Batch operations take an iterable of names, not a single str")
    names = list(names)
    for name in names:
        _check_name(name)
    return names


class MetricStore:
    """Thread-safe holder of counters, completed timer samples and running timers.
    
    The three namespaces are independent key spaces guarded by a single lock so
    that reporting and ``stop_all`` observe a consistent view.
    
    Usage:
        store = MetricStore()
        store.increment('requests')
        store.start_timer('db.query')
        ...
        store.stop_timer('db.query')
    """
    
    def __init__(self, clock: Optional[Callable[[], int]] = None):
        """Initialize an empty store.
        
        Args:
            clock: Callable returning the current epoch time in milliseconds.
                Defaults to :func:`current_time_millis`.
        """
        self._clock = clock or current_time_millis
        self._lock = threading.RLock()
        self._counters: Dict[str, int] = {}
        self._times: Dict[str, List[int]] = {}
        self._running: Dict[str, int] = {}
    
    def now(self) -> int:
        """Current time in milliseconds according to the store clock."""
        return self._clock()
    
    # Counters
    
    def increment(self, name: str) -> None:
        """Add one to a counter."""
        self.adjust_counter(name, 1)
    
    def increment_many(self, names: Iterable[str]) -> None:
        """Add one to each named counter."""
        self.adjust_counters(names, 1)
    
    def decrement(self, name: str) -> None:
        """Subtract one from a counter."""
        self.adjust_counter(name, -1)
    
    def decrement_many(self, names: Iterable[str]) -> None:
        """Subtract one from each named counter."""
        self.adjust_counters(names, -1)
    
    def adjust_counter(self, name: str, delta: int = 1) -> None:
        """Add a signed delta to a counter, creating it at zero if absent.
        
        Args:
            name: Counter name
            delta: Amount to add (may be negative or zero)
        """
        _check_name(name)
        _check_int(delta, "Counter delta")
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + delta
    
    def adjust_counters(self, names: Iterable[str], delta: int = 1) -> None:
        """Add the same delta to each named counter."""
        names = _as_names(names)
        _check_int(delta, "Counter delta")
        with self._lock:
            for name in names:
                self._counters[name] = self._counters.get(name, 0) + delta
    
    def counter(self, name: str) -> int:
        """Get the current value of a counter (0 if never referenced)."""
        with self._lock:
            return self._counters.get(name, 0)
    
    # Timers
    
    def start_timer(self, name: str, at_ms: Optional[int] = None) -> bool:
        """Start a timer.
        
        A timer that is already running is left untouched.
        
        Args:
            name: Timer name
            at_ms: Start timestamp in epoch milliseconds (default now)
            
        Returns:
            True if the timer was started, False if it was already running
        """
        _check_name(name)
        if at_ms is None:
            at_ms = self._clock()
        with self._lock:
            return self._start(name, at_ms)
    
    def start_timers(self, names: Iterable[str], at_ms: Optional[int] = None) -> bool:
        """Start several timers at the same timestamp.
        
        Returns:
            True if any of the timers was newly started
        """
        names = _as_names(names)
        if at_ms is None:
            at_ms = self._clock()
        started = False
        with self._lock:
            for name in names:
                started |= self._start(name, at_ms)
        return started
    
    def stop_timer(self, name: str, at_ms: Optional[int] = None) -> bool:
        """Stop a running timer and record its elapsed time as a sample.
        
        Args:
            name: Timer name
            at_ms: Stop timestamp in epoch milliseconds (default now)
            
        Returns:
            True if the timer was running and has been stopped
        """
        _check_name(name)
        if at_ms is None:
            at_ms = self._clock()
        with self._lock:
            return self._stop(name, at_ms)
    
    def stop_timers(self, names: Iterable[str], at_ms: Optional[int] = None) -> bool:
        """Stop several timers at the same timestamp.
        
        Returns:
            True if any of the timers was running
        """
        names = _as_names(names)
        if at_ms is None:
            at_ms = self._clock()
        stopped = False
        with self._lock:
            for name in names:
                stopped |= self._stop(name, at_ms)
        return stopped
    
    def cancel_timer(self, name: str) -> bool:
        """Discard a running timer without recording a sample."""
        _check_name(name)
        with self._lock:
            return self._running.pop(name, None) is not None
    
    def cancel_timers(self, names: Iterable[str]) -> bool:
        """Discard several running timers; True if any was running."""
        names = _as_names(names)
        canceled = False
        with self._lock:
            for name in names:
                canceled |= self._running.pop(name, None) is not None
        return canceled
    
    def record_timer(self, name: str, elapsed_ms: int) -> None:
        """Append an externally measured duration to a timer's samples."""
        _check_name(name)
        _check_int(elapsed_ms, "Elapsed time")
        with self._lock:
            self._record(name, elapsed_ms)
    
    def record_timers(self, names: Iterable[str], elapsed_ms: int) -> None:
        """Append the same duration to several timers."""
        names = _as_names(names)
        _check_int(elapsed_ms, "Elapsed time")
        with self._lock:
            for name in names:
                self._record(name, elapsed_ms)
    
    def split_timer(self, name: str, at_ms: Optional[int] = None) -> int:
        """Non-destructively sample how long a timer has been running.
        
        Returns:
            Elapsed milliseconds, or 0 if the timer is not running
        """
        _check_name(name)
        with self._lock:
            start = self._running.get(name)
        if start is None:
            return 0
        if at_ms is None:
            at_ms = self._clock()
        return at_ms - start
    
    def running_timer_names(self) -> List[str]:
        """Names of the running timers, in the order they were started."""
        with self._lock:
            return list(self._running)
    
    def timer_samples(self, name: str) -> List[int]:
        """Completed samples for a timer in the order they were recorded."""
        with self._lock:
            return list(self._times.get(name, []))
    
    def stop_all(self) -> int:
        """Stop every running timer using one timestamp for the whole batch.
        
        Returns:
            Number of timers stopped
        """
        now = self._clock()
        with self._lock:
            names = list(self._running)
            for name in names:
                self._stop(name, now)
        if names:
            logger.debug(f"Stopped {len(names)} running timers at {now}")
        return len(names)
    
    def snapshot(self, stop_running: bool = False) -> StoreSnapshot:
        """Take a consistent copy of all store state.
        
        Args:
            stop_running: Stop all running timers before copying, inside the
                same critical section
                
        Returns:
            StoreSnapshot holding copies of every namespace
        """
        with self._lock:
            if stop_running:
                self.stop_all()
            return StoreSnapshot(
                timestamp_ms=self._clock(),
                counters=dict(self._counters),
                timers={k: list(v) for k, v in self._times.items()},
                running=dict(self._running),
            )
    
    def reset(self) -> None:
        """Clear counters, timer samples and running timers."""
        with self._lock:
            self._counters.clear()
            self._times.clear()
            self._running.clear()
        logger.debug("Metric store reset")
    
    def _start(self, name: str, at_ms: int) -> bool:
        if name in self._running:
            return False
        self._running[name] = at_ms
        return True
    
    def _stop(self, name: str, at_ms: int) -> bool:
        start = self._running.pop(name, None)
        if start is None:
            return False
        elapsed = at_ms - start
        if elapsed < 0:
            logger.warning(
                f"Timer {name} stopped before it started "
                f"(start={start}, stop={at_ms}); recording negative sample {elapsed}ms"
            )
        self._record(name, elapsed)
        return True
    
    def _record(self, name: str, elapsed_ms: int) -> None:
        self._times.setdefault(name, []).append(elapsed_ms)
