"""Scope based timer bound to a MetricStore."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .store import MetricStore


class ScopedTimer:
    """Timer that starts on construction and stops when its scope ends.
    
    Useful when timing a block with several exit points. Use it as a context
    manager; dropping the last reference also stops the timer.
    
    Usage:
        with ScopedTimer(store, 'cache.refresh'):
            refresh()
    """
    
    def __init__(self, store: "MetricStore", name: str):
        """Start the named timer in ``store``."""
        self._store = store
        self._name = name
        store.start_timer(name)
        self._active = True
    
    @property
    def name(self) -> str:
        return self._name
    
    @property
    def active(self) -> bool:
        return self._active
    
    def stop(self) -> None:
        """Stop the timer. Calls after the first are no-ops."""
        if self._active:
            self._active = False
            self._store.stop_timer(self._name)
    
    def __enter__(self) -> "ScopedTimer":
        return self
    
    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
    
    def __del__(self):
        # __init__ may have failed before _active was set
        if getattr(self, "_active", False):
            self.stop()
    
    def __repr__(self) -> str:
        state = "running" if self._active else "stopped"
        return f"ScopedTimer({self._name!r}, {state})"
