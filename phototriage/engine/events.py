"""Observable values the engine publishes to whatever UI sits on top."""

import logging
import threading
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Signal(Generic[T]):
    """A value plus subscribers notified whenever it changes."""

    def __init__(self, name: str, initial: T):
        self.name = name
        self._value = initial
        self._subscribers: List[Callable[[T], None]] = []
        self._lock = threading.Lock()

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def set(self, value: T) -> None:
        self.update(lambda _: value)

    def update(self, fn: Callable[[T], T]) -> T:
        """Atomically replace the value with fn(old) and notify on change."""
        with self._lock:
            value = fn(self._value)
            if value == self._value:
                return value
            self._value = value
            subscribers = list(self._subscribers)

        self._notify(subscribers, value)
        return value

    def _notify(self, subscribers: List[Callable[[T], None]], value: T) -> None:
        for callback in subscribers:
            try:
                callback(value)
            except Exception:
                logger.exception(f"Subscriber of {self.name} failed")


class LibrarySignals:
    """Observable library state for UI bindings."""

    def __init__(self):
        self.is_scanning: Signal[bool] = Signal("is_scanning", False)
        self.scan_progress: Signal[float] = Signal("scan_progress", 0.0)
        self.counts_version: Signal[int] = Signal("counts_version", 0)
        self.scan_phase: Signal[str] = Signal("scan_phase", "idle")

    def bump_counts_version(self) -> int:
        return self.counts_version.update(lambda v: v + 1)
