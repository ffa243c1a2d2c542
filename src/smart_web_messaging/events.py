"""
In-process listener fan-out.

Listeners run in registration order over a snapshot of the list, so a
listener may add or remove listeners (itself included) while being called.
A failing listener never stops the ones after it.
"""

import logging
import threading
from typing import Any, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

L = TypeVar("L")


class EventBus(Generic[L]):
    def __init__(self) -> None:
        self._listeners: list[L] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    def add(self, listener: L) -> Callable[[], None]:
        """Register a listener. Returns a function that removes it again."""
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            self.remove(listener)
        return remove

    def remove(self, listener: L) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def snapshot(self) -> list[L]:
        with self._lock:
            return list(self._listeners)

    def emit(self, callback: str, *args: Any) -> list[Exception]:
        """Call ``listener.<callback>(*args)`` on every listener.

        Returns the exceptions raised, in listener order; each one is logged.
        """
        errors: list[Exception] = []
        for listener in self.snapshot():
            try:
                getattr(listener, callback)(*args)
            except Exception as e:
                logger.error("Error in listener %s", callback, exc_info=True)
                errors.append(e)
        return errors
