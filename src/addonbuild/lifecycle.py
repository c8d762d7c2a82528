"""Rebuild lifecycle events.

Events, in the order a caller sees them:
    start                 rebuild began
    module-found (name)   a module with a native build was reached
    module-done           that module finished (built, replayed or already built)
    module-skip           the finished module was already built for the target
    finish                every task settled without a failure
"""

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

START = "start"
MODULE_FOUND = "module-found"
MODULE_DONE = "module-done"
MODULE_SKIP = "module-skip"
FINISH = "finish"

Listener = Callable[..., None]


class Lifecycle:
    """Minimal thread-safe event emitter."""

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)
        self._lock = threading.RLock()

    def on(self, event: str, listener: Listener) -> "Lifecycle":
        """Register a listener for an event."""
        with self._lock:
            self._listeners[event].append(listener)
        return self

    def emit(self, event: str, *args: Any) -> None:
        """Call every listener of an event in registration order.

        Emission is serialized so listeners never run concurrently.
        """
        with self._lock:
            for listener in list(self._listeners[event]):
                try:
                    listener(*args)
                except Exception as e:
                    logging.warning(f"Lifecycle listener for '{event}' failed: {e}")
