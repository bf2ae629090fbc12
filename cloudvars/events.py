"""In-process notifier for events coming from outside the client.

Stands in for the host environment's hooks: the local store watcher
emits ``storage``, the owning runtime emits ``project_loaded``,
``url_change`` and ``paste``. Listeners are fire-and-forget: failures
are logged but never interrupt the emitter.
"""

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

STORAGE = "storage"
PROJECT_LOADED = "project_loaded"
URL_CHANGE = "url_change"
PASTE = "paste"

Listener = Callable[[Any], None]


class EventSource:
    """Named-event notifier with explicit subscribe/unsubscribe."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener) -> None:
        """Register a listener for an event name."""
        self._listeners.setdefault(event, []).append(listener)

    def off(self, event: str, listener: Listener) -> None:
        """Remove a previously registered listener."""
        try:
            self._listeners.get(event, []).remove(listener)
        except ValueError:
            pass

    def emit(self, event: str, payload: Any = None) -> None:
        """Fire all listeners for ``event``. Never raises."""
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(payload)
            except Exception:
                logger.exception(f"Listener for '{event}' failed")

    def listener_count(self, event: str | None = None) -> int:
        if event is not None:
            return len(self._listeners.get(event, []))
        return sum(len(listeners) for listeners in self._listeners.values())
