"""Background task that turns store changes from other processes into events."""

import asyncio
import logging

from ..events import STORAGE, EventSource
from .local_store import LocalFallbackStore

logger = logging.getLogger(__name__)


class StoreWatcher:
    """Polls the fallback store and emits a ``storage`` event per change."""

    def __init__(
        self,
        store: LocalFallbackStore,
        events: EventSource,
        interval_seconds: float = 0.5,
    ):
        self._store = store
        self._events = events
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start polling as a background task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Store watcher started (interval={self._interval}s)")

    async def stop(self) -> None:
        """Stop polling."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Store watcher stopped")

    def poll_once(self) -> int:
        """Emit events for pending changes. Returns how many were emitted."""
        changes = self._store.poll_changes()
        for change in changes:
            self._events.emit(STORAGE, change)
        return len(changes)

    async def _run_loop(self) -> None:
        while self._running:
            try:
                self.poll_once()
            except Exception as e:
                logger.error(f"Polling the local store failed: {e}", exc_info=True)

            await asyncio.sleep(self._interval)
