"""Wiring of store, watcher and client for one project session."""

import asyncio
import logging
from typing import Any

from .client import SyncClient, UpdateCallback
from .config import Config
from .events import PROJECT_LOADED, EventSource
from .storage import LocalFallbackStore, StoreWatcher

logger = logging.getLogger(__name__)


class CloudSession:
    """Owns the resources behind a SyncClient for a project session."""

    def __init__(self, config: Config, on_update: UpdateCallback, **client_kwargs: Any):
        """Initialize the session.

        Args:
            config: Loaded configuration.
            on_update: Receives every inbound variable update.
            **client_kwargs: Passed through to SyncClient.
        """
        self.config = config
        self.events = EventSource()
        self.store = LocalFallbackStore(config.store.path, prefix=config.store.prefix)
        self.watcher = StoreWatcher(
            self.store, self.events, interval_seconds=config.store.poll_interval_seconds
        )
        self._on_update = on_update
        self._client_kwargs = client_kwargs
        self.client: SyncClient | None = None

    async def start(self, cloud_variables: list[str] | None = None) -> SyncClient:
        """Connect the store, start the client and seed variables.

        Args:
            cloud_variables: Names of the project's cloud variables.

        Returns:
            The running SyncClient.
        """
        self.store.connect()
        self.client = SyncClient(
            self.config.cloud,
            self.config.session,
            self.store,
            self._on_update,
            events=self.events,
            **self._client_kwargs,
        )
        await self.watcher.start()
        self.events.emit(PROJECT_LOADED, cloud_variables or [])

        mode = "remote" if self.config.cloud.has_remote else "local"
        logger.info(f"Cloud session started for project {self.config.session.project_id} ({mode})")
        return self.client

    async def wait_until_ready(self, timeout: float = 5.0, poll: float = 0.05) -> bool:
        """Wait until the client can send directly to the remote authority."""
        if self.client is None:
            return False

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not self.client.is_ready:
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(poll)
        return True

    async def wait_until_flushed(self, timeout: float = 5.0, poll: float = 0.05) -> bool:
        """Wait until the client is connected with an empty queue."""
        if self.client is None:
            return False

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            connection = self.client.connection
            if connection.is_ready and not self.client.pending and not connection.buffered_amount:
                return True
            await asyncio.sleep(poll)
        return False

    async def stop(self) -> None:
        """Tear down the client, watcher and store."""
        if self.client is not None:
            self.client.close()
        await self.watcher.stop()
        self.store.close()
