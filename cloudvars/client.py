"""Cloud variable sync client.

Keeps named cloud variables consistent between the owning runtime and a
remote authority, falling back to the local store when there is no
remote authority or when a variable is in the local-only namespace.
"""

import logging
import random
from collections.abc import Callable, Iterable
from dataclasses import replace
from typing import Any

from .config import CLOUD_PREFIX, CloudConfig, SessionConfig
from .connection import ConnectionManager, TransportFactory, WebSocketTransport
from .connection.manager import Scheduler, loop_scheduler
from .events import PASTE, PROJECT_LOADED, STORAGE, URL_CHANGE, EventSource
from .protocol import (
    Message,
    Method,
    OutboundQueue,
    VarUpdate,
    decode_frame,
    encode_message,
    split_frames,
)
from .storage import LocalFallbackStore, StoreChange

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[VarUpdate], None]
UserDataCallback = Callable[[dict[str, Any]], None]
CommandHandler = Callable[[str, Any], None]

URL_VARIABLE = CLOUD_PREFIX + "url"
PASTED_VARIABLE = CLOUD_PREFIX + "pasted"
ERROR_VARIABLE = CLOUD_PREFIX + "eval error"

# Special-mode commands forwarded to the host's command handler
HOST_COMMANDS = frozenset({"open link", "redirect", "set clipboard"})


class SyncClient:
    """Routes variable changes to the remote authority or the local store.

    Every applied change, whatever its origin, reaches the runtime through
    the single ``on_update`` callback.
    """

    def __init__(
        self,
        cloud: CloudConfig,
        session: SessionConfig,
        store: LocalFallbackStore,
        on_update: UpdateCallback,
        events: EventSource | None = None,
        on_user_data: UserDataCallback | None = None,
        command_handler: CommandHandler | None = None,
        transport_factory: TransportFactory = WebSocketTransport,
        scheduler: Scheduler = loop_scheduler,
        rng: Callable[[], float] = random.random,
    ):
        """Initialize the client and start connecting.

        Args:
            cloud: Remote authority settings.
            session: User and project identity sent with every message.
            store: Local fallback store.
            on_update: Receives every inbound variable update.
            events: Source of storage, project and host events.
            on_user_data: Receives user data changes (special mode).
            command_handler: Runs host commands such as opening links (special mode).
            transport_factory: Builds transports for the connection manager.
            scheduler: Timer used for reconnect delays.
            rng: Jitter source for reconnect delays.
        """
        self.cloud = cloud
        self.user = session.user
        self.project_id = session.project_id
        self.store = store
        self.events = events or EventSource()
        self.queue = OutboundQueue()

        self._on_update = on_update
        self._on_user_data = on_user_data
        self._command_handler = command_handler
        self._last_url: str | None = None
        self._closed = False

        self._subscriptions: list[tuple[str, Callable[[Any], None]]] = [
            (STORAGE, self._handle_storage),
            (PROJECT_LOADED, self._handle_project_loaded),
        ]
        if cloud.special:
            self._subscriptions += [
                (URL_CHANGE, self._handle_url_change),
                (PASTE, self._handle_paste),
            ]
        for event, listener in self._subscriptions:
            self.events.on(event, listener)

        self.connection = ConnectionManager(
            cloud.url,
            on_ready=self._handle_ready,
            on_message=self._handle_message,
            transport_factory=transport_factory,
            scheduler=scheduler,
            rng=rng,
            max_exponent=cloud.max_backoff_exponent,
        )
        self.connection.open()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_ready(self) -> bool:
        return self.connection.is_ready

    @property
    def pending(self) -> int:
        """Number of structural messages waiting for a connection."""
        return len(self.queue)

    def open(self) -> None:
        """Retry connecting, e.g. after the transport was unavailable."""
        self.connection.open()

    # ==================== Runtime API ====================

    def create_variable(self, name: str, value: Any) -> None:
        self._write(Method.CREATE, name, value=value)

    def update_variable(self, name: str, value: Any) -> None:
        self._write(Method.SET, name, value=value)

    def rename_variable(self, old_name: str, new_name: str) -> None:
        self._write(Method.RENAME, old_name, new_name=new_name)

    def delete_variable(self, name: str) -> None:
        self._write(Method.DELETE, name)

    def close(self) -> None:
        """Detach listeners, close the connection and drop pending state."""
        if self._closed:
            return
        self._closed = True

        for event, listener in self._subscriptions:
            self.events.off(event, listener)
        self.connection.close()
        self.queue.clear()
        self._last_url = None
        logger.info(f"Closed cloud session for project {self.project_id}")

    # ==================== Routing ====================

    def _write(
        self,
        method: Method,
        name: str,
        value: Any = None,
        new_name: str | None = None,
    ) -> None:
        if self._closed:
            logger.debug(f"Ignoring {method.value} for {name!r} on a closed client")
            return

        if self.cloud.special and method is Method.SET and self._run_command(name, value):
            return

        message = encode_message(
            method, self.user, self.project_id, name=name, value=value, new_name=new_name
        )

        if self._is_local(message):
            self._write_local(message)
        elif self.connection.is_ready:
            self._send(message)
        elif message.queueable:
            self.queue.enqueue(message)
        else:
            logger.debug(f"Dropping {method.value} for {name!r} while offline")

    def _is_local_name(self, name: str | None) -> bool:
        prefix = self.cloud.local_prefix
        return bool(prefix) and name is not None and name.startswith(prefix)

    def _is_local(self, message: Message) -> bool:
        if not self.connection.has_remote:
            return True
        if self._is_local_name(message.name):
            return True
        return message.method is Method.RENAME and self._is_local_name(message.new_name)

    def _write_local(self, message: Message) -> None:
        if message.method in (Method.CREATE, Method.SET):
            self.store.set(message.name, message.value)
            self._deliver(VarUpdate(message.name, message.value))
        elif message.method is Method.RENAME:
            value = self.store.rename(message.name, message.new_name)
            if value is not None:
                self._deliver(VarUpdate(message.new_name, value))
        elif message.method is Method.DELETE:
            self.store.remove(message.name)

    def _send(self, message: Message) -> None:
        self.connection.send(message.to_frame())

    def _deliver(self, update: VarUpdate) -> None:
        self._on_update(update)

    # ==================== Connection events ====================

    def _handle_ready(self) -> None:
        handshake = encode_message(Method.HANDSHAKE, self.user, self.project_id)
        self._send(handshake)
        sent = self.queue.drain_into(self._send)
        if sent:
            logger.info(f"Flushed {sent} queued messages")

    def _handle_message(self, payload: str) -> None:
        # Frames before a malformed one have already been applied
        for frame in split_frames(payload):
            update = decode_frame(frame)
            if update:
                self._deliver(update)

    # ==================== External events ====================

    def _handle_storage(self, change: StoreChange) -> None:
        if change.new_value is None:
            return
        self._deliver(VarUpdate(change.name, change.new_value))

    def _handle_project_loaded(self, names: Iterable[str]) -> None:
        """Seed cloud variables from the local store."""
        for name in names:
            if self.connection.has_remote and not self._is_local_name(name):
                continue
            value = self.store.get(name)
            if value is None:
                continue
            self._deliver(VarUpdate(name, value))

        if self.cloud.special and self._last_url is not None:
            self._deliver(VarUpdate(URL_VARIABLE, self._last_url))

    def _handle_url_change(self, url: str) -> None:
        self._last_url = url
        self._deliver(VarUpdate(URL_VARIABLE, url))

    def _handle_paste(self, text: str) -> None:
        self._deliver(VarUpdate(PASTED_VARIABLE, text))

    # ==================== Special mode ====================

    def _post_error(self, error: Any) -> None:
        self._deliver(VarUpdate(ERROR_VARIABLE, str(error)))

    def _run_command(self, name: str, value: Any) -> bool:
        """Run a special-mode command variable. Returns True if handled."""
        command = name.removeprefix(CLOUD_PREFIX)

        if command == "eval":
            logger.warning("Refusing remote code execution request")
            self._post_error("eval is not supported")
            return True

        if command in HOST_COMMANDS:
            if self._command_handler is None:
                logger.warning(f"No command handler for {command!r}, ignoring")
                return True
            try:
                self._command_handler(command, value)
            except Exception as e:
                logger.warning(f"Command {command!r} failed: {e}")
                self._post_error(e)
            return True

        if command == "set server ip":
            self.cloud = replace(self.cloud, host=str(value))
            self.connection.reconnect(self.cloud.url)
            return True

        if command == "username":
            if self._on_user_data:
                self._on_user_data({"username": value})
            return True

        return False
