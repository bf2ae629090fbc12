"""Connection lifecycle for the remote authority.

Drives the connect / retry state machine:

    DISCONNECTED --open()--> CONNECTING --transport open--> OPEN
    OPEN --close or error--> DISCONNECTED (retry scheduled) --timer--> CONNECTING

``close()`` from any state is terminal for the manager.
"""

import asyncio
import logging
import random
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

from .transport import ReadyState, Transport, TransportFactory, WebSocketTransport

logger = logging.getLogger(__name__)

DEFAULT_MAX_EXPONENT = 5


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


def exponential_timeout(attempts: int, max_exponent: int = DEFAULT_MAX_EXPONENT) -> float:
    """Upper bound of the retry delay in milliseconds for an attempt count."""
    return (2 ** min(attempts, max_exponent) - 1) * 1000.0


def randomize_duration(duration: float, rng: Callable[[], float] = random.random) -> float:
    """Scale a duration by a uniform factor in [0, 1)."""
    return rng() * duration


def loop_scheduler(delay: float, callback: Callable[[], None]) -> TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


class ConnectionManager:
    """Owns the transport handle and reconnects with jittered backoff."""

    def __init__(
        self,
        url: str | None,
        on_ready: Callable[[], None] | None = None,
        on_message: Callable[[str], None] | None = None,
        transport_factory: TransportFactory = WebSocketTransport,
        scheduler: Scheduler = loop_scheduler,
        rng: Callable[[], float] = random.random,
        max_exponent: int = DEFAULT_MAX_EXPONENT,
    ):
        """Initialize the connection manager.

        Args:
            url: Remote authority URL. None means local-only mode.
            on_ready: Called after every successful open.
            on_message: Called with each raw payload received.
            transport_factory: Builds a transport for a URL.
            scheduler: ``(delay_seconds, callback) -> handle`` used for retries.
            rng: Source of the backoff jitter factor.
            max_exponent: Cap on backoff growth.
        """
        self.url = url
        self._on_ready = on_ready
        self._on_message = on_message
        self._transport_factory = transport_factory
        self._scheduler = scheduler
        self._rng = rng
        self._max_exponent = max_exponent

        self.attempt_count = 0
        self.connection: Transport | None = None
        self._retry_timer: TimerHandle | None = None
        self._closed = False

    @property
    def has_remote(self) -> bool:
        return bool(self.url)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> ConnectionState:
        if self.connection is None:
            return ConnectionState.DISCONNECTED
        return {
            ReadyState.CONNECTING: ConnectionState.CONNECTING,
            ReadyState.OPEN: ConnectionState.OPEN,
            ReadyState.CLOSING: ConnectionState.CLOSING,
            ReadyState.CLOSED: ConnectionState.DISCONNECTED,
        }[self.connection.ready_state]

    @property
    def is_ready(self) -> bool:
        """True when messages can be sent now (always true in local mode)."""
        if not self.has_remote:
            return True
        return self.connection is not None and self.connection.is_open

    @property
    def buffered_amount(self) -> int:
        if self.connection is None:
            return 0
        return self.connection.buffered_amount

    def open(self) -> None:
        """Start a connection attempt."""
        if self._closed:
            logger.debug("Ignoring open() on a closed connection manager")
            return
        if not self.has_remote:
            return
        if self.state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            return

        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None
        self.attempt_count += 1

        try:
            connection = self._transport_factory(self.url)
        except Exception as e:
            logger.warning(f"Transport is not available, staying offline: {e}")
            self.connection = None
            return

        connection.on_error = self._handle_error
        connection.on_message = self._handle_message
        connection.on_open = self._handle_open
        connection.on_close = self._handle_close
        self.connection = connection

    def send(self, data: str) -> None:
        if self.connection is None:
            raise RuntimeError("No transport to send on")
        self.connection.send(data)

    def _handle_error(self, error: Any) -> None:
        logger.error(f"Websocket connection error: {error!r}")

    def _handle_message(self, data: str) -> None:
        if self._on_message:
            self._on_message(data)

    def _handle_open(self) -> None:
        # Subsequent reconnects start backing off from the first step again
        self.attempt_count = 1
        logger.info(f"Successfully connected to {self.url}")
        if self._on_ready:
            self._on_ready()

    def _handle_close(self) -> None:
        logger.info("Closed connection to websocket")
        delay_ms = randomize_duration(
            exponential_timeout(self.attempt_count, self._max_exponent), self._rng
        )
        self._schedule_retry(delay_ms)

    def _schedule_retry(self, delay_ms: float) -> None:
        if self._retry_timer is not None:
            self._retry_timer.cancel()
        logger.info(f"Reconnecting in {delay_ms / 1000:.1f}s, attempt {self.attempt_count}")
        self._retry_timer = self._scheduler(delay_ms / 1000, self.open)

    def _release_connection(self) -> None:
        connection, self.connection = self.connection, None
        if connection is None:
            return
        connection.detach()
        if connection.ready_state not in (ReadyState.CLOSING, ReadyState.CLOSED):
            connection.close()

    def reconnect(self, url: str | None) -> None:
        """Switch to a different remote authority and connect to it."""
        if self._closed:
            return
        logger.info(f"Switching remote authority to {url}")
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None
        self._release_connection()
        self.url = url
        self.open()

    def close(self) -> None:
        """Close without reconnecting. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

        if self.connection is not None:
            logger.info("Request close cloud connection without reconnecting")
        self._release_connection()
        self.attempt_count = 0
