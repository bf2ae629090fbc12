"""Callback-driven transport handles for the remote authority."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import IntEnum
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, InvalidURI, WebSocketException
from websockets.uri import parse_uri

from ..exceptions import CloudVarsError, MalformedFrameError, TransportUnavailableError

logger = logging.getLogger(__name__)


class ReadyState(IntEnum):
    """Lifecycle of a single transport handle."""

    CONNECTING = 0
    OPEN = 1
    CLOSING = 2
    CLOSED = 3


def _noop(*args: Any) -> None:
    pass


class Transport(ABC):
    """A single connection attempt to the remote authority.

    Owners register ``on_open``, ``on_message``, ``on_error`` and
    ``on_close``. An error is always followed by a close.
    """

    def __init__(self, url: str):
        self.url = url
        self.ready_state = ReadyState.CONNECTING
        self.on_open: Callable[[], None] = _noop
        self.on_message: Callable[[str], None] = _noop
        self.on_error: Callable[[BaseException], None] = _noop
        self.on_close: Callable[[], None] = _noop

    def detach(self) -> None:
        """Drop all handlers so later events reach nobody."""
        self.on_open = _noop
        self.on_message = _noop
        self.on_error = _noop
        self.on_close = _noop

    @property
    def is_open(self) -> bool:
        return self.ready_state is ReadyState.OPEN

    @property
    def buffered_amount(self) -> int:
        """Number of payloads accepted by send() but not yet written."""
        return 0

    @abstractmethod
    def send(self, data: str) -> None:
        """Send a text payload. Only valid while open."""

    @abstractmethod
    def close(self) -> None:
        """Begin closing the handle. Safe to call more than once."""


TransportFactory = Callable[[str], Transport]


class WebSocketTransport(Transport):
    """Transport backed by a ``websockets`` client connection.

    Construction schedules the connection on the running event loop and
    returns immediately; progress is reported through the handlers.
    """

    def __init__(self, url: str):
        super().__init__(url)

        try:
            parse_uri(url)
        except InvalidURI as e:
            raise TransportUnavailableError(f"Invalid WebSocket URL: {e}", url) from e

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise TransportUnavailableError("WebSocket transport needs a running event loop", url) from e

        self._ws: Any = None
        self._outgoing: asyncio.Queue[str] = asyncio.Queue()
        self._in_flight = 0
        self._close_task: asyncio.Task | None = None
        self._task = loop.create_task(self._run())
        self._task.add_done_callback(self._finish)

    async def _run(self) -> None:
        try:
            async with websockets.connect(self.url) as ws:
                self._ws = ws
                if self.ready_state is ReadyState.CONNECTING:
                    self.ready_state = ReadyState.OPEN
                    self.on_open()
                else:
                    # close() was requested while the handshake was in flight
                    return

                writer = asyncio.create_task(self._write_loop(ws))
                try:
                    async for data in ws:
                        if isinstance(data, bytes):
                            data = data.decode("utf-8", errors="replace")
                        self._deliver(data)
                finally:
                    writer.cancel()
        except asyncio.CancelledError:
            logger.debug(f"Connection attempt to {self.url} cancelled")
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self.on_error(e)
        finally:
            self.ready_state = ReadyState.CLOSED
            self._ws = None
            self.on_close()

    def _finish(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Connection to {self.url} failed", exc_info=task.exception())

        # Covers a task cancelled before it ever ran
        if self.ready_state is not ReadyState.CLOSED:
            self.ready_state = ReadyState.CLOSED
            self.on_close()

    def _deliver(self, data: str) -> None:
        try:
            self.on_message(data)
        except MalformedFrameError:
            logger.exception(f"Malformed delivery from {self.url}")

    async def _write_loop(self, ws: Any) -> None:
        while True:
            data = await self._outgoing.get()
            self._in_flight = 1
            try:
                await ws.send(data)
            except ConnectionClosed:
                return
            finally:
                self._in_flight = 0

    @property
    def buffered_amount(self) -> int:
        return self._outgoing.qsize() + self._in_flight

    def send(self, data: str) -> None:
        if self.ready_state is not ReadyState.OPEN:
            raise CloudVarsError(f"Cannot send on a transport in state {self.ready_state.name}")
        self._outgoing.put_nowait(data)

    def close(self) -> None:
        if self.ready_state in (ReadyState.CLOSING, ReadyState.CLOSED):
            return
        self.ready_state = ReadyState.CLOSING
        if self._ws is not None:
            self._close_task = asyncio.get_running_loop().create_task(self._ws.close())
        else:
            self._task.cancel()


async def check_connection(url: str, timeout: float = 5.0) -> bool:
    """Check whether the remote authority accepts WebSocket connections."""
    try:
        async with websockets.connect(url, open_timeout=timeout):
            return True
    except (OSError, asyncio.TimeoutError, WebSocketException):
        return False
