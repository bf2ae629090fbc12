"""Outbound queue for structural messages produced while disconnected."""

import logging
from collections.abc import Callable, Iterator

from .codec import Message

logger = logging.getLogger(__name__)


class OutboundQueue:
    """Unbounded FIFO of messages waiting for an open connection."""

    def __init__(self) -> None:
        self._messages: list[Message] = []

    def enqueue(self, message: Message) -> None:
        self._messages.append(message)
        logger.debug(f"Queued {message.method.value} for {message.name!r} ({len(self)} pending)")

    def drain_into(self, sender: Callable[[Message], None]) -> int:
        """Send every queued message in insertion order.

        The pending list is detached before sending, so anything enqueued
        by ``sender`` itself waits for the next drain.

        Returns:
            Number of messages handed to ``sender``.
        """
        pending, self._messages = self._messages, []
        for message in pending:
            sender(message)
        return len(pending)

    def clear(self) -> None:
        self._messages = []

    def __len__(self) -> int:
        return len(self._messages)

    def __bool__(self) -> bool:
        return bool(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))
