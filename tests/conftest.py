"""Shared fakes for transport and timer driven tests."""

import pytest

from cloudvars.connection import ReadyState, Transport


class FakeTransport(Transport):
    """In-memory transport driven explicitly by tests."""

    def __init__(self, url: str):
        super().__init__(url)
        self.sent: list[str] = []
        self.close_calls = 0

    def send(self, data: str) -> None:
        assert self.ready_state is ReadyState.OPEN, "send() on a transport that is not open"
        self.sent.append(data)

    def close(self) -> None:
        self.close_calls += 1
        self.ready_state = ReadyState.CLOSED

    # Helpers standing in for network events

    def simulate_open(self) -> None:
        self.ready_state = ReadyState.OPEN
        self.on_open()

    def simulate_message(self, payload: str) -> None:
        self.on_message(payload)

    def simulate_error(self, error: Exception | None = None) -> None:
        self.on_error(error or ConnectionResetError("reset"))

    def simulate_close(self) -> None:
        self.ready_state = ReadyState.CLOSED
        self.on_close()


class TransportRecorder:
    """Transport factory that remembers every transport it built."""

    def __init__(self) -> None:
        self.created: list[FakeTransport] = []
        self.fail_with: Exception | None = None

    def __call__(self, url: str) -> FakeTransport:
        if self.fail_with is not None:
            raise self.fail_with
        transport = FakeTransport(url)
        self.created.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.created[-1]


class FakeTimer:
    def __init__(self, delay: float, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.fired = True
            self.callback()


class FakeScheduler:
    """Records scheduled callbacks instead of running an event loop."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, delay: float, callback) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def fire_all(self) -> None:
        for timer in list(self.timers):
            timer.fire()


@pytest.fixture
def transports():
    return TransportRecorder()


@pytest.fixture
def scheduler():
    return FakeScheduler()
