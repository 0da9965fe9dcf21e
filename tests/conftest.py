import pytest
import sys
import time
from pathlib import Path

# Ensure src/ is in the python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from heartline.transport.memory import MemoryBroker, MemoryTransport
from heartline.utils.diagnostics import TransportError


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class UnreachableTransport(MemoryTransport):
    """Memory transport whose consumer side has lost its connection."""

    def __init__(self, broker=None):
        super().__init__(broker=broker if broker is not None else MemoryBroker(), poll_timeout_ms=20)
        self.receive_attempts = 0

    def _receive(self, queue_name):
        self.receive_attempts += 1
        raise TransportError("connection lost", queue_name=queue_name)


def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll `predicate` until it is truthy or `timeout` seconds elapse."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def broker():
    """A broker private to one test, so queues never leak between tests."""
    return MemoryBroker()


@pytest.fixture
def transport_factory(broker):
    created = []

    def factory() -> MemoryTransport:
        transport = MemoryTransport(broker=broker, poll_timeout_ms=20)
        created.append(transport)
        return transport

    yield factory

    for transport in created:
        transport.close()
