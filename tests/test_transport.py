import threading

import pytest

from conftest import UnreachableTransport, wait_until
from heartline.core.models import TransportSettings
from heartline.transport import open_transport
from heartline.transport.memory import MemoryTransport, default_broker
from heartline.utils.diagnostics import TransportError


def test_memory_transport_delivers_in_publish_order(transport_factory):
    consumer = transport_factory()
    producer = transport_factory()
    consumer.declare("orders")
    received = []

    consumer.subscribe("orders", received.append)
    for index in range(20):
        producer.publish("orders", f"m{index}".encode())

    assert wait_until(lambda: len(received) == 20)
    assert received == [f"m{index}".encode() for index in range(20)]


def test_callbacks_for_one_queue_never_overlap(transport_factory):
    transport = transport_factory()
    active = {"now": 0, "max": 0}
    lock = threading.Lock()
    done = []

    def callback(body):
        with lock:
            active["now"] += 1
            active["max"] = max(active["max"], active["now"])
        threading.Event().wait(0.002)
        with lock:
            active["now"] -= 1
        done.append(body)

    transport.subscribe("orders", callback)
    for index in range(10):
        transport.publish("orders", b"x")

    assert wait_until(lambda: len(done) == 10)
    assert active["max"] == 1


def test_purge_drops_waiting_messages(broker, transport_factory):
    transport = transport_factory()
    transport.declare("orders")
    transport.publish("orders", b"old")
    transport.publish("orders", b"older")

    transport.purge("orders")

    assert broker.pending("orders") == 0


def test_second_active_subscription_is_rejected(transport_factory):
    transport = transport_factory()
    transport.subscribe("orders", lambda body: None)

    with pytest.raises(TransportError, match="active consumer"):
        transport.subscribe("orders", lambda body: None)


def test_cancelled_subscription_stops_delivery(broker, transport_factory):
    transport = transport_factory()
    received = []
    subscription = transport.subscribe("orders", received.append)

    subscription.cancel()
    transport.publish("orders", b"late")

    assert wait_until(lambda: received, timeout=0.1) is False
    assert broker.pending("orders") == 1


def test_callback_errors_do_not_stop_consumption(transport_factory):
    transport = transport_factory()
    received = []

    def callback(body):
        if body == b"bad":
            raise RuntimeError("handler bug")
        received.append(body)

    transport.subscribe("orders", callback)
    transport.publish("orders", b"bad")
    transport.publish("orders", b"good")

    assert wait_until(lambda: received == [b"good"])


class HoldingTransport(MemoryTransport):
    """Holds each received body until `release` is set."""

    def __init__(self, broker):
        super().__init__(broker=broker, poll_timeout_ms=20)
        self.taken = threading.Event()
        self.release = threading.Event()

    def _receive(self, queue_name):
        body = super()._receive(queue_name)
        if body is not None:
            self.taken.set()
            self.release.wait(2.0)
        return body


def test_message_taken_before_cancel_is_still_delivered(broker):
    transport = HoldingTransport(broker)
    received = []
    subscription = transport.subscribe("orders", received.append)
    transport.publish("orders", b"important")
    assert transport.taken.wait(2.0)

    canceller = threading.Thread(target=subscription.cancel)
    canceller.start()
    assert wait_until(lambda: not subscription.active)
    transport.release.set()
    canceller.join(2.0)

    assert received == [b"important"]
    assert broker.pending("orders") == 0
    transport.close()


def test_receive_failure_ends_consumption_and_is_reported():
    transport = UnreachableTransport()
    errors = []
    subscription = transport.subscribe("orders", lambda body: None, on_error=errors.append)

    assert wait_until(lambda: len(errors) == 1)
    assert subscription.error is errors[0]
    assert "connection lost" in str(subscription.error)
    assert not subscription.active

    # No retry loop once the consumer has failed.
    assert wait_until(lambda: transport.receive_attempts > 1, timeout=0.1) is False
    transport.close()

def test_closed_transport_raises_transport_error(transport_factory):
    transport = transport_factory()
    transport.close()

    with pytest.raises(TransportError, match="closed"):
        transport.publish("orders", b"x")
    with pytest.raises(TransportError, match="closed"):
        transport.subscribe("orders", lambda body: None)


def test_open_transport_selects_memory_by_default():
    transport = open_transport(TransportSettings())
    try:
        assert isinstance(transport, MemoryTransport)
        assert transport.broker is default_broker()
    finally:
        transport.close()


def test_open_transport_rejects_unknown_scheme():
    with pytest.raises(TransportError, match="Unsupported transport URL"):
        open_transport(TransportSettings(url="amqps://guest@localhost"))
