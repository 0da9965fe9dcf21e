"""Named-queue transports consumed by the liveness and handshake protocols."""

from typing import Optional

from heartline.core.models import TransportSettings
from heartline.transport.base import DeliverCallback, Subscription, Transport
from heartline.transport.memory import MemoryBroker, MemoryTransport, default_broker
from heartline.utils.diagnostics import TransportError


def open_transport(settings: TransportSettings, broker: Optional[MemoryBroker] = None) -> Transport:
    """Connect the transport selected by the URL scheme of `settings.url`."""
    scheme = settings.url.split("://", 1)[0].lower() if "://" in settings.url else ""

    if scheme == "memory":
        return MemoryTransport(broker=broker, poll_timeout_ms=min(settings.poll_timeout_ms, 100))

    if scheme in {"redis", "rediss", "unix"}:
        from heartline.transport.redis_transport import RedisTransport

        return RedisTransport(
            url=settings.url,
            key_prefix=settings.key_prefix,
            connect_timeout_ms=settings.connect_timeout_ms,
            poll_timeout_ms=settings.poll_timeout_ms,
        )

    raise TransportError(f"Unsupported transport URL scheme in '{settings.url}'.")


__all__ = [
    "DeliverCallback",
    "MemoryBroker",
    "MemoryTransport",
    "Subscription",
    "Transport",
    "TransportError",
    "default_broker",
    "open_transport",
]
