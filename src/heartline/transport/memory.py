from __future__ import annotations

import queue
import threading
from typing import Dict, Optional

from heartline.transport.base import Transport


class MemoryBroker:
    """In-process broker holding one FIFO queue per name."""

    def __init__(self) -> None:
        self._queues: Dict[str, "queue.Queue[bytes]"] = {}
        self._lock = threading.Lock()

    def declare(self, queue_name: str) -> "queue.Queue[bytes]":
        with self._lock:
            return self._queues.setdefault(queue_name, queue.Queue())

    def get(self, queue_name: str) -> Optional["queue.Queue[bytes]"]:
        with self._lock:
            return self._queues.get(queue_name)

    def purge(self, queue_name: str) -> int:
        target = self.get(queue_name)
        if target is None:
            return 0

        dropped = 0
        while True:
            try:
                target.get_nowait()
            except queue.Empty:
                return dropped
            dropped += 1

    def pending(self, queue_name: str) -> int:
        target = self.get(queue_name)
        return target.qsize() if target is not None else 0


_default_broker = MemoryBroker()


def default_broker() -> MemoryBroker:
    """Process-wide broker shared by every `memory://` transport."""
    return _default_broker


class MemoryTransport(Transport):
    """
    Transport backed by a MemoryBroker.

    Publishing to a queue nobody declared yet creates it, so messages wait for
    a consumer that subscribes later.
    """

    def __init__(self, broker: Optional[MemoryBroker] = None, poll_timeout_ms: int = 100) -> None:
        super().__init__(poll_timeout_ms=poll_timeout_ms)
        self.broker = broker if broker is not None else default_broker()

    def declare(self, queue_name: str) -> None:
        self._ensure_open(queue_name)
        self.broker.declare(queue_name)

    def purge(self, queue_name: str) -> None:
        self._ensure_open(queue_name)
        self.broker.purge(queue_name)

    def publish(self, queue_name: str, body: bytes) -> None:
        self._ensure_open(queue_name)
        self.broker.declare(queue_name).put(body)

    def _receive(self, queue_name: str) -> Optional[bytes]:
        source = self.broker.declare(queue_name)
        try:
            return source.get(timeout=self.poll_timeout_seconds)
        except queue.Empty:
            return None
