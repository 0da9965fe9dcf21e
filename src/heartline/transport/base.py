from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from heartline.cli.formatter import OutputFormatter
from heartline.utils.diagnostics import TransportError

DeliverCallback = Callable[[bytes], None]
ErrorCallback = Callable[[TransportError], None]


class Subscription:
    """
    Sequential consumption loop for one named queue.

    A single daemon thread pulls one message at a time from the transport and
    hands it to the callback, so two messages from the same queue are never
    processed concurrently.

    A receive failure ends the loop: the error is kept on `error` and handed to
    `on_error`. A message already taken off the queue is always delivered, even
    when cancel() arrives in the meantime.
    """

    def __init__(
        self,
        transport: "Transport",
        queue_name: str,
        callback: DeliverCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self.transport = transport
        self.queue_name = queue_name
        self.callback = callback
        self.on_error = on_error
        self.error: Optional[TransportError] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._consume_loop,
            name=f"heartline-consumer-{self.queue_name}",
            daemon=True,
        )
        self._thread.start()

    def cancel(self, timeout: float = 2.0) -> None:
        """Stop delivering messages; an in-flight callback is allowed to finish."""
        self._stop_event.set()
        if (
            self._thread is not None
            and self._thread.is_alive()
            and self._thread is not threading.current_thread()
        ):
            self._thread.join(timeout=timeout)
        self.transport._forget(self)

    def _consume_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                body = self.transport._receive(self.queue_name)
            except TransportError as exc:
                self._fail(exc)
                return

            if body is None:
                continue

            try:
                self.callback(body)
            except Exception as exc:
                OutputFormatter.log(
                    f"[ERROR]: Unhandled error while consuming from '{self.queue_name}': {exc!r}",
                    severity="error",
                )

    def _fail(self, exc: TransportError) -> None:
        if self._stop_event.is_set():
            return
        self.error = exc
        self._stop_event.set()
        OutputFormatter.log(f"Stopped consuming from '{self.queue_name}': {exc}", severity="critical")
        if self.on_error is not None:
            self.on_error(exc)


class Transport(ABC):
    """
    Reliable point-to-point named-queue delivery.

    Publish is fire-and-forget; every queue has at most one active subscription.
    Failures surface as TransportError.
    """

    def __init__(self, poll_timeout_ms: int = 1000) -> None:
        self.poll_timeout_seconds = poll_timeout_ms / 1000.0
        self._subscriptions: Dict[str, Subscription] = {}
        self._subscriptions_lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def declare(self, queue_name: str) -> None:
        """Create the named queue if it does not exist."""

    @abstractmethod
    def purge(self, queue_name: str) -> None:
        """Drop every message currently waiting on the named queue."""

    @abstractmethod
    def publish(self, queue_name: str, body: bytes) -> None:
        """Append one message to the named queue without waiting for consumption."""

    @abstractmethod
    def _receive(self, queue_name: str) -> Optional[bytes]:
        """Block up to the poll timeout for the next message; None when nothing arrived."""

    def _release(self) -> None:
        """Release the underlying connection. Called once by close()."""

    def declare_and_purge(self, queue_name: str) -> None:
        """Declare the queue and discard messages left over from a previous session."""
        self.declare(queue_name)
        self.purge(queue_name)

    def subscribe(
        self,
        queue_name: str,
        callback: DeliverCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """
        Start consuming `queue_name`, invoking `callback(body)` once per message, in order.
        `on_error` receives the TransportError that ends consumption, if any.
        """
        self._ensure_open(queue_name)
        with self._subscriptions_lock:
            existing = self._subscriptions.get(queue_name)
            if existing is not None and existing.active:
                raise TransportError("Queue already has an active consumer.", queue_name=queue_name)
            subscription = Subscription(self, queue_name, callback, on_error=on_error)
            self._subscriptions[queue_name] = subscription

        subscription.start()
        return subscription

    def close(self) -> None:
        """Cancel all subscriptions, then release the connection."""
        if self._closed:
            return

        with self._subscriptions_lock:
            subscriptions: List[Subscription] = list(self._subscriptions.values())

        for subscription in subscriptions:
            subscription.cancel()

        self._closed = True
        self._release()

    def _forget(self, subscription: Subscription) -> None:
        with self._subscriptions_lock:
            if self._subscriptions.get(subscription.queue_name) is subscription:
                del self._subscriptions[subscription.queue_name]

    def _ensure_open(self, queue_name: Optional[str] = None) -> None:
        if self._closed:
            raise TransportError("Transport is closed.", queue_name=queue_name)

    def __enter__(self) -> "Transport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
