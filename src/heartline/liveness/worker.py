from __future__ import annotations

import threading
from typing import Any, Dict, Optional

from heartline.cli.formatter import OutputFormatter
from heartline.core.codec import decode_envelope, encode_envelope
from heartline.core.models import (
    HEARTBEAT_INTERVAL_PROPERTY,
    INFO_PROPERTY,
    LivenessEnvelope,
    LivenessKind,
)
from heartline.runtime.ticker import FixedDelayTicker
from heartline.transport.base import Subscription, Transport
from heartline.utils.diagnostics import EnvelopeError, TransportError, WorkerStateError


class WorkerAgent:
    """
    A monitored process: announces itself to the registry, then sends
    heartbeats every `heartbeat_interval_ms` until shut down.

    Publish failures are raised as TransportError and never retried.
    """

    def __init__(
        self,
        name: str,
        heartbeat_interval_ms: int,
        transport: Transport,
        registry_queue: str = "monitor",
    ) -> None:
        if heartbeat_interval_ms <= 0:
            raise ValueError("heartbeat_interval_ms must be positive.")
        self.name = name
        self.heartbeat_interval_ms = heartbeat_interval_ms
        self.transport = transport
        self.registry_queue = registry_queue

        self.connected = False
        self.heartbeat_ticker: Optional[FixedDelayTicker] = None
        self.subscription: Optional[Subscription] = None
        self._failure: Optional[TransportError] = None
        self._lifecycle_lock = threading.Lock()
        self._shut_down = False

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down

    def open(self) -> None:
        """Declare and purge this worker's own queue and log what arrives on it."""
        OutputFormatter.log("Initializing service connections.")
        self.transport.declare_and_purge(self.name)
        self.subscription = self.transport.subscribe(
            self.name,
            self.handle_delivery,
            on_error=self._on_subscription_error,
        )

    def handle_delivery(self, body: bytes) -> None:
        try:
            envelope = decode_envelope(body, LivenessEnvelope)
        except EnvelopeError as exc:
            OutputFormatter.log(f"[ERROR]: {exc}", severity="error")
            return
        OutputFormatter.log(f"Received message: {envelope.model_dump_json()}")

    def connect(self) -> None:
        """Send the CONNECT envelope carrying the heartbeat interval."""
        self._ensure_not_shut_down()
        OutputFormatter.log("Sending CONNECT message to monitor.")
        self._send(LivenessKind.CONNECT, {HEARTBEAT_INTERVAL_PROPERTY: self.heartbeat_interval_ms})
        self.connected = True

    def start_heartbeats(self) -> None:
        """Schedule heartbeats: first one immediately, then a fixed delay after each send."""
        with self._lifecycle_lock:
            self._ensure_not_shut_down()
            if not self.connected:
                raise WorkerStateError(f"Worker '{self.name}' must connect() before sending heartbeats.")
            if self.heartbeat_ticker is not None:
                return

            self.heartbeat_ticker = FixedDelayTicker(
                interval_ms=self.heartbeat_interval_ms,
                action=self.send_heartbeat,
                name=f"heartline-heartbeat-{self.name}",
                on_error=self._on_heartbeat_error,
            )
            self.heartbeat_ticker.start()
        OutputFormatter.log("Started heartbeat scheduler.")

    def send_heartbeat(self) -> None:
        OutputFormatter.log("Sending heartbeat to monitor.")
        self._send(LivenessKind.HEARTBEAT)

    def send_info(self, text: str) -> None:
        if not self.connected:
            raise WorkerStateError(f"Worker '{self.name}' must connect() before sending info messages.")
        self.raise_if_failed()
        self._send(LivenessKind.INFO, {INFO_PROPERTY: text})

    def disconnect(self) -> None:
        self.raise_if_failed()
        OutputFormatter.log("Sending DISCONNECT message to monitor.")
        self._send(LivenessKind.DISCONNECT)

    def shutdown(self) -> None:
        """Cancel the heartbeat schedule, then release the transport. Later calls are no-ops."""
        with self._lifecycle_lock:
            if self._shut_down:
                return
            self._shut_down = True
            ticker = self.heartbeat_ticker

        OutputFormatter.log("Destroying connections and closing the service.")
        try:
            if ticker is not None:
                ticker.stop()
            if self.subscription is not None:
                self.subscription.cancel()
        finally:
            self.transport.close()

    def _send(self, kind: LivenessKind, content: Optional[Dict[str, Any]] = None) -> None:
        envelope = LivenessEnvelope(
            sender=self.name,
            target=self.registry_queue,
            type=kind,
            content=content,
        )
        self.transport.publish(envelope.target, encode_envelope(envelope))

    def _on_heartbeat_error(self, exc: Exception) -> None:
        OutputFormatter.log(f"Heartbeat scheduler stopped: {exc}", severity="critical")
        if isinstance(exc, TransportError):
            self._failure = exc
        else:
            self._failure = TransportError(f"Heartbeat failed: {exc!r}", queue_name=self.registry_queue)

    def _on_subscription_error(self, exc: TransportError) -> None:
        if self._failure is None:
            self._failure = exc

    def raise_if_failed(self) -> None:
        """Raise, once, the TransportError stored by a background heartbeat or consumer."""
        failure = self._failure
        if failure is not None:
            self._failure = None
            raise failure

    def _ensure_not_shut_down(self) -> None:
        if self._shut_down:
            raise WorkerStateError(f"Worker '{self.name}' has been shut down.")

    def __enter__(self) -> "WorkerAgent":
        try:
            self.open()
        except BaseException:
            self.shutdown()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
