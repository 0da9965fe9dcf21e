from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Callable, Dict, List, Optional

from heartline.cli.formatter import OutputFormatter
from heartline.core.codec import decode_envelope
from heartline.core.models import (
    LivenessEnvelope,
    LivenessKind,
    RegistrySettings,
    ServiceRecord,
    ServiceState,
)
from heartline.runtime.ticker import FixedDelayTicker
from heartline.transport.base import Subscription, Transport
from heartline.utils.diagnostics import EnvelopeError, TransportError

Clock = Callable[[], float]


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class LivenessOutcome(str, Enum):
    """What a registry handler did with one liveness event."""

    APPLIED = "applied"
    UNKNOWN_SENDER = "unknown_sender"
    LOGGED = "logged"


class LivenessRegistry:
    """
    Liveness state of every worker that ever connected.

    The message-consumption thread and the sweep ticker both mutate the record
    map, so every read-modify-write happens under one lock. Records are never
    deleted.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock: Clock = clock or monotonic_ms
        self._records: Dict[str, ServiceRecord] = {}
        self._lock = threading.Lock()

    def on_connect(self, sender: str, heartbeat_interval_ms: int) -> LivenessOutcome:
        """Create or overwrite the record for `sender` as CONNECTED."""
        with self._lock:
            self._records[sender] = ServiceRecord(
                name=sender,
                state=ServiceState.CONNECTED,
                heartbeat_interval_ms=heartbeat_interval_ms,
                last_heartbeat_at=self.clock(),
            )
        OutputFormatter.log(
            f"Service {sender} has connected, heartbeat interval is {heartbeat_interval_ms} millis!",
            severity="success",
        )
        return LivenessOutcome.APPLIED

    def on_heartbeat(self, sender: str) -> LivenessOutcome:
        """
        Refresh the heartbeat timestamp of `sender`.

        The record goes back to CONNECTED whatever its previous state, so a
        worker marked TIMEOUT or DISCONNECTED is revived by its next heartbeat.
        """
        with self._lock:
            record = self._records.get(sender)
            if record is not None:
                record.last_heartbeat_at = max(record.last_heartbeat_at, self.clock())
                record.state = ServiceState.CONNECTED

        if record is None:
            OutputFormatter.log(f"Received heartbeat from unknown service {sender}, ignoring.", severity="warning")
            return LivenessOutcome.UNKNOWN_SENDER

        OutputFormatter.log(f"Received heartbeat from service {sender}!")
        return LivenessOutcome.APPLIED

    def on_disconnect(self, sender: str) -> LivenessOutcome:
        with self._lock:
            record = self._records.get(sender)
            if record is not None:
                record.state = ServiceState.DISCONNECTED

        if record is None:
            OutputFormatter.log(f"Received disconnect from unknown service {sender}, ignoring.", severity="warning")
            return LivenessOutcome.UNKNOWN_SENDER

        OutputFormatter.log(f"Service {sender} has disconnected!", severity="warning")
        return LivenessOutcome.APPLIED

    def on_info(self, sender: str, text: str) -> LivenessOutcome:
        """Log free text from `sender`, known or not. Records are untouched."""
        OutputFormatter.log(f"Received an information message from service {sender}: {text}")
        return LivenessOutcome.LOGGED

    def sweep(self) -> List[str]:
        """
        Mark CONNECTED workers whose last heartbeat is older than their interval
        as TIMEOUT. Returns the names that transitioned during this pass.
        """
        timed_out: List[str] = []
        with self._lock:
            now = self.clock()
            for name, record in self._records.items():
                if record.state != ServiceState.CONNECTED:
                    continue
                if now - record.last_heartbeat_at > record.heartbeat_interval_ms:
                    record.state = ServiceState.TIMEOUT
                    timed_out.append(name)

        for name in timed_out:
            OutputFormatter.log(
                f"Service {name} did not send a heartbeat in the specified time interval, setting state as timeout error.",
                severity="error",
            )
        return timed_out

    def snapshot(self) -> List[ServiceRecord]:
        """Point-in-time copies of every record, sorted by name."""
        with self._lock:
            return [self._records[name].model_copy() for name in sorted(self._records)]

    def get(self, name: str) -> Optional[ServiceRecord]:
        with self._lock:
            record = self._records.get(name)
            return record.model_copy() if record is not None else None

    def state_of(self, name: str) -> Optional[ServiceState]:
        record = self.get(name)
        return record.state if record is not None else None

    def handle_envelope(self, envelope: LivenessEnvelope) -> LivenessOutcome:
        """Dispatch one decoded envelope to the handler for its type."""
        sender = envelope.sender

        if envelope.type == LivenessKind.CONNECT:
            try:
                interval = envelope.heartbeat_interval_ms
            except (TypeError, ValueError) as exc:
                raise EnvelopeError(str(exc)) from exc
            return self.on_connect(sender, interval)
        if envelope.type == LivenessKind.HEARTBEAT:
            return self.on_heartbeat(sender)
        if envelope.type == LivenessKind.INFO:
            return self.on_info(sender, envelope.info)
        if envelope.type == LivenessKind.DISCONNECT:
            return self.on_disconnect(sender)

        raise EnvelopeError(f"Unsupported liveness message type: {envelope.type!r}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._records


class LivenessMonitor:
    """
    Runs a LivenessRegistry against a transport: consumes the registry queue and
    sweeps on a fixed delay until shutdown.

    Losing the registry queue stops the sweep, since every worker would
    otherwise time out. The failure is re-raised by raise_if_failed().
    """

    def __init__(
        self,
        transport: Transport,
        settings: Optional[RegistrySettings] = None,
        registry: Optional[LivenessRegistry] = None,
    ) -> None:
        self.transport = transport
        self.settings = settings or RegistrySettings()
        self.registry = registry or LivenessRegistry()
        self.subscription: Optional[Subscription] = None
        self.sweep_ticker: Optional[FixedDelayTicker] = None
        self.failure: Optional[TransportError] = None
        self._failure_lock = threading.Lock()
        self._shut_down = False

    @property
    def queue_name(self) -> str:
        return self.settings.queue_name

    def start(self) -> None:
        """Open the registry queue, start consuming and start the periodic sweep."""
        OutputFormatter.log("Initializing monitor connections.")
        self.transport.declare_and_purge(self.queue_name)
        self.subscription = self.transport.subscribe(
            self.queue_name,
            self.handle_delivery,
            on_error=self._on_subscription_error,
        )
        OutputFormatter.log("Monitor is running!", severity="success")

        self.sweep_ticker = FixedDelayTicker(
            interval_ms=self.settings.sweep_interval_ms,
            action=self._sweep_tick,
            name="heartline-sweep",
            on_error=self._on_sweep_error,
        )
        with self._failure_lock:
            if self.failure is None:
                self.sweep_ticker.start()
        OutputFormatter.log("Started monitoring the heartbeats.")

    def handle_delivery(self, body: bytes) -> Optional[LivenessOutcome]:
        """Consumption boundary: decode, dispatch, and discard anything malformed."""
        try:
            envelope = decode_envelope(body, LivenessEnvelope)
            return self.registry.handle_envelope(envelope)
        except EnvelopeError as exc:
            OutputFormatter.log(f"[ERROR]: {exc}", severity="error")
            return None

    def raise_if_failed(self) -> None:
        """Re-raise the TransportError that ended consumption of the registry queue."""
        if self.failure is not None:
            raise self.failure

    def shutdown(self) -> None:
        """Stop the sweep, then the subscription, then the transport connection."""
        if self._shut_down:
            return
        self._shut_down = True
        OutputFormatter.log("Destroying connections and closing the monitor.")

        try:
            if self.sweep_ticker is not None:
                self.sweep_ticker.stop()
            if self.subscription is not None:
                self.subscription.cancel()
        finally:
            self.transport.close()

    def _sweep_tick(self) -> None:
        OutputFormatter.log("Checking heartbeats...")
        self.registry.sweep()

    def _on_subscription_error(self, exc: TransportError) -> None:
        with self._failure_lock:
            self.failure = exc
            ticker = self.sweep_ticker
        if ticker is not None:
            ticker.stop()

    @staticmethod
    def _on_sweep_error(exc: Exception) -> None:
        OutputFormatter.log(f"Heartbeat sweep stopped: {exc!r}", severity="critical")

    def __enter__(self) -> "LivenessMonitor":
        try:
            self.start()
        except BaseException:
            self.shutdown()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
