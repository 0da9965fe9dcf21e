from __future__ import annotations

import threading
from enum import Enum
from typing import Dict, List, Optional, Protocol

from heartline.cli.formatter import OutputFormatter
from heartline.core.codec import decode_envelope, encode_envelope
from heartline.core.models import (
    ACK_TOKEN,
    HELLO_TOKEN,
    ConnectionState,
    HandshakeEnvelope,
    PeerConnection,
)
from heartline.handshake.contracts import (
    HandshakeEvent,
    can_exchange_content,
    transition_connection_state,
)
from heartline.transport.base import Subscription, Transport
from heartline.utils.diagnostics import EnvelopeError, TransportError

EXIT_COMMAND = "!exit"
SENDTO_COMMAND = "!sendto"


class RouteOutcome(str, Enum):
    """Observable result of one local intent or inbound envelope."""

    HELLO_SENT = "hello_sent"
    ACK_SENT = "ack_sent"
    CONTENT_SENT = "content_sent"
    CONNECTION_REQUESTED = "connection_requested"
    CONNECTION_ACCEPTED = "connection_accepted"
    DELIVERED = "delivered"
    IGNORED = "ignored"
    DROPPED_NO_CONNECTION = "dropped_no_connection"
    INVALID_COMMAND = "invalid_command"
    EXIT = "exit"


class HandshakeObserver(Protocol):
    """Receives handshake notifications. Acceptance is reported whichever side sent the ack."""

    def on_connection_requested(self, counterpart: str) -> None: ...

    def on_connection_accepted(self, counterpart: str) -> None: ...

    def on_content(self, sender: str, text: str) -> None: ...


class HandshakeRouter:
    """
    Per-peer handshake state machine.

    Keeps one connection record per counterparty, turns local intents into
    hello/ack/content envelopes and gates inbound content on ACCEPTED. Protocol
    violations are ignored without any reply.
    """

    def __init__(
        self,
        username: str,
        transport: Transport,
        observer: Optional[HandshakeObserver] = None,
    ) -> None:
        self.username = username
        self.transport = transport
        self.observer = observer
        self._connections: Dict[str, ConnectionState] = {}
        self._lock = threading.Lock()

    def connection_state(self, counterpart: str) -> Optional[ConnectionState]:
        with self._lock:
            return self._connections.get(counterpart)

    def connections(self) -> List[PeerConnection]:
        with self._lock:
            return [
                PeerConnection(counterpart=name, state=state)
                for name, state in sorted(self._connections.items())
            ]

    def connect_to(self, target: str) -> RouteOutcome:
        """Send hello to `target` unless a record for it already exists."""
        with self._lock:
            next_state = transition_connection_state(self._connections.get(target), HandshakeEvent.LOCAL_HELLO)
            if next_state is None:
                return RouteOutcome.IGNORED
            self._send(target, HELLO_TOKEN)
            self._connections[target] = next_state
        return RouteOutcome.HELLO_SENT

    def acknowledge(self, target: str) -> RouteOutcome:
        """Send ack to `target` if it is waiting for one from us."""
        with self._lock:
            next_state = transition_connection_state(self._connections.get(target), HandshakeEvent.LOCAL_ACK)
            if next_state is None:
                return RouteOutcome.IGNORED
            self._send(target, ACK_TOKEN)
            self._connections[target] = next_state

        if self.observer is not None:
            self.observer.on_connection_accepted(target)
        return RouteOutcome.ACK_SENT

    def send_to(self, target: str, text: str) -> RouteOutcome:
        with self._lock:
            if not can_exchange_content(self._connections.get(target)):
                return RouteOutcome.DROPPED_NO_CONNECTION
            self._send(target, text)
        return RouteOutcome.CONTENT_SENT

    def handle_envelope(self, envelope: HandshakeEnvelope) -> RouteOutcome:
        """Apply one inbound envelope to the connection with its sender."""
        sender = envelope.sender
        content = envelope.content

        if content == HELLO_TOKEN:
            if not self._apply_remote(sender, HandshakeEvent.REMOTE_HELLO):
                return RouteOutcome.IGNORED
            if self.observer is not None:
                self.observer.on_connection_requested(sender)
            return RouteOutcome.CONNECTION_REQUESTED

        if content == ACK_TOKEN:
            if not self._apply_remote(sender, HandshakeEvent.REMOTE_ACK):
                return RouteOutcome.IGNORED
            if self.observer is not None:
                self.observer.on_connection_accepted(sender)
            return RouteOutcome.CONNECTION_ACCEPTED

        if not can_exchange_content(self.connection_state(sender)):
            return RouteOutcome.DROPPED_NO_CONNECTION
        if self.observer is not None:
            self.observer.on_content(sender, content)
        return RouteOutcome.DELIVERED

    def handle_delivery(self, body: bytes) -> Optional[RouteOutcome]:
        """Consumption boundary for this peer's queue."""
        try:
            envelope = decode_envelope(body, HandshakeEnvelope)
        except EnvelopeError as exc:
            OutputFormatter.log(f"[ERROR]: {exc}", severity="error")
            return None
        return self.handle_envelope(envelope)

    def execute_command(self, command: str) -> RouteOutcome:
        """
        Run one operator command:
        `!hello <name>`, `!ack <name>`, `!sendto <name> <text>` or `!exit`.
        """
        tokens = command.strip().split(None, 1)
        if not tokens:
            return RouteOutcome.INVALID_COMMAND

        action = tokens[0]
        rest = tokens[1] if len(tokens) > 1 else ""

        if action == EXIT_COMMAND and not rest:
            return RouteOutcome.EXIT

        if action in {HELLO_TOKEN, ACK_TOKEN}:
            names = rest.split()
            if len(names) != 1:
                return RouteOutcome.INVALID_COMMAND
            if action == HELLO_TOKEN:
                return self.connect_to(names[0])
            return self.acknowledge(names[0])

        if action == SENDTO_COMMAND:
            target_and_text = rest.split(None, 1)
            if len(target_and_text) != 2:
                return RouteOutcome.INVALID_COMMAND
            return self.send_to(target_and_text[0], target_and_text[1])

        return RouteOutcome.INVALID_COMMAND

    def _apply_remote(self, sender: str, event: HandshakeEvent) -> bool:
        with self._lock:
            next_state = transition_connection_state(self._connections.get(sender), event)
            if next_state is None:
                return False
            self._connections[sender] = next_state
            return True

    def _send(self, target: str, content: str) -> None:
        envelope = HandshakeEnvelope(sender=self.username, target=target, content=content)
        self.transport.publish(target, encode_envelope(envelope))


class PeerNode:
    """
    One chat participant: a HandshakeRouter consuming the queue named after
    its username.
    """

    def __init__(
        self,
        username: str,
        transport: Transport,
        observer: Optional[HandshakeObserver] = None,
    ) -> None:
        self.username = username
        self.transport = transport
        self.router = HandshakeRouter(username, transport, observer=observer)
        self.subscription: Optional[Subscription] = None
        self.failure: Optional[TransportError] = None
        self._closed = False

    def open(self) -> None:
        """Declare and purge our queue, so nothing from a previous session is delivered."""
        self.transport.declare_and_purge(self.username)
        self.subscription = self.transport.subscribe(
            self.username,
            self.router.handle_delivery,
            on_error=self._on_subscription_error,
        )
        OutputFormatter.log(f"Hello, {self.username}. You are now logged in!", severity="success")

    def raise_if_failed(self) -> None:
        """Re-raise the TransportError that ended consumption of our queue."""
        if self.failure is not None:
            raise self.failure

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self.subscription is not None:
                self.subscription.cancel()
        finally:
            self.transport.close()

    def _on_subscription_error(self, exc: TransportError) -> None:
        self.failure = exc

    def __enter__(self) -> "PeerNode":
        try:
            self.open()
        except BaseException:
            self.close()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
