from __future__ import annotations

from enum import Enum
from typing import Optional

from heartline.core.models import ConnectionState


class HandshakeEvent(str, Enum):
    """Events that drive a per-counterparty connection state."""

    LOCAL_HELLO = "local_hello"
    LOCAL_ACK = "local_ack"
    REMOTE_HELLO = "remote_hello"
    REMOTE_ACK = "remote_ack"


def transition_connection_state(
    current: Optional[ConnectionState],
    event: HandshakeEvent,
) -> Optional[ConnectionState]:
    """Compute the next connection state for a given event.

    `current` is None when no record exists for the counterparty. Returns None
    when the event is not valid in the current state; callers ignore such
    events without replying, since silence is the protocol's only negative
    signal. ACCEPTED has no outgoing transitions.
    """

    if current is None:
        if event == HandshakeEvent.LOCAL_HELLO:
            return ConnectionState.SELF_AWAITING_ACK
        if event == HandshakeEvent.REMOTE_HELLO:
            return ConnectionState.TARGET_AWAITING_ACK
        return None

    if current == ConnectionState.TARGET_AWAITING_ACK:
        if event == HandshakeEvent.LOCAL_ACK:
            return ConnectionState.ACCEPTED
        return None

    if current == ConnectionState.SELF_AWAITING_ACK:
        if event == HandshakeEvent.REMOTE_ACK:
            return ConnectionState.ACCEPTED
        return None

    if current == ConnectionState.ACCEPTED:
        return None

    raise ValueError(f"Unknown connection state: {current}")


def can_exchange_content(current: Optional[ConnectionState]) -> bool:
    """Chat content flows in either direction only over an accepted connection."""
    return current == ConnectionState.ACCEPTED
