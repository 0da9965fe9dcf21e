import pytest

from heartline.core.models import ConnectionState
from heartline.handshake.contracts import (
    HandshakeEvent,
    can_exchange_content,
    transition_connection_state,
)

SELF = ConnectionState.SELF_AWAITING_ACK
TARGET = ConnectionState.TARGET_AWAITING_ACK
ACCEPTED = ConnectionState.ACCEPTED


@pytest.mark.parametrize(
    ("current", "event", "expected"),
    [
        (None, HandshakeEvent.LOCAL_HELLO, SELF),
        (None, HandshakeEvent.REMOTE_HELLO, TARGET),
        (None, HandshakeEvent.LOCAL_ACK, None),
        (None, HandshakeEvent.REMOTE_ACK, None),
        (SELF, HandshakeEvent.REMOTE_ACK, ACCEPTED),
        (SELF, HandshakeEvent.LOCAL_HELLO, None),
        (SELF, HandshakeEvent.REMOTE_HELLO, None),
        (SELF, HandshakeEvent.LOCAL_ACK, None),
        (TARGET, HandshakeEvent.LOCAL_ACK, ACCEPTED),
        (TARGET, HandshakeEvent.REMOTE_ACK, None),
        (TARGET, HandshakeEvent.REMOTE_HELLO, None),
        (TARGET, HandshakeEvent.LOCAL_HELLO, None),
    ],
)
def test_transition_table(current, event, expected):
    assert transition_connection_state(current, event) == expected


@pytest.mark.parametrize("event", list(HandshakeEvent))
def test_accepted_is_terminal(event):
    assert transition_connection_state(ACCEPTED, event) is None


def test_content_flows_only_over_accepted_connections():
    assert can_exchange_content(ACCEPTED) is True
    assert can_exchange_content(SELF) is False
    assert can_exchange_content(TARGET) is False
    assert can_exchange_content(None) is False
