"""Pairwise hello/ack handshake between chat peers."""

from heartline.handshake.contracts import HandshakeEvent, can_exchange_content, transition_connection_state
from heartline.handshake.router import HandshakeObserver, HandshakeRouter, PeerNode, RouteOutcome

__all__ = [
	"HandshakeEvent",
	"HandshakeObserver",
	"HandshakeRouter",
	"PeerNode",
	"RouteOutcome",
	"can_exchange_content",
	"transition_connection_state",
]
