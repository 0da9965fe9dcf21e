from heartline.core.models import (
	ConnectionState,
	HandshakeEnvelope,
	HeartlineConfig,
	LivenessEnvelope,
	LivenessKind,
	PeerConnection,
	ServiceRecord,
	ServiceState,
)
from heartline.handshake import HandshakeRouter, PeerNode, RouteOutcome
from heartline.liveness import LivenessMonitor, LivenessOutcome, LivenessRegistry, WorkerAgent
from heartline.transport import MemoryBroker, MemoryTransport, Transport, open_transport
from heartline.utils.diagnostics import EnvelopeError, HeartlineError, TransportError, WorkerStateError

__all__ = [
	"ConnectionState",
	"EnvelopeError",
	"HandshakeEnvelope",
	"HandshakeRouter",
	"HeartlineConfig",
	"HeartlineError",
	"LivenessEnvelope",
	"LivenessKind",
	"LivenessMonitor",
	"LivenessOutcome",
	"LivenessRegistry",
	"MemoryBroker",
	"MemoryTransport",
	"PeerConnection",
	"PeerNode",
	"RouteOutcome",
	"ServiceRecord",
	"ServiceState",
	"Transport",
	"TransportError",
	"WorkerAgent",
	"WorkerStateError",
	"open_transport",
]
