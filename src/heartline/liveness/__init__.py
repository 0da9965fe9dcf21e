"""Heartbeat-based liveness detection: the registry side and the worker side."""

from heartline.liveness.registry import (
	LivenessMonitor,
	LivenessOutcome,
	LivenessRegistry,
	monotonic_ms,
)
from heartline.liveness.worker import WorkerAgent

__all__ = [
	"LivenessMonitor",
	"LivenessOutcome",
	"LivenessRegistry",
	"WorkerAgent",
	"monotonic_ms",
]
