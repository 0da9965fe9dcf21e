"""Scheduling primitives shared by the registry sweep and the worker heartbeat."""

from heartline.runtime.ticker import FixedDelayTicker, TickerState

__all__ = [
	"FixedDelayTicker",
	"TickerState",
]
