from __future__ import annotations

import threading
from enum import Enum
from typing import Callable, Optional


class TickerState(str, Enum):
    """Lifecycle of a FixedDelayTicker."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class FixedDelayTicker:
    """
    Runs `action` on a background thread with a fixed delay between the end of
    one run and the start of the next. The first run happens after
    `initial_delay_ms` (zero by default).

    A ticker is single-use: once stopped it cannot be started again. If
    `action` raises, the ticker stops and hands the exception to `on_error`.
    """

    def __init__(
        self,
        interval_ms: int,
        action: Callable[[], None],
        name: str = "heartline-ticker",
        initial_delay_ms: int = 0,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive.")
        self.interval_ms = interval_ms
        self.initial_delay_ms = initial_delay_ms
        self.action = action
        self.name = name
        self.on_error = on_error

        self.state: TickerState = TickerState.IDLE
        self.ticks = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        """Start the schedule."""
        with self._lock:
            if self.state == TickerState.STOPPED:
                raise RuntimeError(f"Ticker '{self.name}' has been stopped and cannot be restarted.")
            if self.state == TickerState.RUNNING:
                return
            self.state = TickerState.RUNNING
            self._thread = threading.Thread(target=self._run_loop, name=self.name, daemon=True)
            self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        """Cancel future runs and wait for a run in progress to finish."""
        with self._lock:
            self.state = TickerState.STOPPED
            self._stop_event.set()
            thread = self._thread

        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    @property
    def running(self) -> bool:
        return self.state == TickerState.RUNNING

    def _run_loop(self) -> None:
        if self.initial_delay_ms > 0 and self._stop_event.wait(self.initial_delay_ms / 1000.0):
            return

        interval_seconds = self.interval_ms / 1000.0
        while not self._stop_event.is_set():
            try:
                self.action()
            except Exception as exc:
                with self._lock:
                    self.state = TickerState.STOPPED
                    self._stop_event.set()
                if self.on_error is not None:
                    self.on_error(exc)
                return

            self.ticks += 1
            self._stop_event.wait(interval_seconds)
