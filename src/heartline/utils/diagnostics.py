from typing import Optional


class HeartlineError(Exception):
    """
    Base class for every error raised by heartline components.
    """


class TransportError(HeartlineError):
    """
    Exception raised when the named-queue transport fails to connect, declare,
    purge, publish, subscribe or receive. Callers decide whether to retry or abort.
    """
    def __init__(self, message: str, queue_name: Optional[str] = None):
        self.message = message
        self.queue_name = queue_name
        ctx = f" on queue '{queue_name}'" if queue_name else ""
        super().__init__(f"Transport Error{ctx}: {message}")


class EnvelopeError(HeartlineError):
    """
    Exception raised when inbound bytes cannot be decoded into an envelope.
    """
    def __init__(self, message: str, raw: bytes = b""):
        self.message = message
        self.raw = raw
        super().__init__(f"Envelope Error: {message}")


class WorkerStateError(HeartlineError):
    """Raised when a worker agent operation is invoked out of lifecycle order."""
