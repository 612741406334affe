"""Error taxonomy shared by the executor, dispatcher, store and scheduler loop."""
from __future__ import annotations

from typing import Optional


class InvalidIntervalError(ValueError):
    """Raised when a schedule string is not of the form ``<n>m|h|d``."""

    def __init__(self, expression: str):
        self.expression = expression
        super().__init__(
            f"Invalid interval format: {expression!r}. Use: 5m, 1h, 1d, etc."
        )


class TransportError(Exception):
    """Network-level failure while calling a task endpoint (DNS, connect, TLS, timeout)."""


class ChannelDeliveryError(Exception):
    """A notification could not be delivered to one channel."""

    def __init__(self, channel: str, message: str, status_code: Optional[int] = None):
        self.channel = channel
        self.status_code = status_code
        super().__init__(f"{channel}: {message}")


class PersistenceError(Exception):
    """A write or read against the task store failed."""
