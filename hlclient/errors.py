"""Exception hierarchy shared by the streaming and signing paths."""

from __future__ import annotations

from typing import Any, Optional


class HyperliquidClientError(Exception):
    """Base class for every error raised by this package."""


class TransportError(HyperliquidClientError):
    """Network level failure: dial, read, write or keepalive."""


class ConnectionClosedError(TransportError):
    """Raised when the client was closed or has no open socket."""


class SubscriptionError(HyperliquidClientError):
    """A subscribe or unsubscribe request could not be completed."""


class SubscriptionNotFoundError(SubscriptionError):
    """The subscription key or callback handle is not registered."""


class SigningError(HyperliquidClientError):
    """The action could not be serialized or signed."""


class ValidationError(HyperliquidClientError):
    """Caller supplied input that cannot be encoded for the venue."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"validation error on field {field}: {message}")


class ApiError(HyperliquidClientError):
    """Structured rejection returned by the venue with HTTP status >= 400."""

    def __init__(self, status: int, code: Optional[int], msg: str, data: Any = None) -> None:
        self.status = status
        self.code = code
        self.msg = msg
        self.data = data
        super().__init__(f"API error {code if code is not None else status}: {msg}")


__all__ = [
    "HyperliquidClientError",
    "TransportError",
    "ConnectionClosedError",
    "SubscriptionError",
    "SubscriptionNotFoundError",
    "SigningError",
    "ValidationError",
    "ApiError",
]
