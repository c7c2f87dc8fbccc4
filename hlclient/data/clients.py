"""Venue endpoints and URL derivation."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

from hlclient.errors import ValidationError

MAINNET_API_URL = "https://api.hyperliquid.xyz"
TESTNET_API_URL = "https://api.hyperliquid-testnet.xyz"


def websocket_url_for(base_url: str) -> str:
    """Return the streaming endpoint for a REST base URL.

    The scheme is always rewritten to ``wss`` and the path to ``/ws``,
    whatever the caller passed in.
    """

    parts = urlsplit(base_url or MAINNET_API_URL)
    if not parts.netloc:
        raise ValidationError("base_url", f"no host in {base_url!r}")
    return urlunsplit(("wss", parts.netloc, "/ws", "", ""))


@dataclass
class VenueEndpoint:
    """Connection details for the venue.

    Attributes:
        name: Human readable network identifier.
        rest_url: Base REST endpoint for HTTP requests.
        websocket_url: WebSocket endpoint for streaming data.
    """

    name: str
    rest_url: str
    websocket_url: str

    @property
    def is_mainnet(self) -> bool:
        return self.rest_url.rstrip("/") == MAINNET_API_URL

    @classmethod
    def from_base_url(cls, base_url: str) -> "VenueEndpoint":
        rest_url = (base_url or MAINNET_API_URL).rstrip("/")
        if rest_url == MAINNET_API_URL:
            name = "mainnet"
        elif rest_url == TESTNET_API_URL:
            name = "testnet"
        else:
            name = "custom"
        return cls(name=name, rest_url=rest_url, websocket_url=websocket_url_for(rest_url))


__all__ = [
    "MAINNET_API_URL",
    "TESTNET_API_URL",
    "VenueEndpoint",
    "websocket_url_for",
]
