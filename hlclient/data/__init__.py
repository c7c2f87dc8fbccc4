"""Data access layer: HTTP transport, metadata and the websocket feed."""

from .api import API
from .clients import VenueEndpoint, websocket_url_for
from .info import AssetDirectory, Info
from .subscriptions import Subscription, SubscriptionRegistry, WsMessage, match_subscription
from .websocket import BackoffConfig, ConnectionState, WebsocketClient

__all__ = [
    "API",
    "AssetDirectory",
    "BackoffConfig",
    "ConnectionState",
    "Info",
    "Subscription",
    "SubscriptionRegistry",
    "VenueEndpoint",
    "WebsocketClient",
    "WsMessage",
    "match_subscription",
    "websocket_url_for",
]
