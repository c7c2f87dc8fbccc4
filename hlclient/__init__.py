"""Client for the Hyperliquid venue: signed write actions and a multiplexed websocket feed."""

from .data.clients import MAINNET_API_URL, TESTNET_API_URL
from .data.subscriptions import Subscription, WsMessage
from .data.websocket import BackoffConfig, ConnectionState, WebsocketClient
from .execution.exchange import Exchange
from .execution.orders import OrderRequest, OrderType, limit_order, trigger_order
from .execution.signing import sign_l1_action

__all__ = [
    "MAINNET_API_URL",
    "TESTNET_API_URL",
    "BackoffConfig",
    "ConnectionState",
    "Exchange",
    "OrderRequest",
    "OrderType",
    "Subscription",
    "WebsocketClient",
    "WsMessage",
    "limit_order",
    "sign_l1_action",
    "trigger_order",
]
