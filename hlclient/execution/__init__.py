"""Execution layer: order encoding, action signing and submission."""

from .exchange import Exchange
from .orders import BuilderInfo, LimitOrderType, OrderRequest, OrderType, TriggerOrderType
from .signing import NonceManager, PendingAction, sign_l1_action

__all__ = [
    "BuilderInfo",
    "Exchange",
    "LimitOrderType",
    "NonceManager",
    "OrderRequest",
    "OrderType",
    "PendingAction",
    "TriggerOrderType",
    "sign_l1_action",
]
