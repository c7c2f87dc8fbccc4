"""Signed write actions submitted to ``POST /exchange``.

Each call builds one action, takes a fresh nonce, signs it and posts it.
Nothing is retried: a rejected order or cancel surfaces as
:class:`~hlclient.errors.ApiError` and the caller decides what to do next.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from hlclient.data.api import API
from hlclient.data.clients import MAINNET_API_URL, VenueEndpoint
from hlclient.data.info import AssetDirectory, Info
from hlclient.errors import ValidationError
from hlclient.execution.orders import (
    BuilderInfo,
    Numeric,
    OrderRequest,
    float_to_usd_int,
    float_to_wire,
    order_request_to_wire,
    order_wires_to_order_action,
)
from hlclient.execution.signing import (
    NonceManager,
    PendingAction,
    PrivateKeyLike,
    address_of,
    load_private_key,
    sign_pending_action,
)

# Actions posted without a vaultAddress field.
VAULTLESS_ACTIONS = frozenset({"usdClassTransfer"})


class Exchange:
    """Signs and submits write actions on behalf of one account."""

    def __init__(
        self,
        private_key: PrivateKeyLike,
        base_url: str = MAINNET_API_URL,
        assets: Optional[AssetDirectory] = None,
        vault_address: Optional[str] = None,
        account_address: Optional[str] = None,
        api: Optional[API] = None,
        nonce_manager: Optional[NonceManager] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._private_key = load_private_key(private_key)
        self.api = api or API(base_url)
        self.vault_address = vault_address
        self.account_address = account_address or address_of(self._private_key)
        self.nonces = nonce_manager or NonceManager()
        self.logger = logger or logging.getLogger(__name__)
        self._assets = assets

    @property
    def is_mainnet(self) -> bool:
        return VenueEndpoint.from_base_url(self.api.base_url).is_mainnet

    @property
    def assets(self) -> AssetDirectory:
        if self._assets is None:
            self._assets = Info(self.api).asset_directory()
        return self._assets

    # --- Orders ------------------------------------------------------------
    def order(self, order: OrderRequest, builder: Optional[BuilderInfo] = None, is_spot: bool = False) -> Any:
        return self.bulk_orders([order], builder=builder, is_spot=is_spot)

    def bulk_orders(
        self,
        orders: Sequence[OrderRequest],
        builder: Optional[BuilderInfo] = None,
        is_spot: bool = False,
    ) -> Any:
        if not orders:
            raise ValidationError("orders", "at least one order is required")
        wires = [order_request_to_wire(order, self._asset(order.coin, is_spot)) for order in orders]
        return self.execute_action(order_wires_to_order_action(wires, builder))

    def cancel(self, coin: str, oid: int, is_spot: bool = False) -> Any:
        action = {"type": "cancel", "cancels": [{"a": self._asset(coin, is_spot), "o": int(oid)}]}
        return self.execute_action(action)

    def cancel_by_cloid(self, coin: str, cloid: str, is_spot: bool = False) -> Any:
        if not cloid:
            raise ValidationError("cloid", "client order id is required")
        action = {"type": "cancelByCloid", "cancels": [{"asset": self._asset(coin, is_spot), "cloid": cloid}]}
        return self.execute_action(action)

    def cancel_all(self, coin: str, is_spot: bool = False) -> Any:
        """Cancel every resting order on ``coin`` in one signed cancel action.

        Open orders are read from ``/info`` for the vault when one is set,
        otherwise for the account. Returns ``None`` when nothing is open.
        """

        asset = self._asset(coin, is_spot)
        owner = self.vault_address or self.account_address
        oids = [int(order["oid"]) for order in Info(self.api).open_orders(owner) if order.get("coin") == coin]
        if not oids:
            self.logger.info(
                "No open orders on %s", coin,
                extra={"event": "cancel_all_noop", "coin": coin},
            )
            return None
        action = {"type": "cancel", "cancels": [{"a": asset, "o": oid} for oid in oids]}
        return self.execute_action(action)

    # --- Account -----------------------------------------------------------
    def update_leverage(self, coin: str, leverage: int, is_cross: bool = True) -> Any:
        if leverage <= 0:
            raise ValidationError("leverage", "must be positive")
        action = {
            "type": "updateLeverage",
            "asset": self._asset(coin, False),
            "isCross": is_cross,
            "leverage": int(leverage),
        }
        return self.execute_action(action)

    def update_isolated_margin(self, coin: str, amount: Numeric, is_buy: bool = True) -> Any:
        action = {
            "type": "updateIsolatedMargin",
            "asset": self._asset(coin, False),
            "isBuy": is_buy,
            "ntli": float_to_usd_int(amount, "amount"),
        }
        return self.execute_action(action)

    def usd_transfer(self, amount: Numeric, destination: str) -> Any:
        action = {"type": "usdTransfer", "destination": destination, "amount": float_to_wire(amount, "amount")}
        return self.execute_action(action)

    def withdraw(self, amount: Numeric, destination: str) -> Any:
        action = {"type": "withdraw", "destination": destination, "amount": float_to_wire(amount, "amount")}
        return self.execute_action(action)

    def usd_class_transfer(self, amount: Numeric, to_perp: bool) -> Any:
        action = {"type": "usdClassTransfer", "amount": float_to_wire(amount, "amount"), "toPerp": to_perp}
        return self.execute_action(action)

    # --- Signing and submission ----------------------------------------------
    def execute_action(self, action: Dict[str, Any]) -> Any:
        pending = PendingAction(action=action, nonce=self.nonces.next_nonce(), vault_address=self.vault_address)
        signature = sign_pending_action(self._private_key, pending, self.is_mainnet)
        return self._post_action(pending, signature)

    def _post_action(self, pending: PendingAction, signature: str) -> Any:
        payload: Dict[str, Any] = {
            "action": pending.action,
            "nonce": pending.nonce,
            "signature": signature,
        }
        if pending.action_type not in VAULTLESS_ACTIONS:
            payload["vaultAddress"] = pending.vault_address or ""
        self.logger.info(
            "Submitting %s action", pending.action_type,
            extra={"event": "exchange_action", "action_type": pending.action_type, "nonce": pending.nonce},
        )
        return self.api.post("/exchange", payload)

    def _asset(self, coin: str, is_spot: bool) -> int:
        asset = self.assets.asset(coin, is_spot=is_spot)
        if asset is None:
            kind = "spot" if is_spot else "perp"
            raise ValidationError("coin", f"{kind} asset not found: {coin}")
        return asset


__all__: List[str] = ["Exchange", "VAULTLESS_ACTIONS"]
