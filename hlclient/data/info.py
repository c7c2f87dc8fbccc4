"""Read-only ``/info`` queries and the coin to asset-index table."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from hlclient.data.api import API
from hlclient.data.clients import MAINNET_API_URL

SPOT_ASSET_OFFSET = 10_000


@dataclass
class AssetDirectory:
    """Resolves coin names to the integer asset ids used in order wires.

    Perpetuals are numbered by their position in the ``meta`` universe; spot
    pairs by ``SPOT_ASSET_OFFSET`` plus their spot universe index.
    """

    perps: Dict[str, int] = field(default_factory=dict)
    spots: Dict[str, int] = field(default_factory=dict)
    sz_decimals: Dict[int, int] = field(default_factory=dict)

    @classmethod
    def from_meta(cls, meta: Dict[str, Any], spot_meta: Optional[Dict[str, Any]] = None) -> "AssetDirectory":
        directory = cls()
        for asset, info in enumerate(meta.get("universe", [])):
            directory.perps[info["name"]] = asset
            directory.sz_decimals[asset] = int(info.get("szDecimals", 0))
        if spot_meta:
            tokens = spot_meta.get("tokens", [])
            for info in spot_meta.get("universe", []):
                asset = SPOT_ASSET_OFFSET + int(info["index"])
                directory.spots[info["name"]] = asset
                base_token = info.get("tokens", [None])[0]
                if base_token is not None and base_token < len(tokens):
                    directory.sz_decimals[asset] = int(tokens[base_token].get("szDecimals", 0))
        return directory

    def perp_asset(self, coin: str) -> Optional[int]:
        return self.perps.get(coin)

    def spot_asset(self, coin: str) -> Optional[int]:
        return self.spots.get(coin)

    def asset(self, coin: str, is_spot: bool = False) -> Optional[int]:
        return self.spot_asset(coin) if is_spot else self.perp_asset(coin)


class Info:
    """Thin wrapper over the ``/info`` endpoint."""

    def __init__(self, api: Optional[API] = None, base_url: str = MAINNET_API_URL) -> None:
        self.api = api or API(base_url)
        self.logger = logging.getLogger(__name__)

    def meta(self) -> Dict[str, Any]:
        return self.api.post("/info", {"type": "meta"})

    def spot_meta(self) -> Dict[str, Any]:
        return self.api.post("/info", {"type": "spotMeta"})

    def all_mids(self) -> Dict[str, str]:
        return self.api.post("/info", {"type": "allMids"})

    def user_state(self, user: str) -> Dict[str, Any]:
        return self.api.post("/info", {"type": "clearinghouseState", "user": user})

    def open_orders(self, user: str) -> List[Dict[str, Any]]:
        return self.api.post("/info", {"type": "openOrders", "user": user})

    def l2_snapshot(self, coin: str) -> Dict[str, Any]:
        return self.api.post("/info", {"type": "l2Book", "coin": coin})

    def candles_snapshot(self, coin: str, interval: str, start_time: int, end_time: Optional[int] = None) -> List[Dict[str, Any]]:
        request: Dict[str, Any] = {"coin": coin, "interval": interval, "startTime": start_time}
        if end_time is not None:
            request["endTime"] = end_time
        return self.api.post("/info", {"type": "candleSnapshot", "req": request})

    def asset_directory(self) -> AssetDirectory:
        directory = AssetDirectory.from_meta(self.meta(), self.spot_meta())
        self.logger.info(
            "Loaded %d perp and %d spot assets", len(directory.perps), len(directory.spots),
            extra={"event": "asset_directory_loaded"},
        )
        return directory


__all__ = ["AssetDirectory", "Info", "SPOT_ASSET_OFFSET"]
