import unittest
from typing import Any, Callable, Dict, List, Optional

import requests

from hlclient.data.api import API
from hlclient.data.clients import MAINNET_API_URL, TESTNET_API_URL
from hlclient.data.info import SPOT_ASSET_OFFSET, AssetDirectory, Info
from hlclient.errors import ApiError, TransportError, ValidationError
from hlclient.execution.exchange import Exchange
from hlclient.execution.orders import limit_order
from hlclient.execution.signing import NonceManager, address_of, recover_signer

PRIVATE_KEY = "0x" + "22" * 32
VAULT = "0x" + "ab" * 20

META = {"universe": [{"name": "BTC", "szDecimals": 5}, {"name": "ETH", "szDecimals": 4}]}
SPOT_META = {
    "tokens": [{"name": "USDC", "szDecimals": 8}, {"name": "PURR", "szDecimals": 0}],
    "universe": [{"name": "PURR/USDC", "tokens": [1, 0], "index": 0}],
}


class StubResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


class StubSession:
    """Records every POST and answers through ``responder``."""

    def __init__(self, responder: Optional[Callable[[str, Dict[str, Any]], StubResponse]] = None) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.responder = responder or (lambda url, payload: StubResponse(200, {"status": "ok"}))

    def post(self, url: str, json: Dict[str, Any], headers: Dict[str, str], timeout: float) -> StubResponse:
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        return self.responder(url, json)


class FixedNonces(NonceManager):
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        super().__init__()
        self._next = start

    def next_nonce(self) -> int:
        nonce = self._next
        self._next += 1
        return nonce


def make_directory() -> AssetDirectory:
    return AssetDirectory.from_meta(META, SPOT_META)


class ApiTest(unittest.TestCase):
    def test_posts_json_to_path(self) -> None:
        session = StubSession()
        api = API(MAINNET_API_URL + "/", session=session, timeout=3)
        self.assertEqual({"status": "ok"}, api.post("/info", {"type": "meta"}))
        self.assertEqual("https://api.hyperliquid.xyz/info", session.calls[0]["url"])
        self.assertEqual(3, session.calls[0]["timeout"])

    def test_structured_rejection(self) -> None:
        body = {"code": 7, "msg": "Insufficient margin", "data": {"asset": 0}}
        api = API(session=StubSession(lambda url, payload: StubResponse(400, body)))
        with self.assertRaises(ApiError) as ctx:
            api.post("/exchange", {})
        self.assertEqual(400, ctx.exception.status)
        self.assertEqual(7, ctx.exception.code)
        self.assertEqual("Insufficient margin", ctx.exception.msg)
        self.assertEqual({"asset": 0}, ctx.exception.data)

    def test_unstructured_rejection(self) -> None:
        api = API(session=StubSession(lambda url, payload: StubResponse(502, None, "bad gateway")))
        with self.assertRaises(ApiError) as ctx:
            api.post("/exchange", {})
        self.assertIsNone(ctx.exception.code)
        self.assertIn("bad gateway", ctx.exception.msg)

    def test_network_failure_is_transport_error(self) -> None:
        def fail(url: str, payload: Dict[str, Any]) -> StubResponse:
            raise requests.ConnectionError("refused")

        with self.assertRaises(TransportError):
            API(session=StubSession(fail)).post("/info", {})


class InfoTest(unittest.TestCase):
    def test_asset_directory(self) -> None:
        def respond(url: str, payload: Dict[str, Any]) -> StubResponse:
            return StubResponse(200, META if payload["type"] == "meta" else SPOT_META)

        directory = Info(API(session=StubSession(respond))).asset_directory()
        self.assertEqual(0, directory.asset("BTC"))
        self.assertEqual(1, directory.asset("ETH"))
        self.assertEqual(SPOT_ASSET_OFFSET, directory.asset("PURR/USDC", is_spot=True))
        self.assertIsNone(directory.asset("PURR/USDC"))
        self.assertEqual(0, directory.sz_decimals[SPOT_ASSET_OFFSET])
        self.assertEqual(4, directory.sz_decimals[1])

    def test_candles_snapshot_request(self) -> None:
        session = StubSession(lambda url, payload: StubResponse(200, []))
        Info(API(session=session)).candles_snapshot("BTC", "1h", 1000)
        self.assertEqual(
            {"type": "candleSnapshot", "req": {"coin": "BTC", "interval": "1h", "startTime": 1000}},
            session.calls[0]["json"],
        )


class ExchangeTest(unittest.TestCase):
    def make_exchange(self, base_url: str = MAINNET_API_URL, vault_address: Optional[str] = None) -> Exchange:
        self.session = StubSession()
        return Exchange(
            PRIVATE_KEY,
            assets=make_directory(),
            vault_address=vault_address,
            api=API(base_url, session=self.session),
            nonce_manager=FixedNonces(),
        )

    def last_payload(self) -> Dict[str, Any]:
        return self.session.calls[-1]["json"]

    def test_order_is_signed_and_posted(self) -> None:
        exchange = self.make_exchange()
        exchange.order(limit_order("ETH", True, 0.5, 3000, cloid="0x" + "00" * 16))

        self.assertEqual("https://api.hyperliquid.xyz/exchange", self.session.calls[-1]["url"])
        payload = self.last_payload()
        self.assertEqual("", payload["vaultAddress"])
        self.assertEqual(
            {
                "type": "order",
                "orders": [
                    {
                        "a": 1,
                        "b": True,
                        "p": "3000.00000000",
                        "s": "0.50000000",
                        "r": False,
                        "t": {"limit": {"tif": "Gtc"}},
                        "c": "0x" + "00" * 16,
                    }
                ],
                "grouping": "na",
            },
            payload["action"],
        )
        signer = recover_signer(payload["signature"], payload["action"], None, payload["nonce"], True)
        self.assertEqual(address_of(PRIVATE_KEY), signer)
        self.assertEqual(address_of(PRIVATE_KEY), exchange.account_address)

    def test_vault_address_is_signed_and_sent(self) -> None:
        exchange = self.make_exchange(vault_address=VAULT)
        exchange.cancel("BTC", 42)

        payload = self.last_payload()
        self.assertEqual({"type": "cancel", "cancels": [{"a": 0, "o": 42}]}, payload["action"])
        self.assertEqual(VAULT, payload["vaultAddress"])
        signer = recover_signer(payload["signature"], payload["action"], VAULT, payload["nonce"], True)
        self.assertEqual(address_of(PRIVATE_KEY), signer)

    def test_usd_class_transfer_omits_vault_address(self) -> None:
        exchange = self.make_exchange(vault_address=VAULT)
        exchange.usd_class_transfer(25, to_perp=True)

        payload = self.last_payload()
        self.assertNotIn("vaultAddress", payload)
        self.assertEqual({"type": "usdClassTransfer", "amount": "25.00000000", "toPerp": True}, payload["action"])

    def test_testnet_uses_testnet_chain(self) -> None:
        exchange = self.make_exchange(base_url=TESTNET_API_URL)
        self.assertFalse(exchange.is_mainnet)
        exchange.update_leverage("BTC", 5, is_cross=False)

        payload = self.last_payload()
        self.assertEqual({"type": "updateLeverage", "asset": 0, "isCross": False, "leverage": 5}, payload["action"])
        testnet_signer = recover_signer(payload["signature"], payload["action"], None, payload["nonce"], False)
        self.assertEqual(address_of(PRIVATE_KEY), testnet_signer)

    def test_spot_orders_use_offset_asset_ids(self) -> None:
        exchange = self.make_exchange()
        exchange.order(limit_order("PURR/USDC", False, 10, 0.2), is_spot=True)
        self.assertEqual(SPOT_ASSET_OFFSET, self.last_payload()["action"]["orders"][0]["a"])

    def test_each_action_gets_a_new_nonce(self) -> None:
        exchange = self.make_exchange()
        exchange.cancel("BTC", 1)
        exchange.cancel_by_cloid("BTC", "0x" + "00" * 16)
        first, second = (call["json"]["nonce"] for call in self.session.calls)
        self.assertGreater(second, first)
        self.assertEqual(
            {"type": "cancelByCloid", "cancels": [{"asset": 0, "cloid": "0x" + "00" * 16}]},
            self.last_payload()["action"],
        )

    def test_cancel_all_cancels_open_orders_on_coin(self) -> None:
        exchange = self.make_exchange(vault_address=VAULT)
        open_orders = [
            {"coin": "BTC", "oid": 11, "side": "B"},
            {"coin": "ETH", "oid": 12, "side": "A"},
            {"coin": "BTC", "oid": 13, "side": "A"},
        ]

        def respond(url: str, payload: Dict[str, Any]) -> StubResponse:
            if url.endswith("/info"):
                return StubResponse(200, open_orders)
            return StubResponse(200, {"status": "ok"})

        self.session.responder = respond
        exchange.cancel_all("BTC")

        self.assertEqual({"type": "openOrders", "user": VAULT}, self.session.calls[0]["json"])
        payload = self.last_payload()
        self.assertEqual({"type": "cancel", "cancels": [{"a": 0, "o": 11}, {"a": 0, "o": 13}]}, payload["action"])
        signer = recover_signer(payload["signature"], payload["action"], VAULT, payload["nonce"], True)
        self.assertEqual(address_of(PRIVATE_KEY), signer)

    def test_cancel_all_without_open_orders_posts_nothing(self) -> None:
        exchange = self.make_exchange()
        self.session.responder = lambda url, payload: StubResponse(200, [{"coin": "ETH", "oid": 5}])

        self.assertIsNone(exchange.cancel_all("BTC"))
        self.assertEqual(1, len(self.session.calls))
        self.assertEqual({"type": "openOrders", "user": address_of(PRIVATE_KEY)}, self.session.calls[0]["json"])

    def test_update_isolated_margin_sends_micro_usd(self) -> None:
        exchange = self.make_exchange()
        exchange.update_isolated_margin("ETH", 12.5, is_buy=False)
        self.assertEqual(
            {"type": "updateIsolatedMargin", "asset": 1, "isBuy": False, "ntli": 12_500_000},
            self.last_payload()["action"],
        )

        exchange.update_isolated_margin("BTC", "-0.0000015")
        self.assertEqual(-2, self.last_payload()["action"]["ntli"])

    def test_invalid_requests_are_not_posted(self) -> None:
        exchange = self.make_exchange()
        with self.assertRaises(ValidationError):
            exchange.order(limit_order("DOGE", True, 1, 1))
        with self.assertRaises(ValidationError):
            exchange.order(limit_order("BTC", True, float("nan"), 1))
        with self.assertRaises(ValidationError):
            exchange.bulk_orders([])
        with self.assertRaises(ValidationError):
            exchange.update_leverage("BTC", 0)
        self.assertEqual([], self.session.calls)

    def test_rejection_surfaces_as_api_error(self) -> None:
        exchange = self.make_exchange()
        self.session.responder = lambda url, payload: StubResponse(422, {"code": 3, "msg": "Order has invalid price."})
        with self.assertRaises(ApiError) as ctx:
            exchange.order(limit_order("BTC", True, 1, 1))
        self.assertEqual(3, ctx.exception.code)
        self.assertEqual(1, len(self.session.calls))


if __name__ == "__main__":
    unittest.main()
