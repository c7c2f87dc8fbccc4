import unittest
from decimal import Decimal

from hlclient.errors import ValidationError
from hlclient.execution.orders import (
    BuilderInfo,
    LimitOrderType,
    OrderType,
    TriggerOrderType,
    float_to_usd_int,
    float_to_wire,
    limit_order,
    order_request_to_wire,
    order_type_to_wire,
    order_wires_to_order_action,
    trigger_order,
    wire_to_decimal,
)


class FloatToWireTest(unittest.TestCase):
    def test_fixed_fractional_digits(self) -> None:
        self.assertEqual("0.10000000", float_to_wire(0.1))
        self.assertEqual("100.00000000", float_to_wire(100))
        self.assertEqual("27123.50000000", float_to_wire("27123.5"))
        self.assertEqual("0.00012346", float_to_wire(Decimal("0.000123456")))

    def test_rounds_half_to_even(self) -> None:
        self.assertEqual("0.00000002", float_to_wire(Decimal("0.000000025")))
        self.assertEqual("0.00000004", float_to_wire(Decimal("0.000000035")))

    def test_negative_zero_is_normalized(self) -> None:
        self.assertEqual("0.00000000", float_to_wire(-0.0))
        self.assertEqual("0.00000000", float_to_wire(Decimal("-0.000000001")))

    def test_wire_value_parses_back(self) -> None:
        for value in (0.1, 1.23456789, 65000.5, 0.00001):
            wire = float_to_wire(value)
            self.assertEqual(Decimal(str(value)), wire_to_decimal(wire))
            self.assertEqual(wire, float_to_wire(wire))

    def test_rejects_non_numbers(self) -> None:
        for bad in (float("nan"), float("inf"), "abc", True, None):
            with self.assertRaises(ValidationError):
                float_to_wire(bad, "limit_px")
        with self.assertRaises(ValidationError):
            float_to_wire(Decimal("1e40"))


class UsdIntTest(unittest.TestCase):
    def test_scales_to_micro_usd(self) -> None:
        self.assertEqual(1_000_000, float_to_usd_int(1))
        self.assertEqual(12_345_679, float_to_usd_int("12.3456789"))
        self.assertEqual(-250_000, float_to_usd_int(-0.25))

    def test_rejects_non_numbers(self) -> None:
        with self.assertRaises(ValidationError):
            float_to_usd_int(float("nan"), "amount")


class OrderWireTest(unittest.TestCase):
    def test_limit_order_wire(self) -> None:
        order = limit_order("BTC", True, 0.01, 65000, tif="Alo")
        self.assertEqual(
            {
                "a": 0,
                "b": True,
                "p": "65000.00000000",
                "s": "0.01000000",
                "r": False,
                "t": {"limit": {"tif": "Alo"}},
            },
            order_request_to_wire(order, 0),
        )

    def test_cloid_included_only_when_set(self) -> None:
        with_cloid = limit_order("ETH", False, 1, 3000, cloid="0x" + "00" * 15 + "2a")
        self.assertEqual("0x" + "00" * 15 + "2a", order_request_to_wire(with_cloid, 1)["c"])
        self.assertNotIn("c", order_request_to_wire(limit_order("ETH", False, 1, 3000), 1))
        self.assertNotIn("c", order_request_to_wire(limit_order("ETH", False, 1, 3000, cloid=""), 1))

    def test_trigger_order_wire(self) -> None:
        order = trigger_order("BTC", False, 0.5, 60000, trigger_px=60500, tpsl="sl", reduce_only=True)
        wire = order_request_to_wire(order, 0)
        self.assertTrue(wire["r"])
        self.assertEqual(
            {"trigger": {"triggerPx": "60500.00000000", "isMarket": True, "tpsl": "sl"}},
            wire["t"],
        )

    def test_order_kind_must_be_exactly_one(self) -> None:
        with self.assertRaises(ValidationError):
            order_type_to_wire(OrderType())
        with self.assertRaises(ValidationError):
            order_type_to_wire(
                OrderType(limit=LimitOrderType(), trigger=TriggerOrderType(1, True, "tp"))
            )

    def test_unknown_tif_and_tpsl_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            order_type_to_wire(OrderType(limit=LimitOrderType("Fok")))
        with self.assertRaises(ValidationError):
            order_type_to_wire(OrderType(trigger=TriggerOrderType(1, True, "stop")))

    def test_order_action_grouping_and_builder(self) -> None:
        wire = order_request_to_wire(limit_order("BTC", True, 1, 1), 0)
        self.assertEqual(
            {"type": "order", "orders": [wire], "grouping": "na"},
            order_wires_to_order_action([wire]),
        )
        action = order_wires_to_order_action([wire], BuilderInfo("0xABCDEF", 10))
        self.assertEqual({"b": "0xabcdef", "f": 10}, action["builder"])


if __name__ == "__main__":
    unittest.main()
