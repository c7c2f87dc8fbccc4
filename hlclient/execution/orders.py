"""Order intents and their wire encoding.

Prices and sizes travel as decimal strings with a fixed number of fractional
digits, so no binary float ever reaches the wire.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

from hlclient.errors import ValidationError

WIRE_DECIMALS = 8
USD_DECIMALS = 6
_WIRE_QUANTUM = Decimal(1).scaleb(-WIRE_DECIMALS)

Tif = Literal["Alo", "Ioc", "Gtc"]
Tpsl = Literal["tp", "sl"]
Numeric = Union[Decimal, float, int, str]

VALID_TIFS = ("Alo", "Ioc", "Gtc")
VALID_TPSL = ("tp", "sl")


def float_to_wire(value: Numeric, field: str = "value") -> str:
    """Render ``value`` with exactly ``WIRE_DECIMALS`` fractional digits."""

    if isinstance(value, bool):
        raise ValidationError(field, "boolean is not a number")
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(field, f"not a number: {value!r}") from exc
    if not number.is_finite():
        raise ValidationError(field, f"must be finite, got {value!r}")
    try:
        rounded = number.quantize(_WIRE_QUANTUM, rounding=ROUND_HALF_EVEN)
    except InvalidOperation as exc:
        raise ValidationError(field, f"out of range: {value!r}") from exc
    if rounded.is_zero():
        rounded = abs(rounded)
    return f"{rounded:f}"


def float_to_usd_int(value: Numeric, field: str = "value") -> int:
    """USD amount as an integer count of micro-dollars (1e-6), for margin actions."""

    micros = Decimal(float_to_wire(value, field)).scaleb(USD_DECIMALS)
    return int(micros.to_integral_value(rounding=ROUND_HALF_EVEN))


def wire_to_decimal(text: str) -> Decimal:
    return Decimal(text)


@dataclass(frozen=True)
class LimitOrderType:
    tif: Tif = "Gtc"


@dataclass(frozen=True)
class TriggerOrderType:
    trigger_px: Numeric
    is_market: bool
    tpsl: Tpsl


@dataclass(frozen=True)
class OrderType:
    """Exactly one of ``limit`` or ``trigger`` must be set."""

    limit: Optional[LimitOrderType] = None
    trigger: Optional[TriggerOrderType] = None


@dataclass
class OrderRequest:
    coin: str
    is_buy: bool
    sz: Numeric
    limit_px: Numeric
    order_type: OrderType
    reduce_only: bool = False
    cloid: Optional[str] = None


@dataclass(frozen=True)
class BuilderInfo:
    """Builder address and fee (tenths of a basis point) attached to orders."""

    builder: str
    fee: int

    def to_wire(self) -> Dict[str, Any]:
        return {"b": self.builder.lower(), "f": self.fee}


def order_type_to_wire(order_type: OrderType) -> Dict[str, Any]:
    if order_type.limit is not None and order_type.trigger is not None:
        raise ValidationError("order_type", "limit and trigger are mutually exclusive")
    if order_type.limit is not None:
        if order_type.limit.tif not in VALID_TIFS:
            raise ValidationError("tif", f"expected one of {VALID_TIFS}, got {order_type.limit.tif!r}")
        return {"limit": {"tif": order_type.limit.tif}}
    if order_type.trigger is not None:
        trigger = order_type.trigger
        if trigger.tpsl not in VALID_TPSL:
            raise ValidationError("tpsl", f"expected one of {VALID_TPSL}, got {trigger.tpsl!r}")
        return {
            "trigger": {
                "triggerPx": float_to_wire(trigger.trigger_px, "trigger_px"),
                "isMarket": bool(trigger.is_market),
                "tpsl": trigger.tpsl,
            }
        }
    raise ValidationError("order_type", "no order kind selected")


def order_request_to_wire(order: OrderRequest, asset: int) -> Dict[str, Any]:
    wire: Dict[str, Any] = {
        "a": asset,
        "b": bool(order.is_buy),
        "p": float_to_wire(order.limit_px, "limit_px"),
        "s": float_to_wire(order.sz, "sz"),
        "r": bool(order.reduce_only),
        "t": order_type_to_wire(order.order_type),
    }
    if order.cloid:
        wire["c"] = order.cloid
    return wire


def order_wires_to_order_action(
    order_wires: Sequence[Dict[str, Any]],
    builder: Optional[BuilderInfo] = None,
    grouping: str = "na",
) -> Dict[str, Any]:
    action: Dict[str, Any] = {"type": "order", "orders": list(order_wires), "grouping": grouping}
    if builder is not None:
        action["builder"] = builder.to_wire()
    return action


def limit_order(
    coin: str,
    is_buy: bool,
    sz: Numeric,
    limit_px: Numeric,
    tif: Tif = "Gtc",
    reduce_only: bool = False,
    cloid: Optional[str] = None,
) -> OrderRequest:
    return OrderRequest(coin, is_buy, sz, limit_px, OrderType(limit=LimitOrderType(tif)), reduce_only, cloid)


def trigger_order(
    coin: str,
    is_buy: bool,
    sz: Numeric,
    limit_px: Numeric,
    trigger_px: Numeric,
    tpsl: Tpsl,
    is_market: bool = True,
    reduce_only: bool = False,
    cloid: Optional[str] = None,
) -> OrderRequest:
    order_type = OrderType(trigger=TriggerOrderType(trigger_px, is_market, tpsl))
    return OrderRequest(coin, is_buy, sz, limit_px, order_type, reduce_only, cloid)


__all__: List[str] = [
    "USD_DECIMALS",
    "WIRE_DECIMALS",
    "BuilderInfo",
    "LimitOrderType",
    "OrderRequest",
    "OrderType",
    "TriggerOrderType",
    "float_to_usd_int",
    "float_to_wire",
    "limit_order",
    "order_request_to_wire",
    "order_type_to_wire",
    "order_wires_to_order_action",
    "trigger_order",
    "wire_to_decimal",
]
