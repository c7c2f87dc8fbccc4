"""Subscription keys, inbound messages, the callback registry and routing.

A :class:`Subscription` identifies one logical feed. Any number of callbacks
can be attached to it, but the venue only ever sees a single subscribe frame
per distinct key. The registry is a plain in-memory structure guarded by a
lock; it knows nothing about sockets. :func:`match_subscription` is the pure
routing rule applied to every inbound frame.
"""

from __future__ import annotations

import itertools
import json
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from hlclient.errors import SubscriptionNotFoundError, ValidationError

MessageCallback = Callable[["WsMessage"], Any]

GREETING = "Websocket connection established."
CONTROL_CHANNELS = frozenset({"pong", "subscriptionResponse"})

# Fields each topic requires; anything not listed here is rejected for that topic.
_TOPIC_FIELDS: Dict[str, Tuple[str, ...]] = {
    "allMids": (),
    "l2Book": ("coin",),
    "trades": ("coin",),
    "bbo": ("coin",),
    "candle": ("coin", "interval"),
    "activeAssetCtx": ("coin",),
    "activeAssetData": ("user", "coin"),
    "userEvents": ("user",),
    "userFills": ("user",),
    "orderUpdates": ("user",),
    "userFundings": ("user",),
    "userNonFundingLedgerUpdates": ("user",),
    "webData2": ("user",),
    "notification": ("user",),
}

# Topics whose updates arrive on a channel named differently from the topic.
_TOPIC_CHANNELS: Dict[str, Tuple[str, ...]] = {
    "userEvents": ("user",),
    "activeAssetCtx": ("activeAssetCtx", "activeSpotAssetCtx"),
}

_handle_counter = itertools.count(1)
_handle_lock = threading.Lock()


def next_handle() -> int:
    """Return a callback handle that has never been issued in this process."""

    with _handle_lock:
        return next(_handle_counter)


@dataclass(frozen=True)
class Subscription:
    """Key of one logical feed: topic plus the optional refinements it needs."""

    type: str
    coin: Optional[str] = None
    user: Optional[str] = None
    interval: Optional[str] = None

    def validate(self) -> "Subscription":
        if not self.type:
            raise ValidationError("type", "subscription type is required")
        required = _TOPIC_FIELDS.get(self.type)
        if required is None:
            return self
        for name in ("coin", "user", "interval"):
            value = getattr(self, name)
            if name in required and not value:
                raise ValidationError(name, f"required for {self.type} subscriptions")
            if name not in required and value:
                raise ValidationError(name, f"not supported for {self.type} subscriptions")
        return self

    def to_wire(self) -> Dict[str, str]:
        payload = {"type": self.type}
        for name in ("coin", "user", "interval"):
            value = getattr(self, name)
            if value:
                payload[name] = value
        return payload

    def channels(self) -> Tuple[str, ...]:
        return _TOPIC_CHANNELS.get(self.type, (self.type,))

    @classmethod
    def trades(cls, coin: str) -> "Subscription":
        return cls("trades", coin=coin)

    @classmethod
    def l2_book(cls, coin: str) -> "Subscription":
        return cls("l2Book", coin=coin)

    @classmethod
    def bbo(cls, coin: str) -> "Subscription":
        return cls("bbo", coin=coin)

    @classmethod
    def candle(cls, coin: str, interval: str) -> "Subscription":
        return cls("candle", coin=coin, interval=interval)

    @classmethod
    def all_mids(cls) -> "Subscription":
        return cls("allMids")

    @classmethod
    def user_events(cls, user: str) -> "Subscription":
        return cls("userEvents", user=user)

    @classmethod
    def user_fills(cls, user: str) -> "Subscription":
        return cls("userFills", user=user)

    @classmethod
    def order_updates(cls, user: str) -> "Subscription":
        return cls("orderUpdates", user=user)


@dataclass(frozen=True)
class WsMessage:
    """One decoded inbound frame. ``data`` is passed through untouched."""

    channel: str
    data: Any = None

    @classmethod
    def from_json(cls, raw: str | bytes) -> "WsMessage":
        """Decode a frame; raises ``ValueError`` when it is not a channel message."""

        message = json.loads(raw)
        if not isinstance(message, dict) or not isinstance(message.get("channel"), str):
            raise ValueError("frame has no channel")
        return cls(channel=message["channel"], data=message.get("data"))


def _payload_coin(data: Any) -> Optional[str]:
    if isinstance(data, list):
        data = data[0] if data else None
    if isinstance(data, dict):
        value = data.get("coin") or data.get("s")
        return str(value) if value is not None else None
    return None


def _payload_user(data: Any) -> Optional[str]:
    if isinstance(data, dict) and data.get("user") is not None:
        return str(data["user"])
    return None


def _payload_interval(data: Any) -> Optional[str]:
    if isinstance(data, dict) and data.get("i") is not None:
        return str(data["i"])
    return None


def match_subscription(subscription: Subscription, message: WsMessage) -> bool:
    """Return True when ``message`` belongs to the feed named by ``subscription``.

    The channel must match the topic. Coin, user and interval narrow the
    match further only when the payload carries the corresponding field.
    """

    if message.channel not in subscription.channels():
        return False
    if subscription.coin:
        coin = _payload_coin(message.data)
        if coin is not None and coin != subscription.coin:
            return False
    if subscription.user:
        user = _payload_user(message.data)
        if user is not None and user.lower() != subscription.user.lower():
            return False
    if subscription.interval:
        interval = _payload_interval(message.data)
        if interval is not None and interval != subscription.interval:
            return False
    return True


class SubscriptionRegistry:
    """Maps each subscription key to the callbacks registered for it."""

    def __init__(self) -> None:
        self._entries: Dict[Subscription, Dict[int, MessageCallback]] = {}
        self._lock = threading.Lock()

    def add(self, subscription: Subscription, callback: MessageCallback) -> Tuple[int, bool]:
        """Register ``callback`` and return ``(handle, is_first_for_key)``."""

        if callback is None or not callable(callback):
            raise ValidationError("callback", "callback must be callable")
        handle = next_handle()
        with self._lock:
            entry = self._entries.setdefault(subscription, {})
            entry[handle] = callback
            return handle, len(entry) == 1

    def remove(self, subscription: Subscription, handle: int) -> bool:
        """Remove a handle and return True when it was the last one for the key."""

        with self._lock:
            entry = self._entries.get(subscription)
            if entry is None:
                raise SubscriptionNotFoundError(f"subscription not found: {subscription.to_wire()}")
            if handle not in entry:
                raise SubscriptionNotFoundError(f"subscription handle {handle} not found")
            del entry[handle]
            if entry:
                return False
            del self._entries[subscription]
            return True

    def discard(self, subscription: Subscription, handle: int) -> None:
        """Remove a handle if present; used to roll back a failed subscribe."""

        with self._lock:
            entry = self._entries.get(subscription)
            if entry is None:
                return
            entry.pop(handle, None)
            if not entry:
                del self._entries[subscription]

    def active_subscriptions(self) -> List[Subscription]:
        with self._lock:
            return [key for key, entry in self._entries.items() if entry]

    def handles(self, subscription: Subscription) -> List[int]:
        with self._lock:
            return list(self._entries.get(subscription, {}))

    def callbacks_for(self, message: WsMessage) -> List[MessageCallback]:
        """Snapshot of every callback whose key matches ``message``."""

        with self._lock:
            return [
                callback
                for key, entry in self._entries.items()
                if match_subscription(key, message)
                for callback in entry.values()
            ]

    def __contains__(self, subscription: object) -> bool:
        with self._lock:
            return subscription in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = [
    "CONTROL_CHANNELS",
    "GREETING",
    "MessageCallback",
    "Subscription",
    "SubscriptionRegistry",
    "WsMessage",
    "match_subscription",
    "next_handle",
]
