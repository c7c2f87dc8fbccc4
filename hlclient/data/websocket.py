"""Websocket client multiplexing many subscriptions over a single connection.

One socket carries every logical feed. Callers attach callbacks to a
:class:`~hlclient.data.subscriptions.Subscription`; the first callback for a
key sends the wire ``subscribe`` frame and the last one to leave sends
``unsubscribe``. A dedicated read task decodes frames and fans them out, a
keepalive task pings the venue, and a supervisor task rebuilds the connection
with exponential backoff when either of them fails, replaying every active
subscription. Callback handles survive reconnects untouched.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import json
import logging
import random
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from hlclient.data.clients import MAINNET_API_URL, VenueEndpoint
from hlclient.data.subscriptions import (
    CONTROL_CHANNELS,
    GREETING,
    MessageCallback,
    Subscription,
    SubscriptionRegistry,
    WsMessage,
)
from hlclient.errors import ConnectionClosedError, SubscriptionError, TransportError

DEFAULT_PING_INTERVAL = 50.0
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_CLOSE_TIMEOUT = 5.0
NORMAL_CLOSURE = 1000


@dataclass
class BackoffConfig:
    """Configuration for reconnection backoff."""

    initial: float = 1.0
    maximum: float = 60.0
    factor: float = 2.0
    jitter: float = 0.0

    def next_delay(self, delay: float) -> float:
        """Delay to use after another consecutive failure."""

        return min(delay * self.factor, self.maximum)

    def sleep_for(self, delay: float) -> float:
        jitter = random.uniform(0, self.jitter) if self.jitter > 0 else 0.0
        return min(delay, self.maximum) + jitter


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


_TRANSITIONS: Dict[ConnectionState, frozenset] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING, ConnectionState.CLOSED}),
    ConnectionState.CONNECTING: frozenset(
        {
            ConnectionState.CONNECTED,
            ConnectionState.DISCONNECTED,
            ConnectionState.RECONNECTING,
            ConnectionState.CLOSED,
        }
    ),
    ConnectionState.CONNECTED: frozenset(
        {ConnectionState.RECONNECTING, ConnectionState.DISCONNECTED, ConnectionState.CLOSED}
    ),
    ConnectionState.RECONNECTING: frozenset({ConnectionState.CONNECTING, ConnectionState.CLOSED}),
    ConnectionState.CLOSED: frozenset(),
}


def _is_normal_closure(exc: ConnectionClosed) -> bool:
    # Only 1000 is final; 1001 (venue restart), 1005 and a missing close frame reconnect.
    return exc.rcvd is not None and exc.rcvd.code == NORMAL_CLOSURE


class WebsocketClient:
    """Streaming client for the venue's multiplexed websocket feed.

    Typical use::

        async with WebsocketClient(MAINNET_API_URL) as ws:
            handle = await ws.subscribe_trades("BTC", on_trades)
            ...
            await ws.unsubscribe(Subscription.trades("BTC"), handle)

    Subscribing before :meth:`connect` is allowed; the frames are sent once the
    connection is up.
    """

    def __init__(
        self,
        base_url: str = MAINNET_API_URL,
        ping_interval: float = DEFAULT_PING_INTERVAL,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
        backoff: Optional[BackoffConfig] = None,
        metrics_callback: Optional[Callable[[str, Dict[str, float]], None]] = None,
        connect_factory: Optional[Callable[..., Any]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.endpoint = VenueEndpoint.from_base_url(base_url)
        self.url = self.endpoint.websocket_url
        self.ping_interval = ping_interval
        self.connect_timeout = connect_timeout
        self.close_timeout = close_timeout
        self.backoff = backoff or BackoffConfig()
        self.metrics_callback = metrics_callback
        self.logger = logger or logging.getLogger(__name__)
        self._connect_factory = connect_factory or websockets.connect

        self._registry = SubscriptionRegistry()
        self._state = ConnectionState.DISCONNECTED
        self._ws: Any = None
        self._write_lock = asyncio.Lock()
        self._connect_lock = asyncio.Lock()
        self._subscription_lock = asyncio.Lock()
        self._connection_lost = asyncio.Event()
        self._reader_task: Optional[asyncio.Task] = None
        self._ping_task: Optional[asyncio.Task] = None
        self._supervisor_task: Optional[asyncio.Task] = None

    # --- Lifecycle ---------------------------------------------------------
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def active_subscriptions(self) -> List[Subscription]:
        return self._registry.active_subscriptions()

    async def connect(self) -> None:
        """Open the connection; a no-op while connected or reconnecting."""

        if self._state is ConnectionState.CLOSED:
            raise ConnectionClosedError("client is closed")
        async with self._connect_lock:
            if self._state in (ConnectionState.CONNECTED, ConnectionState.RECONNECTING):
                return
            await self._open(on_failure=ConnectionState.DISCONNECTED)
        if self._supervisor_task is None:
            self._supervisor_task = asyncio.create_task(self._supervise())

    async def close(self) -> None:
        """Stop every loop and release the socket. Safe to call repeatedly."""

        if self._state is ConnectionState.CLOSED:
            return
        self._transition(ConnectionState.CLOSED)
        supervisor, self._supervisor_task = self._supervisor_task, None
        await self._cancel_tasks(supervisor)
        await self._teardown()
        self.logger.info("Websocket client closed", extra={"event": "ws_closed", "url": self.url})

    async def __aenter__(self) -> "WebsocketClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # --- Subscriptions -----------------------------------------------------
    async def subscribe(self, subscription: Subscription, callback: MessageCallback) -> int:
        """Attach ``callback`` to ``subscription`` and return its handle.

        Only the first callback for a key produces a wire frame. If that frame
        cannot be written the registration is rolled back and
        :class:`SubscriptionError` is raised.
        """

        subscription.validate()
        if self._state is ConnectionState.CLOSED:
            raise ConnectionClosedError("client is closed")
        async with self._subscription_lock:
            handle, is_first = self._registry.add(subscription, callback)
            if is_first and self._can_send():
                try:
                    await self._send_json({"method": "subscribe", "subscription": subscription.to_wire()})
                except TransportError as exc:
                    self._registry.discard(subscription, handle)
                    raise SubscriptionError(f"subscribe: {exc}") from exc
                except asyncio.CancelledError:
                    self._registry.discard(subscription, handle)
                    raise
        self.logger.info(
            "Subscribed to %s", subscription.type,
            extra={"event": "subscription", "subscription": subscription.to_wire(), "handle": handle},
        )
        return handle

    async def unsubscribe(self, subscription: Subscription, handle: int) -> None:
        """Detach a handle; the last one for a key tears down the wire subscription."""

        async with self._subscription_lock:
            is_last = self._registry.remove(subscription, handle)
            if is_last and self._can_send():
                try:
                    await self._send_json({"method": "unsubscribe", "subscription": subscription.to_wire()})
                except TransportError as exc:
                    self.logger.warning(
                        "Unsubscribe frame for %s not sent: %s", subscription.type, exc,
                        extra={"event": "unsubscribe_failed", "subscription": subscription.to_wire()},
                    )
        self.logger.info(
            "Unsubscribed from %s", subscription.type,
            extra={"event": "unsubscription", "subscription": subscription.to_wire(), "handle": handle},
        )

    async def stream(self, subscription: Subscription, maxsize: int = 0) -> AsyncIterator[WsMessage]:
        """Yield messages for ``subscription`` through a private queue.

        The subscription is removed when the generator is closed; wrap it in
        :func:`contextlib.aclosing` to make that deterministic.
        """

        queue: asyncio.Queue = asyncio.Queue(maxsize)

        def sink(message: WsMessage) -> None:
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                self.logger.warning(
                    "Stream queue full for %s; dropping message", subscription.type,
                    extra={"event": "stream_overflow", "subscription": subscription.to_wire()},
                )

        handle = await self.subscribe(subscription, sink)
        try:
            while True:
                yield await queue.get()
        finally:
            await self.unsubscribe(subscription, handle)

    async def subscribe_trades(self, coin: str, callback: MessageCallback) -> int:
        return await self.subscribe(Subscription.trades(coin), callback)

    async def subscribe_orderbook(self, coin: str, callback: MessageCallback) -> int:
        return await self.subscribe(Subscription.l2_book(coin), callback)

    async def subscribe_bbo(self, coin: str, callback: MessageCallback) -> int:
        return await self.subscribe(Subscription.bbo(coin), callback)

    async def subscribe_candles(self, coin: str, interval: str, callback: MessageCallback) -> int:
        return await self.subscribe(Subscription.candle(coin, interval), callback)

    async def subscribe_all_mids(self, callback: MessageCallback) -> int:
        return await self.subscribe(Subscription.all_mids(), callback)

    async def subscribe_user_events(self, user: str, callback: MessageCallback) -> int:
        return await self.subscribe(Subscription.user_events(user), callback)

    async def subscribe_user_fills(self, user: str, callback: MessageCallback) -> int:
        return await self.subscribe(Subscription.user_fills(user), callback)

    async def subscribe_order_updates(self, user: str, callback: MessageCallback) -> int:
        return await self.subscribe(Subscription.order_updates(user), callback)

    # --- Connection internals ----------------------------------------------
    def _transition(self, new_state: ConnectionState) -> bool:
        if new_state is self._state:
            return True
        if new_state not in _TRANSITIONS[self._state]:
            self.logger.debug("Ignoring transition %s -> %s", self._state.value, new_state.value)
            return False
        self.logger.debug(
            "Websocket state %s -> %s", self._state.value, new_state.value,
            extra={"event": "ws_state", "from": self._state.value, "to": new_state.value},
        )
        self._state = new_state
        return True

    def _can_send(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._ws is not None

    async def _open(self, on_failure: ConnectionState) -> None:
        """Dial, replay subscriptions, then start the read and keepalive loops."""

        if not self._transition(ConnectionState.CONNECTING):
            raise ConnectionClosedError("client is closed")
        try:
            ws = await asyncio.wait_for(
                self._connect_factory(self.url, ping_interval=None),
                timeout=self.connect_timeout,
            )
        except asyncio.CancelledError:
            self._transition(on_failure)
            raise
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            self._transition(on_failure)
            raise TransportError(f"websocket dial: {exc!r}") from exc

        if not self._transition(ConnectionState.CONNECTED):
            await self._close_socket(ws)
            raise ConnectionClosedError("client closed while connecting")
        self._ws = ws

        try:
            replayed = await self._resubscribe_all()
        except TransportError as exc:
            await self._teardown()
            self._transition(on_failure)
            raise TransportError(f"resubscribe: {exc}") from exc

        self._reader_task = asyncio.create_task(self._read_loop(ws))
        self._ping_task = asyncio.create_task(self._ping_loop(ws))
        self.logger.info(
            "Connected to %s", self.url,
            extra={"event": "ws_connected", "url": self.url, "resubscribed": replayed},
        )
        self._emit_metrics("ws_connected", {"resubscribed": float(replayed)})

    async def _resubscribe_all(self) -> int:
        async with self._subscription_lock:
            subscriptions = self._registry.active_subscriptions()
            for subscription in subscriptions:
                await self._send_json({"method": "subscribe", "subscription": subscription.to_wire()})
        return len(subscriptions)

    async def _send_json(self, payload: Dict[str, Any]) -> None:
        frame = json.dumps(payload)
        async with self._write_lock:
            ws = self._ws
            if ws is None:
                raise ConnectionClosedError("connection closed")
            try:
                await ws.send(frame)
            except (ConnectionClosed, OSError) as exc:
                raise TransportError(f"websocket write: {exc!r}") from exc

    async def _read_loop(self, ws: Any) -> None:
        while True:
            try:
                raw = await ws.recv()
            except ConnectionClosed as exc:
                self._handle_disconnect(ws, None if _is_normal_closure(exc) else exc)
                return
            except OSError as exc:
                self._handle_disconnect(ws, exc)
                return
            try:
                await self._handle_frame(raw)
            except Exception as exc:
                self.logger.exception(
                    "Frame handling failed: %s", exc,
                    extra={"event": "ws_reader_error", "url": self.url},
                )
                self._handle_disconnect(ws, exc)
                return

    async def _ping_loop(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self.ping_interval)
            if ws is not self._ws:
                return
            try:
                await self._send_json({"method": "ping"})
            except TransportError as exc:
                self.logger.warning("Ping failed: %s", exc, extra={"event": "ping_failed"})
                self._handle_disconnect(ws, exc)
                return

    def _handle_disconnect(self, ws: Any, exc: Optional[BaseException]) -> None:
        if ws is not self._ws or self._state is not ConnectionState.CONNECTED:
            return
        if exc is None:
            self.logger.info("Websocket closed by peer", extra={"event": "ws_closed_normally", "url": self.url})
            self._ws = None
            if self._ping_task is not None and self._ping_task is not asyncio.current_task():
                self._ping_task.cancel()
            self._transition(ConnectionState.DISCONNECTED)
            return
        self.logger.warning(
            "Websocket connection lost: %s", exc,
            extra={"event": "ws_connection_lost", "url": self.url},
        )
        self._transition(ConnectionState.RECONNECTING)
        self._connection_lost.set()

    async def _supervise(self) -> None:
        while self._state is not ConnectionState.CLOSED:
            await self._connection_lost.wait()
            self._connection_lost.clear()
            if self._state is ConnectionState.RECONNECTING:
                await self._reconnect()

    async def _reconnect(self) -> None:
        await self._teardown()
        delay = self.backoff.initial
        attempt = 0
        while self._state is ConnectionState.RECONNECTING:
            attempt += 1
            sleep_for = self.backoff.sleep_for(delay)
            self.logger.info(
                "Reconnecting to %s", self.url,
                extra={"event": "reconnect", "attempt": attempt, "sleep_seconds": sleep_for},
            )
            self._emit_metrics("ws_reconnect_attempt", {"attempt": float(attempt), "sleep_seconds": sleep_for})
            await asyncio.sleep(sleep_for)
            if self._state is not ConnectionState.RECONNECTING:
                return
            try:
                async with self._connect_lock:
                    await self._open(on_failure=ConnectionState.RECONNECTING)
            except ConnectionClosedError:
                return
            except TransportError as exc:
                self.logger.warning(
                    "Reconnect attempt %d failed: %s", attempt, exc,
                    extra={"event": "reconnect_failed", "attempt": attempt},
                )
                delay = self.backoff.next_delay(delay)
                continue
            self._emit_metrics("ws_reconnected", {"attempts": float(attempt)})
            return

    async def _teardown(self) -> None:
        ws, self._ws = self._ws, None
        reader, ping = self._reader_task, self._ping_task
        self._reader_task = self._ping_task = None
        await self._cancel_tasks(reader, ping)
        self._connection_lost.clear()
        if ws is not None:
            await self._close_socket(ws)

    async def _close_socket(self, ws: Any) -> None:
        try:
            await asyncio.wait_for(ws.close(), timeout=self.close_timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Timed out closing websocket", extra={"event": "ws_close_timeout"})
        except (ConnectionClosed, OSError) as exc:
            self.logger.debug("Error while closing websocket: %s", exc)

    async def _cancel_tasks(self, *tasks: Optional[asyncio.Task]) -> None:
        current = asyncio.current_task()
        pending = [task for task in tasks if task is not None and task is not current and not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # --- Inbound frames ------------------------------------------------------
    async def _handle_frame(self, raw: Any) -> None:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        if raw == GREETING:
            return
        try:
            message = WsMessage.from_json(raw)
        except (ValueError, RecursionError) as exc:
            self.logger.warning(
                "Websocket message parse error: %s", exc,
                extra={"event": "ws_decode_error", "frame": raw[:200]},
            )
            self._emit_metrics("ws_decode_error", {"frame_bytes": float(len(raw))})
            return
        if message.channel in CONTROL_CHANNELS:
            self.logger.debug("Control frame on %s", message.channel)
            return
        if message.channel == "error":
            self.logger.warning(
                "Venue reported an error: %s", message.data,
                extra={"event": "ws_venue_error"},
            )
            return
        await self._dispatch(message)

    async def _dispatch(self, message: WsMessage) -> None:
        for callback in self._registry.callbacks_for(message):
            try:
                result = callback(message)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                self.logger.exception(
                    "Subscriber callback failed on %s: %s", message.channel, exc,
                    extra={"event": "ws_callback_error", "channel": message.channel},
                )
                self._emit_metrics("ws_callback_error", {"count": 1.0})

    def _emit_metrics(self, name: str, values: Dict[str, float]) -> None:
        if not self.metrics_callback:
            return
        try:
            self.metrics_callback(name, values)
        except Exception as exc:  # pragma: no cover - external callback safety
            self.logger.debug("Metric callback failed for %s: %s", name, exc)


__all__ = ["BackoffConfig", "ConnectionState", "WebsocketClient"]
