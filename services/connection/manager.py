"""
Persistent websocket connection to the exchange info/stream API.

One connection is shared by every subscription and correlated request. Inbound
frames are read by a single task strictly in arrival order and handed to the
registered message listeners. There is no automatic reconnection: callers invoke
``reconnect()`` explicitly.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from core.config.settings import Settings
from core.logging import get_connection_logger_safe, get_error_logger_safe
from core.utils.exceptions import (
    ConnectionClosedError,
    EngineConnectionError,
    NotConnectedError,
)

from .models import ConnectionState, ConnectionStats

StateListener = Callable[[ConnectionState], None]
MessageListener = Callable[[Any], None]


class ConnectionManager:
    """Owns the websocket, its reader task and the connection state."""

    def __init__(
        self,
        settings: Settings,
        connect_factory: Optional[Callable[..., Awaitable[Any]]] = None,
    ):
        self.settings = settings
        self.config = settings.connection
        self._connect_factory = connect_factory or websockets.connect
        self._ws = None
        self._reader_task: Optional[asyncio.Task] = None

        self.state = ConnectionState.DISCONNECTED
        self.latency_ms: Optional[float] = None
        self.stats = ConnectionStats()

        self._state_listeners: List[StateListener] = []
        self._message_listeners: List[MessageListener] = []

        self.logger = get_connection_logger_safe("connection_manager")
        self.error_logger = get_error_logger_safe("connection_errors")

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED and self._ws is not None

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def add_message_listener(self, listener: MessageListener) -> None:
        self._message_listeners.append(listener)

    def record_latency(self, latency_ms: Optional[float]) -> None:
        self.latency_ms = latency_ms

    async def connect(self) -> None:
        """Open the websocket and start the reader task.

        Raises:
            EngineConnectionError: the socket could not be opened
        """
        if self.is_connected:
            return

        url = self.config.ws_url
        self._set_state(ConnectionState.CONNECTING)
        self.stats.connection_attempts += 1
        self.logger.info("Opening websocket", url=url, attempt=self.stats.connection_attempts)

        try:
            ws = await self._connect_factory(
                url,
                open_timeout=self.config.open_timeout_seconds,
                ping_interval=self.config.ping_interval_seconds,
                ping_timeout=self.config.ping_timeout_seconds,
            )
        except Exception as e:
            self._set_state(ConnectionState.DISCONNECTED)
            self.error_logger.error("Websocket open failed", url=url, error=str(e))
            raise EngineConnectionError(f"Failed to connect to {url}: {e}", url=url) from e

        self._ws = ws
        self.stats.successful_connections += 1
        self.stats.last_connection_time = datetime.now(timezone.utc)
        self._reader_task = asyncio.create_task(self._reader_loop(ws), name="ws-reader")
        self.logger.info("✅ Websocket connected", url=url)
        self._set_state(ConnectionState.CONNECTED)

    async def send(self, payload: dict) -> None:
        """Serialize and transmit one outbound frame.

        Raises:
            NotConnectedError: no open connection
            ConnectionClosedError: the socket closed during the send
        """
        ws = self._ws
        if ws is None or self.state != ConnectionState.CONNECTED:
            raise NotConnectedError("Websocket is not connected", url=self.config.ws_url)

        try:
            await ws.send(json.dumps(payload))
        except ConnectionClosed as e:
            self._handle_disconnect(ws, f"closed during send: {e}")
            raise ConnectionClosedError("Websocket closed during send", url=self.config.ws_url) from e
        self.stats.messages_sent += 1

    async def close(self) -> None:
        """Tear down the socket and reader task."""
        ws = self._ws
        task, self._reader_task = self._reader_task, None

        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                self.logger.warning("Error while closing websocket", error=str(e))
            self._handle_disconnect(ws, "closed by client")
        elif self.state != ConnectionState.DISCONNECTED:
            self._set_state(ConnectionState.DISCONNECTED)

    async def reconnect(self) -> None:
        """Explicit recovery: close, then open a fresh connection.

        Subscriptions are replayed by the multiplexer once the state turns connected.
        """
        self.logger.info("Reconnecting websocket")
        await self.close()
        await self.connect()

    async def _reader_loop(self, ws) -> None:
        reason = "closed by server"
        try:
            async for raw in ws:
                self._on_frame(raw)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            reason = f"connection closed: {e}"
            self.logger.warning("Websocket closed", reason=reason)
        except Exception as e:
            reason = f"reader failed: {e}"
            self.error_logger.error("Websocket reader failed", error=str(e), exc_info=True)
        self._handle_disconnect(ws, reason)

    def _on_frame(self, raw: Any) -> None:
        self.stats.messages_received += 1
        for listener in list(self._message_listeners):
            try:
                listener(raw)
            except Exception as e:
                self.error_logger.error("Message listener failed", error=str(e), exc_info=True)

    def _handle_disconnect(self, ws, reason: str) -> None:
        # A stale socket (already replaced or closed) must not clobber current state
        if self._ws is not ws:
            return
        self._ws = None
        self.stats.disconnections += 1
        self.stats.last_disconnection_time = datetime.now(timezone.utc)
        self.stats.last_disconnect_reason = reason
        self.logger.info("Websocket disconnected", reason=reason)
        self._set_state(ConnectionState.DISCONNECTED)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self.state:
            return
        self.state = state
        self.stats.current_status = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception as e:
                self.error_logger.error("State listener failed", state=state.value, error=str(e), exc_info=True)

    def get_status(self) -> dict:
        return {
            "state": self.state.value,
            "url": self.config.ws_url,
            "latency_ms": self.latency_ms,
            "stats": self.stats.model_dump(mode="json"),
        }
