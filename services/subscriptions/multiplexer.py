"""
Subscription multiplexing over the shared websocket.

Many local consumers may ask for the same (method, params) stream; the
multiplexer keeps exactly one upstream subscription per canonical key and an
explicit reference count of local registrations. Upstream subscribe and
unsubscribe frames go out from scheduled tasks which re-check the registry
when they run.
"""

import asyncio
import itertools
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from core.config.settings import Settings
from core.logging import get_connection_logger_safe, get_error_logger_safe
from core.schemas.messages import StreamMessage, build_subscription_frame
from core.utils.exceptions import EngineConnectionError
from services.connection.manager import ConnectionManager
from services.connection.models import ConnectionState

Handler = Callable[[Any], None]
Teardown = Callable[[], None]


def canonical_key(method: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Canonical serialization of a subscription: sorted keys, compact separators."""
    descriptor = {"type": method, **(params or {})}
    return json.dumps(descriptor, sort_keys=True, separators=(",", ":"))


def _noop_teardown() -> None:
    return None


@dataclass
class SubscriptionEntry:
    """One upstream subscription and its local registrations."""
    key: str
    method: str
    params: Dict[str, Any]
    ref_count: int = 0
    handlers: Dict[int, Handler] = field(default_factory=dict)

    @property
    def descriptor(self) -> Dict[str, Any]:
        return {"type": self.method, **self.params}


class SubscriptionMultiplexer:
    def __init__(self, settings: Settings, connection: ConnectionManager):
        self.settings = settings
        self.connection = connection
        self.unsubscribe_upstream = settings.subscriptions.unsubscribe_upstream

        self._entries: Dict[str, SubscriptionEntry] = {}
        # Keys with a subscribe frame sent on the current connection
        self._upstream_keys: Set[str] = set()
        self._tokens = itertools.count(1)
        self._tasks: Set[asyncio.Task] = set()

        self.logger = get_connection_logger_safe("subscription_multiplexer")
        self.error_logger = get_error_logger_safe("subscription_errors")

        connection.add_state_listener(self._on_state_change)

    # Registry

    def subscribe(
        self,
        method: str,
        params: Optional[Mapping[str, Any]],
        handler: Handler,
        enabled: bool = True,
    ) -> Teardown:
        """Register ``handler`` for the (method, params) stream.

        Returns an idempotent teardown that removes only this registration.
        """
        if not enabled:
            return _noop_teardown

        params = dict(params or {})
        key = canonical_key(method, params)
        entry = self._entries.get(key)
        created = entry is None
        if created:
            entry = SubscriptionEntry(key=key, method=method, params=params)
            self._entries[key] = entry

        token = next(self._tokens)
        entry.handlers[token] = handler
        entry.ref_count += 1
        self.logger.debug("Handler registered", key=key, ref_count=entry.ref_count)

        if created:
            self._schedule(self._send_subscribe(key))

        released = False

        def teardown() -> None:
            nonlocal released
            if released:
                return
            released = True
            self._release(key, token)

        return teardown

    def _release(self, key: str, token: int) -> None:
        entry = self._entries.get(key)
        if entry is None or token not in entry.handlers:
            return
        del entry.handlers[token]
        entry.ref_count -= 1
        self.logger.debug("Handler released", key=key, ref_count=entry.ref_count)

        if entry.ref_count <= 0:
            del self._entries[key]
            if self.unsubscribe_upstream:
                self._schedule(self._send_unsubscribe(key, entry.descriptor))

    def get_entry(self, key: str) -> Optional[SubscriptionEntry]:
        return self._entries.get(key)

    @property
    def active_keys(self) -> List[str]:
        return list(self._entries)

    def is_active_upstream(self, key: str) -> bool:
        return key in self._upstream_keys

    # Fan-out

    def dispatch(self, message: StreamMessage) -> int:
        """Deliver a stream message to every matching handler, in registration order.

        Returns the number of handlers invoked.
        """
        delivered = 0
        for entry in list(self._entries.values()):
            if not self._matches(entry, message):
                continue
            for handler in list(entry.handlers.values()):
                delivered += 1
                try:
                    handler(message.data)
                except Exception as e:
                    self.error_logger.error(
                        "Subscription handler failed",
                        key=entry.key,
                        error=str(e),
                        exc_info=True,
                    )
        return delivered

    @staticmethod
    def _matches(entry: SubscriptionEntry, message: StreamMessage) -> bool:
        if message.subscription:
            descriptor = dict(message.subscription)
            method = descriptor.pop("type", message.channel)
            return canonical_key(method, descriptor) == entry.key

        if entry.method != message.channel:
            return False
        if not entry.params:
            return True
        data = message.data
        if not isinstance(data, dict):
            return False
        return all(k in data and data[k] == v for k, v in entry.params.items())

    # Upstream frames

    def _schedule(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet: the subscription is replayed by resubscribe_all() on connect
            coro.close()
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send_subscribe(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None or key in self._upstream_keys:
            return False
        if not self.connection.is_connected:
            self.logger.debug("Deferring subscribe until connected", key=key)
            return False

        self._upstream_keys.add(key)
        try:
            await self.connection.send(build_subscription_frame("subscribe", entry.descriptor))
        except EngineConnectionError as e:
            self._upstream_keys.discard(key)
            self.logger.warning("Subscribe frame not sent", key=key, error=str(e))
            return False
        self.logger.info("Subscribed upstream", key=key)
        return True

    async def _send_unsubscribe(self, key: str, descriptor: Dict[str, Any]) -> bool:
        if key in self._entries:
            # Re-registered before this task ran
            return False
        if key not in self._upstream_keys:
            return False

        self._upstream_keys.discard(key)
        if not self.connection.is_connected:
            return False
        try:
            await self.connection.send(build_subscription_frame("unsubscribe", descriptor))
        except EngineConnectionError as e:
            self.logger.warning("Unsubscribe frame not sent", key=key, error=str(e))
            return False
        self.logger.info("Unsubscribed upstream", key=key)
        return True

    async def resubscribe_all(self) -> int:
        """Send a subscribe frame for every registered key not yet active upstream."""
        sent = 0
        for key in list(self._entries):
            if await self._send_subscribe(key):
                sent += 1
        return sent

    async def flush(self) -> None:
        """Wait until every scheduled upstream frame task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _on_state_change(self, state: ConnectionState) -> None:
        if state == ConnectionState.DISCONNECTED:
            self._upstream_keys.clear()
        elif state == ConnectionState.CONNECTED and self._entries:
            self._schedule(self.resubscribe_all())
