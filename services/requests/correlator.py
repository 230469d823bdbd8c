"""
Request/response correlation over the shared websocket.

Each outbound ``post`` frame carries a numeric id; the matching inbound
``post`` channel message resolves the future registered under that id. A
pending request is settled exactly once: by its response, by its timeout, or
by a disconnect.
"""

import asyncio
import itertools
import time
from typing import Any, Dict, Optional

from core.config.settings import Settings
from core.logging import get_connection_logger_safe
from core.schemas.messages import build_post_frame
from core.utils.exceptions import (
    ConnectionClosedError,
    RequestFailedError,
    RequestTimeoutError,
)
from services.connection.manager import ConnectionManager
from services.connection.models import ConnectionState


class RequestCorrelator:
    """Tracks in-flight ``post`` requests keyed by id."""

    def __init__(self, settings: Settings, connection: ConnectionManager):
        self.settings = settings
        self.connection = connection
        self.default_timeout = settings.connection.request_timeout_seconds
        self._pending: Dict[int, asyncio.Future] = {}
        # Millisecond-seeded so ids from separate sessions do not collide
        self._ids = itertools.count(int(time.time() * 1000))
        self.logger = get_connection_logger_safe("request_correlator")

        connection.add_state_listener(self._on_state_change)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, request_id: int) -> bool:
        return request_id in self._pending

    def next_id(self) -> int:
        request_id = next(self._ids)
        while request_id in self._pending:
            request_id = next(self._ids)
        return request_id

    async def send_request(
        self,
        request_body: Dict[str, Any],
        id: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Send a correlated request and wait for its response body.

        Raises:
            ValueError: ``id`` is already in flight
            NotConnectedError: the connection is not open
            RequestTimeoutError: no response within the timeout
            RequestFailedError: the exchange answered with ``type == "error"``
            ConnectionClosedError: the connection dropped while waiting
        """
        request_id = self.next_id() if id is None else id
        if request_id in self._pending:
            raise ValueError(f"Request id {request_id} is already in flight")

        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        timeout = self.default_timeout if timeout is None else timeout

        try:
            await self.connection.send(build_post_frame(request_id, request_body))
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Request timed out", request_id=request_id, timeout_seconds=timeout)
            raise RequestTimeoutError(
                f"No response to request {request_id} within {timeout}s",
                request_id=request_id,
                timeout_seconds=timeout,
            ) from None
        finally:
            if self._pending.get(request_id) is future:
                del self._pending[request_id]

    async def request_info(self, info_type: str, timeout: Optional[float] = None, **params) -> Any:
        """Issue an ``info`` request and return ``response.payload.data``."""
        body = {"type": "info", "payload": {"type": info_type, **params}}
        response = await self.send_request(body, timeout=timeout)
        payload = response.get("payload") if isinstance(response, dict) else None
        return payload.get("data") if isinstance(payload, dict) else None

    def resolve(self, request_id: int, response: Dict[str, Any]) -> bool:
        """Settle the pending request with this id. Returns False if none is pending."""
        future = self._pending.pop(request_id, None)
        if future is None or future.done():
            self.logger.debug("Response for unknown or settled request", request_id=request_id)
            return False

        if isinstance(response, dict) and response.get("type") == "error":
            future.set_exception(RequestFailedError(
                f"Request {request_id} failed: {response.get('payload')}",
                request_id=request_id,
                response=response,
            ))
        else:
            future.set_result(response)
        return True

    def reject_all(self, exc: Exception) -> int:
        """Reject every pending request with ``exc`` and clear the map."""
        pending, self._pending = self._pending, {}
        rejected = 0
        for future in pending.values():
            if not future.done():
                future.set_exception(exc)
                rejected += 1
        if rejected:
            self.logger.warning("Rejected pending requests", count=rejected, error=str(exc))
        return rejected

    def _on_state_change(self, state: ConnectionState) -> None:
        if state == ConnectionState.DISCONNECTED:
            self.reject_all(ConnectionClosedError(
                "Connection closed before a response arrived",
                url=self.connection.config.ws_url,
            ))
