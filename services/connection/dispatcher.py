# Inbound frame dispatch: validate, then route by message kind
from typing import Any

from core.logging import get_connection_logger_safe
from core.schemas.messages import (
    AckMessage,
    ErrorMessage,
    PongMessage,
    ResponseMessage,
    StreamMessage,
    parse_inbound_message,
)
from core.utils.exceptions import MessageValidationError

from .manager import ConnectionManager
from .models import DispatchStats


class InboundDispatcher:
    """Routes validated frames to the request correlator or the subscription multiplexer.

    Registers itself as the connection's message listener, so every frame read by
    the connection passes through ``dispatch`` in arrival order.
    """

    def __init__(self, connection: ConnectionManager, correlator, multiplexer):
        self.connection = connection
        self.correlator = correlator
        self.multiplexer = multiplexer
        self.stats = DispatchStats()
        self.logger = get_connection_logger_safe("inbound_dispatcher")

        connection.add_message_listener(self.dispatch)

    def dispatch(self, raw: Any) -> None:
        try:
            message = parse_inbound_message(raw)
        except MessageValidationError as e:
            self.stats.dropped += 1
            self.logger.warning("Dropping malformed frame", error=e.message, raw=e.raw_message[:200])
            return

        if isinstance(message, ResponseMessage):
            self.stats.responses += 1
            self.correlator.resolve(message.data.id, message.data.response)
        elif isinstance(message, StreamMessage):
            self.stats.streams += 1
            self.multiplexer.dispatch(message)
        elif isinstance(message, AckMessage):
            self.stats.acks += 1
            self.logger.debug("Subscription acknowledged", data=message.data)
        elif isinstance(message, ErrorMessage):
            self.stats.errors += 1
            self.logger.warning("Exchange reported an error", data=message.data)
        elif isinstance(message, PongMessage):
            self.stats.pongs += 1
