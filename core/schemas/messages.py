# Inbound websocket message schemas
# Every frame is validated into one of these before dispatch

import json
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
)

from core.utils.exceptions import MessageValidationError


class InboundBaseModel(BaseModel):
    """Base for inbound frames; unknown fields are kept for diagnostics."""

    model_config = ConfigDict(extra="allow", frozen=True)


class PostResponseData(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    response: Dict[str, Any] = Field(default_factory=dict)


class ResponseMessage(InboundBaseModel):
    """Answer to a correlated `post` request"""
    kind: Literal["response"] = "response"
    channel: Literal["post"]
    data: PostResponseData


class AckMessage(InboundBaseModel):
    """Exchange acknowledgement of a subscribe/unsubscribe frame"""
    kind: Literal["ack"] = "ack"
    channel: Literal["subscriptionResponse"]
    data: Any = None


class ErrorMessage(InboundBaseModel):
    kind: Literal["error"] = "error"
    channel: Literal["error"]
    data: Any = None


class PongMessage(InboundBaseModel):
    kind: Literal["pong"] = "pong"
    channel: Literal["pong"]
    data: Any = None


class StreamMessage(InboundBaseModel):
    """Subscription data for any other channel"""
    kind: Literal["stream"] = "stream"
    channel: str
    data: Any = None
    subscription: Optional[Dict[str, Any]] = None


_CHANNEL_KINDS = {
    "post": "response",
    "subscriptionResponse": "ack",
    "error": "error",
    "pong": "pong",
}


def _message_kind(value: Any) -> Optional[str]:
    channel = value.get("channel") if isinstance(value, dict) else getattr(value, "channel", None)
    if not isinstance(channel, str) or not channel:
        return None
    return _CHANNEL_KINDS.get(channel, "stream")


InboundMessage = Annotated[
    Union[
        Annotated[ResponseMessage, Tag("response")],
        Annotated[AckMessage, Tag("ack")],
        Annotated[ErrorMessage, Tag("error")],
        Annotated[PongMessage, Tag("pong")],
        Annotated[StreamMessage, Tag("stream")],
    ],
    Discriminator(_message_kind),
]

_inbound_adapter = TypeAdapter(InboundMessage)


def parse_inbound_message(raw: Union[str, bytes, Dict[str, Any]]) -> InboundMessage:
    """Validate a raw frame into a tagged inbound message.

    Raises:
        MessageValidationError: the frame is not JSON or does not match any variant
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            payload = json.loads(raw)
        except ValueError as e:
            raise MessageValidationError(f"Frame is not valid JSON: {e}", raw_message=raw[:500]) from e
    else:
        payload = raw

    if not isinstance(payload, dict):
        raise MessageValidationError("Frame is not a JSON object", raw_message=str(raw)[:500])

    try:
        return _inbound_adapter.validate_python(payload)
    except ValidationError as e:
        raise MessageValidationError(
            f"Frame failed validation: {e.error_count()} error(s)",
            raw_message=str(raw)[:500],
            details={"errors": e.errors(include_url=False)},
        ) from e


# Outbound frames

def build_post_frame(request_id: int, request_body: Dict[str, Any]) -> Dict[str, Any]:
    return {"method": "post", "id": request_id, "request": request_body}


def build_subscription_frame(method: str, subscription: Dict[str, Any]) -> Dict[str, Any]:
    """`method` is "subscribe" or "unsubscribe"."""
    return {"method": method, "subscription": subscription}
