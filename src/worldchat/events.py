"""Inbound chat events and their wire parsing.

Every frame a client sends is an envelope ``{"type": <name>, "data": <payload>}``.
The set of events is closed: :data:`Event` is a tagged union discriminated on
``type`` and :meth:`worldchat.room.ChatRoom.handle` matches on it exhaustively.
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class EventError(ValueError):
    """Raised when an inbound frame is not a valid chat event."""


# -----------------------------
# Payloads
# -----------------------------
class MessagePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: Optional[str] = None
    image: Optional[str] = None
    reply_to: Optional[str] = Field(default=None, alias="replyTo")


class ReactionPayload(BaseModel):
    id: str = Field(..., min_length=1)
    emoji: str


# -----------------------------
# Events
# -----------------------------
class JoinEvent(BaseModel):
    type: Literal["join"] = "join"
    data: Optional[str] = Field(default=None, description="Display name.")


class TypingEvent(BaseModel):
    type: Literal["typing"] = "typing"
    data: Any = None


class StopTypingEvent(BaseModel):
    type: Literal["stopTyping"] = "stopTyping"
    data: Any = None


class SendMessageEvent(BaseModel):
    type: Literal["sendMessage"] = "sendMessage"
    data: MessagePayload = Field(default_factory=MessagePayload)


class ReactEvent(BaseModel):
    type: Literal["react"] = "react"
    data: ReactionPayload


class ClearChatEvent(BaseModel):
    type: Literal["clearChat"] = "clearChat"
    data: Any = None


class DisconnectEvent(BaseModel):
    """Emitted by the transport when a socket closes; never parsed from the wire."""
    type: Literal["disconnect"] = "disconnect"


InboundEvent = Annotated[
    Union[
        JoinEvent,
        TypingEvent,
        StopTypingEvent,
        SendMessageEvent,
        ReactEvent,
        ClearChatEvent,
    ],
    Field(discriminator="type"),
]

Event = Union[
    JoinEvent,
    TypingEvent,
    StopTypingEvent,
    SendMessageEvent,
    ReactEvent,
    ClearChatEvent,
    DisconnectEvent,
]

_inbound: TypeAdapter[Any] = TypeAdapter(InboundEvent)


def parse_event(raw: Any) -> Event:
    """Validate a decoded JSON frame into an inbound event.

    Raises
    ------
    EventError
        If the frame is not an object, names an unknown event, or carries a
        malformed payload.
    """
    if not isinstance(raw, dict):
        raise EventError(f"expected an object frame, got {type(raw).__name__}")
    try:
        return _inbound.validate_python(raw)
    except ValidationError as e:
        raise EventError(f"invalid {raw.get('type')!r} event: {e}") from e
