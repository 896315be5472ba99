"""In-memory chat room: sessions, bounded history, reactions and typing state."""
from __future__ import annotations

import itertools
import logging
import threading
import time
import uuid
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol, assert_never

from .events import (
    ClearChatEvent,
    DisconnectEvent,
    Event,
    JoinEvent,
    ReactEvent,
    SendMessageEvent,
    StopTypingEvent,
    TypingEvent,
)
from .models import ChatMessage, RoomPolicy, Session, system_message

logger = logging.getLogger(__name__)


class Outbox(Protocol):
    """Where the room delivers outbound events.

    Implementations must not block: they are called while the room lock is held.
    """

    def send(self, connection_id: str, event: str, data: Any) -> None: ...

    def broadcast(self, event: str, data: Any, exclude: Optional[str] = None) -> None: ...


class ChatRoom:
    """Single owner of the shared chat state.

    Every handler runs under one lock, including its calls into the outbox,
    so all connections observe outbound events in processing order.

    Preconditions that do not hold (no session, empty payload, unknown message
    id) make the handler a silent no-op.
    """

    def __init__(
        self,
        outbox: Outbox,
        policy: Optional[RoomPolicy] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.outbox = outbox
        self.policy = policy or RoomPolicy()
        self._clock = clock
        self._lock = threading.RLock()
        self._seq = itertools.count(1)

        self._history: Deque[ChatMessage] = deque(maxlen=self.policy.capacity)
        self._sessions: Dict[str, Session] = {}
        self._typing: Dict[str, str] = {}

    # --------- dispatch ----------
    def handle(self, connection_id: str, event: Event) -> None:
        """Apply one event from ``connection_id``."""
        match event:
            case JoinEvent():
                self.join(connection_id, event.data)
            case TypingEvent():
                self.typing(connection_id)
            case StopTypingEvent():
                self.stop_typing(connection_id)
            case SendMessageEvent():
                payload = event.data
                self.send_message(
                    connection_id,
                    text=payload.text,
                    image=payload.image,
                    reply_to=payload.reply_to,
                )
            case ReactEvent():
                self.react(connection_id, event.data.id, event.data.emoji)
            case ClearChatEvent():
                self.clear_chat(connection_id)
            case DisconnectEvent():
                self.disconnect(connection_id)
            case _:
                assert_never(event)

    # --------- operations ----------
    def join(self, connection_id: str, display_name: Optional[str]) -> None:
        name = (display_name or "").strip()
        if not name or len(name) > self.policy.max_name_chars:
            logger.debug("Ignoring join with empty or oversized name from %s", connection_id)
            return

        with self._lock:
            now = self._clock()
            self._sessions[connection_id] = Session(connection_id, name, joined_at=now)
            if connection_id in self._typing:
                # A rejoin renames the connection everywhere, typing included.
                self._typing[connection_id] = name
            self._evict_stale(now)

            self.outbox.send(connection_id, "oldMessages", [m.to_dict() for m in self._history])
            self.outbox.broadcast(
                "message",
                system_message(self._next_id(), self.policy.system_author, f"{name} joined the chat", now),
            )
        logger.info("%s joined (%s)", name, connection_id)

    def send_message(
        self,
        connection_id: str,
        text: Optional[str] = None,
        image: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> Optional[ChatMessage]:
        """Append a message and broadcast it. Returns the message, or None if rejected."""
        text = text or ""
        p = self.policy
        if not text.strip() and not image:
            return None
        if len(text) > p.max_text_chars or (image and len(image) > p.max_image_chars):
            logger.debug("Ignoring oversized message from %s", connection_id)
            return None

        with self._lock:
            session = self._sessions.get(connection_id)
            if session is None:
                logger.debug("Ignoring sendMessage before join from %s", connection_id)
                return None

            now = self._clock()
            self._evict_stale(now)
            msg = ChatMessage(
                id=self._next_id(),
                author=session.display_name,
                text=text,
                image=image or None,
                reply_to=reply_to or None,
                created_at=now,
            )
            # deque(maxlen=capacity) drops the oldest entry on overflow
            self._history.append(msg)
            self.outbox.broadcast("message", msg.to_dict())
            return msg

    def react(self, connection_id: str, message_id: str, emoji: str) -> None:
        emoji = (emoji or "").strip()
        allowed = self.policy.allowed_reactions
        if not emoji or len(emoji) > self.policy.max_reaction_chars:
            return
        if allowed is not None and emoji not in allowed:
            return

        with self._lock:
            if connection_id not in self._sessions:
                return
            msg = self._find(message_id)
            if msg is None:
                logger.debug("Reaction to unknown message %s ignored", message_id)
                return
            msg.reactions[emoji] = msg.reactions.get(emoji, 0) + 1
            self.outbox.broadcast("reactionUpdate", {"id": msg.id, "reactions": dict(msg.reactions)})

    def typing(self, connection_id: str) -> None:
        with self._lock:
            session = self._sessions.get(connection_id)
            if session is None:
                return
            self._typing[connection_id] = session.display_name
            self.outbox.broadcast("typing", session.display_name, exclude=connection_id)

    def stop_typing(self, connection_id: str) -> None:
        with self._lock:
            name = self._typing.pop(connection_id, None)
            if name is None:
                return
            self.outbox.broadcast("stopTyping", name, exclude=connection_id)

    def disconnect(self, connection_id: str) -> None:
        with self._lock:
            typing_name = self._typing.pop(connection_id, None)
            if typing_name is not None:
                self.outbox.broadcast("stopTyping", typing_name, exclude=connection_id)

            session = self._sessions.pop(connection_id, None)
            if session is None:
                return
            now = self._clock()
            self.outbox.broadcast(
                "message",
                system_message(
                    self._next_id(),
                    self.policy.system_author,
                    f"{session.display_name} left the chat",
                    now,
                ),
                exclude=connection_id,
            )
        logger.info("%s left (%s)", session.display_name, connection_id)

    def clear_chat(self, connection_id: str) -> None:
        if not self.policy.allow_clear:
            return
        with self._lock:
            session = self._sessions.get(connection_id)
            if session is None:
                return
            self._history.clear()
            self.outbox.broadcast("chatCleared", None)
        logger.info("History cleared by %s", session.display_name)

    def evict_stale(self) -> int:
        """Drop messages past the retention window. Returns how many were dropped."""
        with self._lock:
            return self._evict_stale(self._clock())

    # --------- read accessors ----------
    def history(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [m.to_dict() for m in self._history]

    def get_message(self, message_id: str) -> Optional[ChatMessage]:
        with self._lock:
            return self._find(message_id)

    def online_users(self) -> List[str]:
        with self._lock:
            return sorted(s.display_name for s in self._sessions.values())

    def typing_users(self) -> List[str]:
        with self._lock:
            return sorted(self._typing.values())

    def is_typing(self, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._typing

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "online": len(self._sessions),
                "users": self.online_users(),
                "typing": self.typing_users(),
                "messages": len(self._history),
                "capacity": self.policy.capacity,
                "retention_seconds": self.policy.retention_seconds,
            }

    # --------- internals ----------
    def _next_id(self) -> str:
        return f"{next(self._seq)}-{uuid.uuid4().hex[:8]}"

    def _find(self, message_id: str) -> Optional[ChatMessage]:
        for m in self._history:
            if m.id == message_id:
                return m
        return None

    def _evict_stale(self, now: float) -> int:
        window = self.policy.retention_seconds
        kept = [m for m in self._history if m.age(now) < window]
        dropped = len(self._history) - len(kept)
        if dropped:
            self._history = deque(kept, maxlen=self.policy.capacity)
            logger.debug("Evicted %d stale message(s)", dropped)
        return dropped
