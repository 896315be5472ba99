"""Data model for the world chat room."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional


def clock_time(ts: float) -> str:
    """Human-readable local time of day for display (``HH:MM:SS``)."""
    return datetime.fromtimestamp(ts).strftime("%H:%M:%S")


@dataclass
class RoomPolicy:
    """Controls how room history is bounded and which payloads are accepted."""
    capacity: int = 50                   # max messages kept, also the join slice
    retention_seconds: float = 86400.0   # messages older than this are dropped
    system_author: str = "System"
    max_text_chars: int = 2000
    max_image_chars: int = 2_000_000     # inline data URLs can be large
    max_name_chars: int = 32
    max_reaction_chars: int = 16
    allowed_reactions: Optional[FrozenSet[str]] = None
    allow_clear: bool = True


@dataclass
class ChatMessage:
    """A message in the room history.

    Only ``reactions`` changes after the message is appended.
    """

    id: str
    author: str
    text: str = ""
    image: Optional[str] = None
    reply_to: Optional[str] = None
    reactions: Dict[str, int] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    def age(self, now: float) -> float:
        return now - self.created_at

    def to_dict(self) -> Dict[str, Any]:
        """Wire form (camelCase, ``createdAt`` in epoch milliseconds)."""
        return {
            "id": self.id,
            "author": self.author,
            "text": self.text,
            "image": self.image,
            "replyTo": self.reply_to,
            "reactions": dict(self.reactions),
            "createdAt": int(self.created_at * 1000),
            "time": clock_time(self.created_at),
        }


@dataclass
class Session:
    """A joined connection."""

    connection_id: str
    display_name: str
    joined_at: float = field(default_factory=time.time)


def system_message(message_id: str, author: str, text: str, now: float) -> Dict[str, Any]:
    """Wire form of a join/leave announcement (never stored in history)."""
    return {
        "id": message_id,
        "author": author,
        "text": text,
        "image": None,
        "replyTo": None,
        "reactions": {},
        "createdAt": int(now * 1000),
        "time": clock_time(now),
        "system": True,
    }
