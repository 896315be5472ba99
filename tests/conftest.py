"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, List, Optional, Tuple

import pytest

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from worldchat.models import RoomPolicy  # noqa: E402
from worldchat.room import ChatRoom  # noqa: E402


class RecordingOutbox:
    """Outbox that records deliveries per connection.

    Connections must be ``connect``-ed to receive broadcasts, mirroring a
    transport where every open socket gets room-wide events.
    """

    def __init__(self) -> None:
        self.connections: List[str] = []
        self.log: List[Tuple[str, str, Any]] = []  # (target, event, data)

    def connect(self, *connection_ids: str) -> None:
        self.connections.extend(connection_ids)

    def drop(self, connection_id: str) -> None:
        self.connections.remove(connection_id)

    def send(self, connection_id: str, event: str, data: Any) -> None:
        self.log.append((connection_id, event, data))

    def broadcast(self, event: str, data: Any, exclude: Optional[str] = None) -> None:
        for cid in self.connections:
            if cid != exclude:
                self.log.append((cid, event, data))

    def received(self, connection_id: str, event: Optional[str] = None) -> List[Any]:
        return [d for (c, e, d) in self.log if c == connection_id and (event is None or e == event)]

    def clear(self) -> None:
        self.log.clear()


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="function")
def outbox() -> RecordingOutbox:
    return RecordingOutbox()


@pytest.fixture(scope="function")
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="function")
def make_room(outbox: RecordingOutbox, clock: FakeClock):
    """Factory for a room wired to the recording outbox and fake clock."""
    def _make(**policy: Any) -> ChatRoom:
        return ChatRoom(outbox, RoomPolicy(**policy), clock=clock)
    return _make


@pytest.fixture(scope="function")
def room(make_room) -> ChatRoom:
    return make_room(capacity=10)


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run with a clean environment (no leftover vars)."""
    import os

    for var in list(os.environ):
        if var == "WORLDCHAT_CONFIG" or var.startswith("WORLDCHAT__"):
            monkeypatch.delenv(var, raising=False)
    yield
