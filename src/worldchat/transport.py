"""WebSocket connection registry that fans room events out to sockets."""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = logging.getLogger(__name__)

# Sentinel telling a writer to close its socket (the client fell too far behind).
_OVERFLOW = object()


class ConnectionHub:
    """Per-connection outbound queues.

    ``send``/``broadcast`` only enqueue, so they never block the room lock.
    A writer task per socket (:meth:`pump`) drains the queue in order, which
    keeps the room's processing order intact on every connection.

    Queues hold at most ``send_queue_size`` envelopes; a connection whose
    queue is full is dropped instead of buffering without limit.
    """

    def __init__(self, send_queue_size: int = 256) -> None:
        if send_queue_size < 1:
            raise ValueError(f"send_queue_size must be >= 1, got {send_queue_size}")
        self.send_queue_size = send_queue_size
        self._queues: Dict[str, asyncio.Queue] = {}
        self._lock = threading.Lock()

    def register(self, connection_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.send_queue_size)
        with self._lock:
            self._queues[connection_id] = queue
        return queue

    def unregister(self, connection_id: str) -> None:
        with self._lock:
            queue = self._queues.pop(connection_id, None)
        if queue is not None:
            # Wake the writer so it can exit.
            _wake(queue, None)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._queues

    def __len__(self) -> int:
        return len(self._queues)

    # --------- outbox ----------
    def send(self, connection_id: str, event: str, data: Any) -> None:
        queue = self._queues.get(connection_id)
        if queue is None:
            return
        self._put(connection_id, queue, {"type": event, "data": data})

    def broadcast(self, event: str, data: Any, exclude: Optional[str] = None) -> None:
        message = {"type": event, "data": data}
        with self._lock:
            targets = [(cid, q) for cid, q in self._queues.items() if cid != exclude]
        for cid, queue in targets:
            self._put(cid, queue, message)

    def _put(self, connection_id: str, queue: asyncio.Queue, message: Dict[str, Any]) -> None:
        try:
            queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(
                "Send queue full (%d), dropping slow connection %s",
                self.send_queue_size,
                connection_id,
            )
            with self._lock:
                if self._queues.get(connection_id) is queue:
                    del self._queues[connection_id]
            _wake(queue, _OVERFLOW)

    # --------- writer ----------
    async def pump(self, connection_id: str, websocket: "WebSocket", queue: asyncio.Queue) -> None:
        """Forward queued envelopes to ``websocket`` until unregistered."""
        while True:
            message = await queue.get()
            if message is None:
                return
            if message is _OVERFLOW:
                try:
                    await websocket.close(code=1008)
                except Exception as e:
                    logger.debug("Closing %s after overflow failed: %s", connection_id, e)
                return
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.warning(
                    "WebSocket send failed, dropping connection %s (%s: %s)",
                    connection_id,
                    message.get("type"),
                    e,
                )
                with self._lock:
                    self._queues.pop(connection_id, None)
                return


def _wake(queue: asyncio.Queue, sentinel: Any) -> None:
    """Replace whatever is pending with ``sentinel`` so the writer stops."""
    while not queue.empty():
        queue.get_nowait()
    queue.put_nowait(sentinel)
