"""Real-time session registry.

Each live connection of a user is a ``SessionHandle``. Pushing onto a handle
never blocks the caller: websocket handles hand the payload to their event
loop and a writer task drains it.
"""

import asyncio
import json
import logging
import threading
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class SessionClosed(Exception):
    """Raised when pushing to a handle whose connection is gone."""


class SessionHandle:
    """One real-time connection of a user."""

    def push(self, payload: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class WebSocketSession(SessionHandle):
    """Session backed by a FastAPI WebSocket.

    Must be created inside the websocket's event loop. ``push`` is safe to
    call from any thread.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._closed = False

    def push(self, payload: str) -> None:
        if self._closed or self._loop.is_closed():
            raise SessionClosed()
        self._loop.call_soon_threadsafe(self._queue.put_nowait, payload)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, None)

    async def writer(self) -> None:
        """Drain queued payloads onto the socket until closed."""
        while True:
            payload = await self._queue.get()
            if payload is None:
                return
            try:
                await self.websocket.send_text(payload)
            except Exception:  # noqa: BLE001 - connection dropped mid-send
                logger.info("WS send failed, closing writer")
                self._closed = True
                return


def encode_event(event: str, data: Any) -> str:
    return json.dumps({"event": event, "data": data}, default=str)


class ConnectionManager:
    """Tracks active session handles keyed by user_id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # user_id -> set of active session handles
        self._connections: dict[int, set[SessionHandle]] = {}

    def register(self, user_id: int, handle: SessionHandle) -> None:
        with self._lock:
            self._connections.setdefault(user_id, set()).add(handle)
        logger.info("WS connected: user=%s (total=%s)", user_id, self.total_connections)

    def unregister(self, user_id: int, handle: SessionHandle) -> None:
        with self._lock:
            conns = self._connections.get(user_id)
            if conns:
                conns.discard(handle)
                if not conns:
                    del self._connections[user_id]
        logger.info("WS disconnected: user=%s (total=%s)", user_id, self.total_connections)

    def is_connected(self, user_id: int) -> bool:
        with self._lock:
            return bool(self._connections.get(user_id))

    def send_to_user(self, user_id: int, event: str, data: Any) -> int:
        """Push event to all sessions of a user. Returns sessions reached."""
        with self._lock:
            conns = list(self._connections.get(user_id, ()))
        if not conns:
            return 0
        payload = encode_event(event, data)
        delivered = 0
        dead: list[SessionHandle] = []
        for handle in conns:
            try:
                handle.push(payload)
                delivered += 1
            except Exception:  # noqa: BLE001 - one bad session must not block the rest
                dead.append(handle)
        for handle in dead:
            self.unregister(user_id, handle)
        return delivered

    @property
    def total_connections(self) -> int:
        with self._lock:
            return sum(len(c) for c in self._connections.values())
