from __future__ import annotations

import asyncio
import logging

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ShellWebSocketHub:
    """In-process WebSocket fan-out of shell state snapshots.

    Contract:
      - `connect(websocket, snapshot)` accepts and immediately sends the current snapshot.
      - `publish(payload)` may be called from synchronous state subscribers; it
        schedules a broadcast on the running loop.

    Payloads should be JSON-serializable dicts.
    """

    def __init__(self) -> None:
        self._conns: set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def connection_count(self) -> int:
        return len(self._conns)

    async def connect(self, websocket: WebSocket, snapshot: dict[str, object]) -> None:
        await websocket.accept()
        async with self._lock:
            self._conns.add(websocket)
        await websocket.send_json(snapshot)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._conns.discard(websocket)

    def publish(self, payload: dict[str, object]) -> None:
        if not self._conns:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.broadcast(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def broadcast(self, payload: dict[str, object]) -> None:
        async with self._lock:
            conns = list(self._conns)

        if not conns:
            return

        dead: list[WebSocket] = []
        for ws in conns:
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append(ws)

        if dead:
            logger.debug("dropping %d dead shell socket(s)", len(dead))
            async with self._lock:
                for ws in dead:
                    self._conns.discard(ws)
