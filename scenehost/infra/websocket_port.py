from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from scenehost.core.protocol import MessageType
from scenehost.core.transport import MessagePort

logger = logging.getLogger(__name__)

_CLOSE = object()


class ReplyPort(MessagePort):
    """Stand-in for a response port a remote scene named in a `preload` request.

    Ports can't travel over JSON, so replies are wrapped in a `port` frame on the
    parent socket.
    """

    def __init__(self, parent: WebSocketPort, port_id: str) -> None:
        super().__init__()
        self.port_id = port_id
        self._parent = parent

    def _send(self, message: Any) -> None:
        self._parent.post_message({"type": MessageType.port.value, "payload": {"port": self.port_id, "data": message}})


class WebSocketPort(MessagePort):
    """`MessagePort` over a FastAPI WebSocket.

    Outbound frames are queued and written by a single task so they keep their
    order; `serve()` runs the read loop until the peer disconnects.
    """

    def __init__(self, websocket: WebSocket) -> None:
        super().__init__()
        self._ws = websocket
        self._outbox: asyncio.Queue[Any] = asyncio.Queue()

    async def serve(self) -> None:
        writer = asyncio.create_task(self._drain())
        try:
            while True:
                text = await self._ws.receive_text()
                try:
                    raw = json.loads(text)
                except json.JSONDecodeError:
                    logger.warning("dropping non-JSON scene frame: %.80r", text)
                    continue
                self._dispatch(self._rewrite(raw))
        except WebSocketDisconnect:
            pass
        finally:
            self.close()
            try:
                await asyncio.wait_for(writer, timeout=1.0)
            except asyncio.TimeoutError:
                writer.cancel()

    def _send(self, message: Any) -> None:
        self._outbox.put_nowait(message)

    def _after_close(self) -> None:
        self._outbox.put_nowait(_CLOSE)

    async def _drain(self) -> None:
        while True:
            message = await self._outbox.get()
            try:
                if message is _CLOSE:
                    await self._ws.close()
                    return
                await self._ws.send_json(message)
            except (WebSocketDisconnect, RuntimeError) as e:
                # peer already gone
                logger.debug("scene socket write failed: %r", e)
                return

    def _rewrite(self, raw: Any) -> Any:
        if not isinstance(raw, dict) or raw.get("type") != MessageType.preload.value:
            return raw
        payload = raw.get("payload")
        if isinstance(payload, list) and len(payload) == 3 and isinstance(payload[2], str):
            return {**raw, "payload": [payload[0], payload[1], ReplyPort(self, payload[2])]}
        return raw
