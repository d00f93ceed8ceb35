from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any

from scenehost.core.protocol import MessageType, SceneMessage, make_message, parse_message
from scenehost.core.transport import MessagePort

logger = logging.getLogger(__name__)


class SceneChannel:
    """Typed, pull-style wrapper over one transport endpoint.

    Contract:
      - `send(message)` never blocks; it is dropped once the transport is gone.
      - `next()` yields inbound messages in arrival order, or None once the
        transport has closed (after draining what was already received) or the
        channel has been detached. It never raises for ordinary closure.
      - `is_attached` is True while the owning content unit is the current one.
    """

    def __init__(self, port: MessagePort | None = None) -> None:
        self._port: MessagePort | None = None
        self._inbox: deque[SceneMessage] = deque()
        self._waiters: list[asyncio.Future[None]] = []
        self._attached = True
        self._detached = False
        self._transport_closed = False
        if port is not None:
            self.attach_port(port)

    @property
    def has_transport(self) -> bool:
        return self._port is not None

    @property
    def is_attached(self) -> bool:
        return self._attached

    @property
    def is_open(self) -> bool:
        return self._port is not None and not self._transport_closed and not self._detached

    def attach_port(self, port: MessagePort) -> None:
        if self._port is not None:
            raise ValueError("Channel already has a transport")
        self._port = port
        if self._detached:
            port.close()
            return
        port.start(self._on_message, self._on_close)

    def send(self, message: SceneMessage | MessageType | str, payload: Any = None) -> None:
        if not isinstance(message, SceneMessage):
            message = make_message(message, payload)
        if not self.is_open:
            return
        assert self._port is not None
        self._port.post_message(message.as_wire())

    async def next(self) -> SceneMessage | None:
        if await self.wait_for_message():
            return self._inbox.popleft()
        return None

    async def wait_for_message(self) -> bool:
        """Wait until `next()` can answer without blocking. Consumes nothing.

        True once a message is buffered, False once the channel is closed or detached.
        Safe to abandon mid-wait: a pending call never takes a message from `next()`.
        """

        while True:
            if self._detached:
                return False
            if self._inbox:
                return True
            if self._port is None or self._transport_closed:
                return False
            fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            self._waiters.append(fut)
            try:
                await fut
            finally:
                if fut in self._waiters:
                    self._waiters.remove(fut)

    def mark_superseded(self) -> None:
        """The owning unit is no longer current. Messages keep flowing until `detach`."""

        self._attached = False

    def detach(self) -> None:
        """Release the transport; pending and future `next()` calls resolve to None."""

        if self._detached:
            return
        self._attached = False
        self._detached = True
        self._inbox.clear()
        if self._port is not None:
            self._port.close()
        self._wake()

    def _on_message(self, raw: Any) -> None:
        msg = parse_message(raw)
        if msg is None:
            logger.warning("dropping malformed scene frame: %r", raw)
            return
        self._inbox.append(msg)
        self._wake()

    def _on_close(self) -> None:
        self._transport_closed = True
        self._wake()

    def _wake(self) -> None:
        waiters, self._waiters = self._waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_result(None)
