from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

MessageListener = Callable[[Any], None]
CloseListener = Callable[[], None]


class MessagePort:
    """One end of a bidirectional message transport.

    Contract:
      - `post_message(obj)` never blocks; posting on a closed port is dropped.
      - `start(on_message, on_close)` installs the consumer. Messages received before
        `start` are buffered and replayed in arrival order.
      - `close()` is idempotent.

    Subclasses implement `_send`; inbound frames are fed through `_dispatch`.
    """

    def __init__(self) -> None:
        self._on_message: MessageListener | None = None
        self._on_close: CloseListener | None = None
        self._backlog: deque[Any] = deque()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self, on_message: MessageListener, on_close: CloseListener | None = None) -> None:
        self._on_message = on_message
        self._on_close = on_close
        while self._backlog:
            on_message(self._backlog.popleft())
        if self._closed and on_close is not None:
            on_close()

    def post_message(self, message: Any) -> None:
        if self._closed:
            logger.debug("dropping message on closed port: %r", message)
            return
        self._send(message)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._after_close()
        if self._on_close is not None:
            self._on_close()

    def _send(self, message: Any) -> None:  # pragma: no cover
        raise NotImplementedError

    def _after_close(self) -> None:
        pass

    def _dispatch(self, message: Any) -> None:
        if self._closed:
            return
        if self._on_message is None:
            self._backlog.append(message)
            return
        self._on_message(message)


class MemoryPort(MessagePort):
    """In-process port; see `port_pair`."""

    def __init__(self) -> None:
        super().__init__()
        self._peer: MemoryPort | None = None

    def _send(self, message: Any) -> None:
        if self._peer is not None:
            self._peer._dispatch(message)

    def _after_close(self) -> None:
        peer, self._peer = self._peer, None
        if peer is not None:
            peer._peer = None
            peer.close()


def port_pair() -> tuple[MemoryPort, MemoryPort]:
    """Create two linked in-process ports. Delivery is synchronous and FIFO."""

    a, b = MemoryPort(), MemoryPort()
    a._peer = b
    b._peer = a
    return a, b
