from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from urllib.parse import urlencode
from uuid import uuid4

from scenehost.core.transport import MessagePort, port_pair

logger = logging.getLogger(__name__)

SceneMain = Callable[[MessagePort], Awaitable[None]]


class InProcessSandbox:
    """Runs a scene coroutine in-process, connected through a port pair.

    A reference with no registered scene behaves like a 404: no transport ever attaches.
    """

    def __init__(self, reference: str, main: SceneMain | None) -> None:
        self.reference = reference
        self.url: str | None = reference
        self._main = main
        self._port: MessagePort | None = None
        self._task: asyncio.Task[None] | None = None

    async def wait_for_transport(self) -> MessagePort | None:
        if self._main is None:
            logger.warning("no scene registered for %s", self.reference)
            return None
        host_end, scene_end = port_pair()
        self._port = host_end
        self._task = asyncio.create_task(self._run(scene_end))
        return host_end

    async def _run(self, port: MessagePort) -> None:
        assert self._main is not None
        try:
            await self._main(port)
        except asyncio.CancelledError:
            raise
        except Exception:
            # A crashed scene looks like a closed transport to the host.
            logger.exception("scene %s crashed", self.reference)
        finally:
            port.close()

    def release(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self._port is not None:
            self._port.close()


class InProcessSandboxFactory:
    def __init__(self, scenes: Mapping[str, SceneMain] | None = None) -> None:
        self._scenes: dict[str, SceneMain] = dict(scenes or {})

    def register(self, reference: str, main: SceneMain) -> None:
        self._scenes[reference] = main

    def create(self, reference: str) -> InProcessSandbox:
        return InProcessSandbox(reference, self._scenes.get(reference))


class RemoteSandbox:
    """A scene loaded elsewhere (e.g. a browser frame) that dials back over a WebSocket.

    The frame is pointed at `url`; its transport arrives via `RemoteSandboxFactory.attach`.
    """

    def __init__(self, factory: RemoteSandboxFactory, unit_id: str, url: str) -> None:
        self.unit_id = unit_id
        self.url: str | None = url
        self._factory = factory
        self._port: MessagePort | None = None
        self._future: asyncio.Future[MessagePort | None] = asyncio.get_running_loop().create_future()

    async def wait_for_transport(self) -> MessagePort | None:
        return await self._future

    def attach(self, port: MessagePort) -> bool:
        if self._future.done():
            return False
        self._port = port
        self._future.set_result(port)
        return True

    def release(self) -> None:
        self._factory.forget(self.unit_id)
        if not self._future.done():
            self._future.cancel()
        if self._port is not None:
            self._port.close()


class RemoteSandboxFactory:
    def __init__(self, *, query_param: str = "unit") -> None:
        self._query_param = query_param
        self._pending: dict[str, RemoteSandbox] = {}

    @property
    def pending_ids(self) -> list[str]:
        return list(self._pending)

    def create(self, reference: str) -> RemoteSandbox:
        unit_id = uuid4().hex
        sep = "&" if "?" in reference else "?"
        url = f"{reference}{sep}{urlencode({self._query_param: unit_id})}"
        sandbox = RemoteSandbox(self, unit_id, url)
        self._pending[unit_id] = sandbox
        return sandbox

    def attach(self, unit_id: str, port: MessagePort) -> bool:
        """Hand an incoming transport to its sandbox. False if the unit is unknown or gone."""

        sandbox = self._pending.get(unit_id)
        if sandbox is None:
            return False
        return sandbox.attach(port)

    def forget(self, unit_id: str) -> None:
        self._pending.pop(unit_id, None)
