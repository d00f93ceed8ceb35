from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from scenehost.core.channel import SceneChannel
from scenehost.core.transport import MessagePort

logger = logging.getLogger(__name__)

DEFAULT_ATTACH_TIMEOUT_S = 10.0


class Sandbox(Protocol):
    """An isolated execution context supplied by the host environment."""

    url: str | None

    async def wait_for_transport(self) -> MessagePort | None:  # pragma: no cover
        ...

    def release(self) -> None:  # pragma: no cover
        ...


class SandboxFactory(Protocol):
    def create(self, reference: str) -> Sandbox:  # pragma: no cover
        ...


class LoaderEvent(StrEnum):
    load_started = "load-started"
    prepare = "prepare"
    error = "error"


@dataclass(frozen=True, slots=True)
class LoadStartedEvent:
    reference: str | None
    context: Any


@dataclass(frozen=True, slots=True)
class PrepareEvent:
    """Handed to whoever activates a freshly attached unit.

    - `resolve(awaitable)`: pass in the activation work; the loader watches it.
    - `ready()`: True only while this unit is the current one. The first True also
      swaps the unit in (it becomes active and every other unit is purged).
    """

    context: Any
    control: SceneChannel
    resolve: Callable[[Awaitable[object]], None]
    ready: Callable[[], bool]


@dataclass(frozen=True, slots=True)
class LoaderErrorEvent:
    error: BaseException
    context: Any


Listener = Callable[[Any], object]


class ContentUnit:
    """One sandboxed scene instance. Never reused across loads."""

    def __init__(self, *, reference: str | None, context: Any, token: int) -> None:
        self.reference = reference
        self.context = context
        self.token = token
        self.channel = SceneChannel()
        self.sandbox: Sandbox | None = None
        self.settled: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self.released = False
        self._timers: list[asyncio.Future[Any]] = []

    @property
    def attached(self) -> bool:
        return self.channel.is_attached

    def track(self, fut: asyncio.Future[Any]) -> None:
        self._timers.append(fut)

    def settle(self, ok: bool) -> None:
        if not self.settled.done():
            self.settled.set_result(ok)

    def supersede(self) -> None:
        self.channel.mark_superseded()
        self.settle(False)

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        self.channel.detach()
        for fut in self._timers:
            if not fut.done():
                fut.cancel()
        self._timers.clear()
        if self.sandbox is not None:
            self.sandbox.release()
        self.settle(False)

    def __repr__(self) -> str:
        return f"<ContentUnit #{self.token} {self.reference!r} attached={self.attached} released={self.released}>"


class SceneLoader:
    """Owns creation, supersede, and purge of sandboxed scenes.

    Contract:
      - `await load(reference, context)` creates a new unit and makes it current at
        once; any previous unit stops being current in the same step. Resolves True
        when the unit is swapped in, False if it was superseded (or never swapped in).
      - at most one unit is current at any time, and only the loader changes that.
      - `purge()` releases every non-current unit; always safe to call.

    Listeners are plain callables registered per `LoaderEvent`.
    """

    def __init__(self, sandboxes: SandboxFactory, *, attach_timeout_s: float = DEFAULT_ATTACH_TIMEOUT_S) -> None:
        self._sandboxes = sandboxes
        self._attach_timeout_s = attach_timeout_s
        self._listeners: dict[LoaderEvent, list[Listener]] = defaultdict(list)
        self._units: list[ContentUnit] = []
        self._current: ContentUnit | None = None
        self._active: ContentUnit | None = None
        self._generation = 0
        self._activations: set[asyncio.Future[object]] = set()

    @property
    def reference(self) -> str | None:
        return self._current.reference if self._current is not None else None

    @property
    def current_unit(self) -> ContentUnit | None:
        return self._current

    @property
    def active_unit(self) -> ContentUnit | None:
        return self._active

    @property
    def units(self) -> tuple[ContentUnit, ...]:
        return tuple(self._units)

    def add_listener(self, event: LoaderEvent, fn: Listener) -> None:
        self._listeners[event].append(fn)

    def remove_listener(self, event: LoaderEvent, fn: Listener) -> None:
        listeners = self._listeners.get(event)
        if listeners and fn in listeners:
            listeners.remove(fn)

    def is_current(self, unit: ContentUnit) -> bool:
        return unit is self._current and unit.token == self._generation and not unit.released

    async def load(self, reference: str | None, context: Any = None) -> bool:
        # Empty units (None) always reload: their context is what differs.
        if reference is not None and reference == self.reference:
            return False

        unit = self._begin(reference, context)
        self._emit(LoaderEvent.load_started, LoadStartedEvent(reference=reference, context=context))
        if not self.is_current(unit):
            return False

        await self._attach(unit)
        if not self.is_current(unit):
            logger.debug("load superseded during attach: %r", unit)
            return False

        self._emit_prepare(unit)
        return await unit.settled

    def purge(self) -> int:
        stale = [u for u in self._units if u is not self._current]
        if not stale:
            return 0
        for unit in stale:
            unit.release()
        self._units = [u for u in self._units if u is self._current]
        if self._active is not None and self._active.released:
            self._active = None
        logger.debug("purged %d unit(s)", len(stale))
        return len(stale)

    def shutdown(self) -> None:
        self._generation += 1
        self._current = None
        self.purge()

    def _begin(self, reference: str | None, context: Any) -> ContentUnit:
        self._generation += 1
        unit = ContentUnit(reference=reference, context=context, token=self._generation)
        previous, self._current = self._current, unit
        if previous is not None:
            previous.supersede()
        self._units.append(unit)
        return unit

    async def _attach(self, unit: ContentUnit) -> MessagePort | None:
        if unit.reference is None:
            return None

        try:
            unit.sandbox = self._sandboxes.create(unit.reference)
        except Exception:
            # Missing content, not a loader failure.
            logger.exception("could not create sandbox for %s", unit.reference)
            return None

        attach = asyncio.ensure_future(unit.sandbox.wait_for_transport())
        unit.track(attach)
        done, _ = await asyncio.wait(
            {attach, unit.settled},
            timeout=self._attach_timeout_s,
            return_when=asyncio.FIRST_COMPLETED,
        )

        port: MessagePort | None = None
        if attach in done and not attach.cancelled():
            exc = attach.exception()
            if exc is not None:
                logger.warning("sandbox for %s failed before attaching: %r", unit.reference, exc)
            else:
                port = attach.result()
        else:
            attach.cancel()
            if not unit.settled.done():
                logger.warning("transport never attached for %s", unit.reference)

        if port is None:
            return None
        if unit.released:
            port.close()
            return None
        unit.channel.attach_port(port)
        return port

    def _emit_prepare(self, unit: ContentUnit) -> None:
        resolved = False

        def _resolve(aw: Awaitable[object]) -> None:
            nonlocal resolved
            if resolved:
                logger.warning("prepare for %r resolved twice; ignoring", unit)
                return
            resolved = True
            task = asyncio.ensure_future(aw)
            self._activations.add(task)
            task.add_done_callback(lambda t: self._activation_done(unit, t))

        def _ready() -> bool:
            return self._swap_in(unit)

        listeners = list(self._listeners[LoaderEvent.prepare])
        if not listeners:
            _ready()
            return
        event = PrepareEvent(context=unit.context, control=unit.channel, resolve=_resolve, ready=_ready)
        for fn in listeners:
            fn(event)

    def _swap_in(self, unit: ContentUnit) -> bool:
        if not self.is_current(unit):
            return False
        if self._active is not unit:
            self._active = unit
            self.purge()
            unit.settle(True)
        return True

    def _activation_done(self, unit: ContentUnit, task: asyncio.Future[object]) -> None:
        self._activations.discard(task)
        if task.cancelled():
            unit.settle(False)
            return
        exc = task.exception()
        if exc is None:
            unit.settle(False)
            return
        if not self.is_current(unit):
            logger.debug("discarding failure from superseded unit %r: %r", unit, exc)
            return
        logger.error("scene %r failed: %r", unit.reference, exc)
        unit.settle(False)
        self._emit(LoaderEvent.error, LoaderErrorEvent(error=exc, context=unit.context))

    def _emit(self, event: LoaderEvent, payload: Any) -> None:
        for fn in list(self._listeners[event]):
            fn(payload)
