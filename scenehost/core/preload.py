from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from scenehost.audio import AudioBackend
from scenehost.core.channel import SceneChannel
from scenehost.core.errors import PreloadError, UnsupportedPreloadError
from scenehost.core.protocol import MessageType
from scenehost.core.timeouts import orphan, timeout_race
from scenehost.core.transport import MessagePort
from scenehost.fsm import PreloadFSM

logger = logging.getLogger(__name__)

DEFAULT_PRELOAD_TIMEOUT_S = 10.0
PRELOAD_SOUNDS = "sounds"


@dataclass(slots=True)
class PreloadSession:
    """Transient bookkeeping for one scene's preload handshake."""

    timeout_s: float
    tasks: list[asyncio.Future[None]] = field(default_factory=list)
    config: dict[str, Any] = field(default_factory=dict)
    fsm: PreloadFSM = field(default_factory=PreloadFSM)

    def abandon_unfinished(self) -> None:
        for task in self.tasks:
            if not task.done():
                orphan(task)


async def preload_sounds(audio: AudioBackend, event: str, port: MessagePort) -> None:
    """Preload one sound event, reporting progress and completion (None) on `port`."""

    def _progress(done: int, total: int) -> None:
        port.post_message({"done": done, "total": total})

    await audio.preload(event, _progress)
    port.post_message(None)


def _unpack_preload(payload: Any) -> tuple[str, str, MessagePort]:
    if not isinstance(payload, Sequence) or isinstance(payload, str) or len(payload) != 3:
        raise PreloadError(f"malformed preload payload: {payload!r}")
    kind, event, port = payload
    if kind != PRELOAD_SOUNDS:
        raise UnsupportedPreloadError(f"unsupported preload: {kind}")
    if not isinstance(port, MessagePort):
        raise PreloadError(f"preload for {event!r} has no response port")
    return kind, str(event), port


async def prepare(
    control: SceneChannel,
    data: dict[str, Any],
    *,
    audio: AudioBackend,
    timeout_s: float = DEFAULT_PRELOAD_TIMEOUT_S,
) -> dict[str, Any]:
    """Run the preload handshake with a scene that isn't visible yet.

    Returns the configuration the scene reported with `loaded`. A scene with no
    transport needs no preload and yields `{}`. If the scene goes quiet or closes
    before `loaded`, whatever was collected so far is returned; unfinished preload
    work is abandoned, not awaited.

    Raises PreloadError if the scene reports an error or asks for something we
    can't preload.
    """

    if not control.has_transport:
        return {}

    session = PreloadSession(timeout_s=timeout_s)
    race = timeout_race(timeout_s)

    control.send(MessageType.data, data)

    try:
        while True:
            # Race the wait, not the pull: an abandoned wait must not eat a message.
            has_message = await race(control.wait_for_message())
            op = await control.next() if has_message else None
            if op is None:
                # closed or timed out; not an error
                session.fsm.expired()
                logger.info("preload ended without loaded (%s)", "closed" if not control.is_open else "timeout")
                break

            if op.type == MessageType.error:
                session.fsm.errored()
                raise PreloadError(op.payload)

            if op.type == MessageType.progress:
                try:
                    logger.debug("got preload %.2f%%", float(op.payload) * 100)
                except (TypeError, ValueError):
                    logger.debug("got preload progress %r", op.payload)
                continue

            if op.type == MessageType.preload:
                try:
                    _, event, port = _unpack_preload(op.payload)
                except PreloadError:
                    session.fsm.errored()
                    raise
                session.fsm.preload_requested()
                session.tasks.append(asyncio.ensure_future(preload_sounds(audio, event, port)))
                continue

            if op.type == MessageType.loaded:
                try:
                    gathered = await race(asyncio.gather(*session.tasks))
                except Exception as e:
                    session.fsm.errored()
                    raise PreloadError(f"preload failed: {e}") from e
                if gathered is None and session.tasks:
                    logger.warning("preload deadline passed with %d sub-task(s) unfinished", len(session.tasks))
                if isinstance(op.payload, dict):
                    session.config.update(op.payload)
                elif op.payload is not None:
                    logger.warning("ignoring non-object loaded payload: %r", op.payload)
                session.fsm.loaded_received()
                break

            logger.warning("got unhandled preload message: %r", op.as_wire())
    finally:
        session.abandon_unfinished()

    return dict(session.config)
