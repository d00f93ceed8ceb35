from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from scenehost.audio import AudioBackend
from scenehost.core.channel import SceneChannel
from scenehost.core.errors import SceneRuntimeError
from scenehost.core.protocol import MessageType
from scenehost.core.state import StateStore
from scenehost.streams import Analytics

logger = logging.getLogger(__name__)

DataWriter = Callable[[dict[str, Any]], None]


def _as_args(payload: Any) -> tuple[Any, ...]:
    if payload is None:
        return ()
    if isinstance(payload, (list, tuple)):
        return tuple(payload)
    return (payload,)


async def run_scene(
    control: SceneChannel,
    *,
    state: StateStore,
    audio: AudioBackend,
    analytics: Analytics,
    write: DataWriter,
) -> None:
    """Dispatch messages from an active scene until its channel closes.

    Stops as soon as the scene is no longer current, so a superseded scene can't
    touch shared state. Raises SceneRuntimeError if the scene reports an error.
    """

    while True:
        op = await control.next()
        if op is None:
            break
        if not control.is_attached:
            logger.debug("scene superseded, runner exiting")
            break

        msg_type = op.type

        if msg_type == MessageType.error:
            raise SceneRuntimeError(op.payload)

        if msg_type == MessageType.play:
            audio.play(*_as_args(op.payload))
            continue

        if msg_type == MessageType.ga:
            analytics.send(*_as_args(op.payload))
            continue

        if msg_type == MessageType.gameover:
            state.set_state(status="gameover")
            continue

        if msg_type == MessageType.score:
            if isinstance(op.payload, dict):
                state.set_state(score=dict(op.payload))
            else:
                logger.warning("ignoring non-object score: %r", op.payload)
            continue

        if msg_type == MessageType.data:
            if isinstance(op.payload, dict):
                write(op.payload)
            else:
                logger.warning("ignoring non-object data: %r", op.payload)
            continue

        logger.debug("running scene got %r", op.as_wire())
