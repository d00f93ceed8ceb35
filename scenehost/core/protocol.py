from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class MessageType(StrEnum):
    # host -> scene
    data = "data"
    ready = "ready"
    pause = "pause"
    resume = "resume"
    restart = "restart"
    keydown = "keydown"
    keyup = "keyup"

    # scene -> host, during preload
    preload = "preload"
    progress = "progress"
    loaded = "loaded"

    # scene -> host, while running
    play = "play"
    score = "score"
    gameover = "gameover"
    ga = "ga"

    # either direction
    error = "error"

    # host -> remote scene, reply to a preload response port
    port = "port"


class SceneMessage(BaseModel):
    """One frame on a scene channel.

    `type` is kept as a plain string so unknown types survive parsing and can be
    logged by whoever consumes them.
    """

    model_config = ConfigDict(frozen=True)

    type: str
    payload: Any = None

    def as_wire(self) -> dict[str, Any]:
        if self.payload is None:
            return {"type": self.type}
        return {"type": self.type, "payload": self.payload}


class SceneConfig(BaseModel):
    """Configuration a scene reports with its `loaded` message."""

    model_config = ConfigDict(extra="allow")

    sound: list[str] = Field(default_factory=list)
    orientation: Literal["portrait", "landscape"] | None = None
    pause: bool = False
    scroll: bool = False


def make_message(type: MessageType | str, payload: Any = None) -> SceneMessage:
    return SceneMessage(type=str(type), payload=payload)


def parse_message(raw: object) -> SceneMessage | None:
    """Parse an inbound frame, returning None if it isn't a `{type, payload}` object."""

    if isinstance(raw, SceneMessage):
        return raw
    if not isinstance(raw, dict):
        return None
    msg_type = raw.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        return None
    return SceneMessage(type=msg_type, payload=raw.get("payload"))
