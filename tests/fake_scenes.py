"""Scripted in-process scenes and host builders shared by the tests."""
from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

from scenehost.audio import SilentAudio
from scenehost.core.channel import SceneChannel
from scenehost.core.protocol import MessageType, SceneMessage
from scenehost.core.transport import MessagePort, port_pair
from scenehost.sandbox import InProcessSandboxFactory
from scenehost.settings import Settings
from scenehost.singleton import Host, build_host


class RecordingAnalytics:
    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []

    def send(self, *args: Any) -> None:
        self.calls.append(args)


class FakeScene:
    """A scene that answers the preload handshake from a script, then records what it gets."""

    def __init__(
        self,
        *,
        sounds: Iterable[str] = (),
        loaded: dict[str, Any] | None = None,
        send_loaded: bool = True,
        preload_error: str | None = None,
    ) -> None:
        self.sounds = list(sounds)
        self.loaded = loaded if loaded is not None else {}
        self.send_loaded = send_loaded
        self.preload_error = preload_error
        self.received: list[SceneMessage] = []
        self.preload_replies: list[Any] = []
        self.channel: SceneChannel | None = None
        self.runs = 0

    @property
    def received_types(self) -> list[str]:
        return [m.type for m in self.received]

    async def __call__(self, port: MessagePort) -> None:
        self.runs += 1
        channel = self.channel = SceneChannel(port)

        first = await channel.next()
        if first is None:
            return
        self.received.append(first)

        if self.preload_error is not None:
            channel.send(MessageType.error, self.preload_error)
        else:
            for event in self.sounds:
                mine, theirs = port_pair()
                mine.start(self.preload_replies.append)
                channel.send(MessageType.preload, ["sounds", event, theirs])
            if self.send_loaded:
                channel.send(MessageType.loaded, self.loaded)

        while True:
            msg = await channel.next()
            if msg is None:
                return
            self.received.append(msg)

    def send(self, type: MessageType | str, payload: Any = None) -> None:
        assert self.channel is not None, "scene not running"
        self.channel.send(type, payload)


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_host(scenes: dict[str, Any] | None = None, **settings: Any) -> tuple[Host, RecordingAnalytics]:
    defaults: dict[str, Any] = {"preload_timeout_s": 1.0, "attach_timeout_s": 1.0}
    defaults.update(settings)
    analytics = RecordingAnalytics()
    host = build_host(
        settings=Settings(**defaults),
        sandboxes=InProcessSandboxFactory({f"/scenes/{name}/": scene for name, scene in (scenes or {}).items()}),
        audio=SilentAudio(),
        analytics=analytics,
        titles={"a": "Scene A"},
    )
    return host, analytics
