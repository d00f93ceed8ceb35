from __future__ import annotations

import asyncio
from collections.abc import Iterable

from scenehost.core.protocol import MessageType
from scenehost.core.state import HostState, StateStore

KEYCODES: dict[str, int] = {
    " ": 32,
    "PageUp": 33,
    "PageDown": 34,
    "End": 35,
    "Home": 36,
    "Left": 37,
    "Up": 38,
    "Right": 39,
    "Down": 40,
    "ArrowLeft": 37,
    "ArrowUp": 38,
    "ArrowRight": 39,
    "ArrowDown": 40,
}

# Rough gamepad repeat timing; the OS repeat rate isn't observable from here.
INITIAL_REPEAT_S = 0.4
FOLLOWING_REPEAT_S = 0.05


class KeyForwarder:
    """Forwards navigation keys pressed in the shell to the active scene."""

    def __init__(self, state: StateStore) -> None:
        self._state = state

    def key_down(self, key: str) -> bool:
        code = KEYCODES.get(key)
        if not code:
            return False
        control = self._state.get_state().control
        if control is not None:
            control.send(MessageType.keydown, {"key": key, "keyCode": code})
        return True


class GamepadEmulator:
    """Turns held gamepad buttons into keydown/keyup messages with key repeat.

    Repeat tasks belong to this object. They stop whenever the control goes away or
    the page is hidden, but the keys stay held: the next `update` still sends their
    `keyup`, so a scene never sees a key stuck down.
    """

    def __init__(
        self,
        state: StateStore,
        *,
        initial_repeat_s: float = INITIAL_REPEAT_S,
        following_repeat_s: float = FOLLOWING_REPEAT_S,
    ) -> None:
        self._state = state
        self._initial_repeat_s = initial_repeat_s
        self._following_repeat_s = following_repeat_s
        # held key -> its repeat task (None once repeating has stopped)
        self._held: dict[str, asyncio.Task[None] | None] = {}
        self._unsubscribe = state.subscribe(self._on_state)

    @property
    def held(self) -> list[str]:
        return list(self._held)

    @property
    def repeating(self) -> list[str]:
        return [key for key, task in self._held.items() if task is not None and not task.done()]

    def update(self, buttons_down: Iterable[str]) -> None:
        current = self._state.get_state()
        control = current.control
        down: dict[str, None] = {}
        if control is not None and not current.hidden:
            down = dict.fromkeys(k for k in buttons_down if k in KEYCODES)

        for key in down:
            if key in self._held:
                continue
            assert control is not None
            control.send(MessageType.keydown, {"key": key, "keyCode": KEYCODES[key], "repeat": False})
            self._held[key] = asyncio.create_task(self._repeat(key))

        for key in list(self._held):
            if key in down:
                continue
            if control is not None:
                control.send(MessageType.keyup, {"key": key, "keyCode": KEYCODES[key], "repeat": True})
            task = self._held.pop(key)
            if task is not None:
                task.cancel()

    def stop_repeats(self) -> None:
        for key, task in self._held.items():
            if task is not None:
                task.cancel()
                self._held[key] = None

    def close(self) -> None:
        self.stop_repeats()
        self._held.clear()
        self._unsubscribe()

    async def _repeat(self, key: str) -> None:
        await asyncio.sleep(self._initial_repeat_s)
        while True:
            current = self._state.get_state()
            if current.control is None or current.hidden:
                return
            current.control.send(MessageType.keydown, {"key": key, "keyCode": KEYCODES[key], "repeat": True})
            await asyncio.sleep(self._following_repeat_s)

    def _on_state(self, state: HostState) -> None:
        if self._held and (state.control is None or state.hidden):
            self.stop_repeats()
