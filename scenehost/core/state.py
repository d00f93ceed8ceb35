from __future__ import annotations

import dataclasses
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from scenehost.core.channel import SceneChannel

Status = Literal["", "paused", "restart", "gameover"]
Subscriber = Callable[["HostState"], object]


@dataclass(frozen=True, slots=True)
class HostState:
    """Snapshot of the process-wide shell state.

    - `control`: channel of the active scene, or None while loading / when the
      active scene has no transport.
    - `status`: one-shot `restart` is cleared by whoever consumes it.
    - `orientation`: device orientation; `scene_orientation`: what the scene wants.
    """

    version: int = 0
    status: Status = ""
    control: SceneChannel | None = None
    score: dict[str, Any] = field(default_factory=dict)
    hidden: bool = False
    orientation: str | None = None
    scene_orientation: str | None = None
    scene_has_pause: bool = False
    mini: bool = True

    @property
    def orientation_change_needed(self) -> bool:
        # Only if both sides have an explicit orientation and they differ.
        return bool(self.scene_orientation and self.orientation and self.scene_orientation != self.orientation)


class StateStore:
    """Observable holder for `HostState`.

    `set_state(**changes)` swaps in a new snapshot and synchronously notifies every
    subscriber in registration order. A subscriber may call `set_state` itself; the
    change is folded into the snapshot handed to later subscribers of the same pass
    rather than starting a nested pass.
    """

    def __init__(self, initial: HostState | None = None) -> None:
        self._state = initial or HostState()
        self._subscribers: list[Subscriber] = []
        self._notifying = False

    def get_state(self) -> HostState:
        return self._state

    def set_state(self, **changes: Any) -> HostState:
        if "version" in changes:
            raise ValueError("version is managed by the store")
        self._state = dataclasses.replace(self._state, version=self._state.version + 1, **changes)
        if not self._notifying:
            self._notify()
        return self._state

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        """Register `fn`, call it once with the current snapshot, return an unsubscribe callable."""

        self._subscribers.append(fn)
        fn(self._state)

        def _unsubscribe() -> None:
            if fn in self._subscribers:
                self._subscribers.remove(fn)

        return _unsubscribe

    def _notify(self) -> None:
        self._notifying = True
        try:
            for fn in list(self._subscribers):
                fn(self._state)
        finally:
            self._notifying = False
