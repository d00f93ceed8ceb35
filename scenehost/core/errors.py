from __future__ import annotations

from typing import Any


class SceneHostError(RuntimeError):
    pass


class PreloadError(SceneHostError):
    """A scene reported (or caused) a failure while negotiating its preload."""

    def __init__(self, payload: Any) -> None:
        super().__init__(str(payload))
        self.payload = payload


class UnsupportedPreloadError(PreloadError):
    pass


class SceneRuntimeError(SceneHostError):
    """An active scene sent an `error` message."""

    def __init__(self, payload: Any) -> None:
        super().__init__(str(payload))
        self.payload = payload
