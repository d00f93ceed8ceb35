from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

logger = logging.getLogger(__name__)

SceneLoadFn = Callable[[str, dict[str, str]], Awaitable[bool]]


@dataclass(slots=True)
class HistoryEntry:
    scene: str
    data: dict[str, str] = field(default_factory=dict)

    @property
    def url(self) -> str:
        path = f"/{self.scene}" if self.scene else "/"
        if not self.data:
            return path
        return f"{path}?{urlencode(sorted(self.data.items()))}"


def _stringify(data: Mapping[str, Any] | None) -> dict[str, str]:
    return {str(k): str(v) for k, v in (data or {}).items() if v is not None}


class HistoryRouter:
    """Minimal in-memory navigation history.

    `go(scene, data)` records an entry and asks the bound loader to show it;
    `write(payload)` lets the running scene persist its data into the current entry.
    """

    def __init__(self, load_scene: SceneLoadFn | None = None) -> None:
        self._load_scene = load_scene
        self._entries: list[HistoryEntry] = []

    def bind(self, load_scene: SceneLoadFn) -> None:
        self._load_scene = load_scene

    @property
    def current(self) -> HistoryEntry | None:
        return self._entries[-1] if self._entries else None

    @property
    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    @property
    def url(self) -> str:
        return self.current.url if self.current is not None else "/"

    async def go(self, scene: str, data: Mapping[str, Any] | None = None) -> bool:
        if self._load_scene is None:
            raise RuntimeError("HistoryRouter is not bound to a scene loader")
        entry = HistoryEntry(scene=scene, data=_stringify(data))
        self._entries.append(entry)
        return await self._load_scene(entry.scene, dict(entry.data))

    def write(self, payload: Mapping[str, Any]) -> None:
        entry = self.current
        if entry is None:
            logger.debug("no history entry to write %r into", payload)
            return
        for key, value in payload.items():
            if value is None:
                entry.data.pop(str(key), None)
            else:
                entry.data[str(key)] = str(value)
