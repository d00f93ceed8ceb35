from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class AudioBackend(Protocol):
    """The audio subsystem as the scene host sees it."""

    async def preload(self, event: str, progress: ProgressCallback) -> None:  # pragma: no cover
        ...

    def play(self, *args: Any) -> None:  # pragma: no cover
        ...

    def transition_to(self, sound_bank: Sequence[str], volume: float) -> None:  # pragma: no cover
        ...


@dataclass(slots=True)
class SilentAudio:
    """Audio backend that plays nothing but keeps a record of what was asked of it.

    Used when the host runs headless (and by tests).
    """

    preloaded: list[str] = field(default_factory=list)
    played: list[tuple[Any, ...]] = field(default_factory=list)
    sound_bank: list[str] = field(default_factory=list)
    volume: float = 0.0

    async def preload(self, event: str, progress: ProgressCallback) -> None:
        progress(1, 1)
        self.preloaded.append(event)

    def play(self, *args: Any) -> None:
        logger.debug("play %r", args)
        self.played.append(args)

    def transition_to(self, sound_bank: Sequence[str], volume: float) -> None:
        self.sound_bank = list(sound_bank)
        self.volume = volume
