from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from scenehost.audio import AudioBackend
from scenehost.core.loader import LoadStartedEvent, LoaderErrorEvent, LoaderEvent, PrepareEvent, SceneLoader
from scenehost.core.preload import prepare
from scenehost.core.protocol import MessageType, SceneConfig
from scenehost.core.state import HostState, StateStore
from scenehost.core.timeouts import orphan
from scenehost.keys import GamepadEmulator, KeyForwarder
from scenehost.runner import DataWriter, run_scene
from scenehost.settings import Settings
from scenehost.streams import Analytics

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Scene Host"

_UNSET = object()


@dataclass(frozen=True, slots=True)
class SceneContext:
    """The opaque context a shell attaches to every load."""

    scene_name: str | None
    data: dict[str, Any] = field(default_factory=dict)
    locked: bool = False
    error: str | None = None


@dataclass(slots=True)
class ShellView:
    """What the chrome should currently show. Recomputed on every state change."""

    title: str = DEFAULT_TITLE
    mini: bool = True
    nav_open: bool = False
    disabled: bool = False
    tilt: bool = False
    orientation_hint: str | None = None
    action: str | None = None
    badge: dict[str, Any] = field(default_factory=dict)
    error_code: str | None = None
    error_text: str = ""
    locked: bool = False


class Interlude:
    """The curtain shown while scenes are swapped.

    `begin()` raises it without waiting; `show()` raises it and waits until it fully
    covers the old scene.
    """

    def __init__(self, transition_s: float = 0.0) -> None:
        self.active = False
        self._transition_s = transition_s
        self._started_at = 0.0

    def begin(self) -> None:
        if not self.active:
            self.active = True
            self._started_at = time.monotonic()

    async def show(self) -> None:
        self.begin()
        remaining = self._started_at + self._transition_s - time.monotonic()
        if remaining > 0:
            await asyncio.sleep(remaining)

    def hide(self) -> None:
        self.active = False


def _log_write(payload: dict[str, Any]) -> None:
    logger.debug("scene data %r", payload)


class Shell:
    """Wires the loader, shared state, and collaborators into one scene host.

    Reacts to loader events, activates scenes, and turns shared state into the
    `view` the chrome renders plus pause/resume/restart messages for the scene.
    """

    def __init__(
        self,
        *,
        loader: SceneLoader,
        state: StateStore,
        audio: AudioBackend,
        analytics: Analytics,
        write: DataWriter | None = None,
        settings: Settings | None = None,
        titles: Mapping[str, str] | None = None,
        interlude: Interlude | None = None,
    ) -> None:
        self.loader = loader
        self.state = state
        self.audio = audio
        self.analytics = analytics
        self.settings = settings or Settings()
        self.view = ShellView()
        self.interlude = interlude or Interlude(self.settings.interlude_s)
        self._write: DataWriter = write or _log_write
        self._titles = dict(titles or {})
        self._loaded_scene: Any = _UNSET
        # The loaded scene failed and the error scene replaced it; asking again retries.
        self._loaded_failed = False

        self.keys = KeyForwarder(state)
        self.gamepad = GamepadEmulator(state)

        loader.add_listener(LoaderEvent.load_started, self._on_load_started)
        loader.add_listener(LoaderEvent.error, self._on_error)
        loader.add_listener(LoaderEvent.prepare, self._on_prepare)
        state.subscribe(self._render)

    @property
    def loaded_scene(self) -> str | None:
        return None if self._loaded_scene is _UNSET else self._loaded_scene

    async def load_scene(self, scene_name: str | None, data: Mapping[str, Any] | None = None) -> bool:
        if scene_name == self._loaded_scene and not self._loaded_failed:
            return False
        self._loaded_failed = False

        title = self._titles.get(scene_name or "", "")
        self.view.title = f"{title} · {DEFAULT_TITLE}" if title else DEFAULT_TITLE

        locked = scene_name in self.settings.locked_scenes
        reference = None if locked else self.settings.scene_reference(scene_name)
        self._loaded_scene = scene_name

        self.analytics.send("set", "page", f"/{scene_name or ''}")
        self.analytics.send("send", "pageview")

        context = SceneContext(scene_name=scene_name, data=dict(data or {}), locked=locked)
        success = await self.loader.load(reference, context)
        if success:
            logger.info("loading done %s %s", scene_name, reference)
        else:
            logger.warning("loading superseded %s", scene_name)
        return success

    def action(self, name: str) -> bool:
        if name == "play":
            status = ""
        elif name == "pause":
            status = "paused"
        elif name == "restart":
            status = "restart"
        else:
            return False
        self.state.set_state(status=status)
        return True

    def set_hidden(self, hidden: bool) -> None:
        self.state.set_state(hidden=hidden)

    def set_orientation(self, orientation: str | None) -> None:
        self.state.set_state(orientation=orientation)

    def key_down(self, key: str) -> bool:
        return self.keys.key_down(key)

    def close(self) -> None:
        self.gamepad.close()
        self.loader.shutdown()

    def _on_load_started(self, event: LoadStartedEvent) -> None:
        # Fires for every load, even while a previous one is unfinished; nothing is
        # known about the next scene yet.
        self.interlude.begin()
        self.view.nav_open = False
        self.state.set_state(mini=True, control=None, scene_has_pause=False)

    def _on_error(self, event: LoaderErrorEvent) -> None:
        context = event.context if isinstance(event.context, SceneContext) else SceneContext(scene_name=None)
        if context.error is not None:
            # The error scene itself failed; reloading would loop.
            logger.error("error scene failed, not reloading: %r", event.error)
            return
        if context.scene_name == self._loaded_scene:
            self._loaded_failed = True
        message = str(event.error) or type(event.error).__name__
        error_context = SceneContext(scene_name=context.scene_name, error=message)
        orphan(asyncio.ensure_future(self.loader.load(None, error_context)))

    def _on_prepare(self, event: PrepareEvent) -> None:
        event.resolve(self._activate(event))

    async def _activate(self, event: PrepareEvent) -> bool:
        context: SceneContext = event.context
        control = event.control
        if context.error:
            logger.error("error %s", context.error)

        config_task = asyncio.ensure_future(
            prepare(control, context.data, audio=self.audio, timeout_s=self.settings.preload_timeout_s)
        )
        await self.interlude.show()
        if not control.is_attached:
            orphan(config_task)
            return False  # replaced during interlude

        # Old scene is covered now; the loader would purge it on swap-in anyway.
        self.loader.purge()
        self.state.set_state(scene_orientation=None)

        self.view.error_code = None
        if context.error:
            self.view.error_code = "internal"
        elif context.locked:
            pass
        elif not control.has_transport and context.scene_name:
            self.view.error_code = "missing"
        self.view.error_text = ""
        self.view.locked = context.locked

        config = SceneConfig.model_validate(await config_task)

        if not event.ready():
            return False
        control.send(MessageType.ready)

        self.interlude.hide()
        self.state.set_state(
            mini=not config.scroll,
            scene_orientation=config.orientation,
            scene_has_pause=config.pause,
            control=control if control.has_transport else None,
            status="",
        )
        self.audio.transition_to(config.sound, 1.0)

        await run_scene(control, state=self.state, audio=self.audio, analytics=self.analytics, write=self._write)
        return True

    def _render(self, state: HostState) -> None:
        view = self.view
        view.mini = state.mini

        gameover = state.status == "gameover"
        turn = state.orientation_change_needed
        view.disabled = gameover or turn
        view.tilt = turn
        view.orientation_hint = state.scene_orientation if turn else None

        control = state.control
        if control is None:
            view.action = None
            return

        view.badge = dict(state.score)

        if state.status == "restart":
            state = self.state.set_state(status="")
            control.send(MessageType.restart)

        if not gameover:
            # don't pause/resume a scene that's marked gameover
            pause = turn or state.hidden or state.status == "paused"
            control.send(MessageType.pause if pause else MessageType.resume)

        action: str | None = None
        if turn:
            pass
        elif gameover:
            action = "restart"
        elif state.scene_has_pause:
            action = "play" if state.status == "paused" else "pause"
        view.action = action
