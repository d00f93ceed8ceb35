from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from scenehost.api.models import StateResponse
from scenehost.audio import AudioBackend, SilentAudio
from scenehost.core.loader import SandboxFactory, SceneLoader
from scenehost.core.state import HostState, StateStore
from scenehost.history import HistoryRouter
from scenehost.infra.redis_client import create_redis
from scenehost.sandbox import RemoteSandboxFactory
from scenehost.settings import Settings
from scenehost.shell import Shell
from scenehost.streams import Analytics, AnalyticsStream, LoggingAnalytics, RedisStreamAnalytics
from scenehost.websocket_hub import ShellWebSocketHub


@dataclass(slots=True)
class Host:
    settings: Settings
    state: StateStore
    loader: SceneLoader
    sandboxes: SandboxFactory
    router: HistoryRouter
    shell: Shell
    hub: ShellWebSocketHub
    audio: AudioBackend
    analytics: Analytics


_HOST: Host | None = None


def _default_analytics(settings: Settings) -> Analytics:
    if settings.analytics == "redis":
        return RedisStreamAnalytics(r=create_redis(settings.redis_url), stream=AnalyticsStream(settings.analytics_stream))
    return LoggingAnalytics()


def build_host(
    *,
    settings: Settings,
    sandboxes: SandboxFactory | None = None,
    audio: AudioBackend | None = None,
    analytics: Analytics | None = None,
    titles: Mapping[str, str] | None = None,
) -> Host:
    state = StateStore()
    sandboxes = sandboxes if sandboxes is not None else RemoteSandboxFactory()
    loader = SceneLoader(sandboxes, attach_timeout_s=settings.attach_timeout_s)
    router = HistoryRouter()
    audio = audio if audio is not None else SilentAudio()
    analytics = analytics if analytics is not None else _default_analytics(settings)
    shell = Shell(
        loader=loader,
        state=state,
        audio=audio,
        analytics=analytics,
        write=router.write,
        settings=settings,
        titles=titles,
    )
    router.bind(shell.load_scene)
    hub = ShellWebSocketHub()
    host = Host(
        settings=settings,
        state=state,
        loader=loader,
        sandboxes=sandboxes,
        router=router,
        shell=shell,
        hub=hub,
        audio=audio,
        analytics=analytics,
    )

    # Registered after the shell so snapshots carry the freshly rendered view.
    def _push(_: HostState) -> None:
        hub.publish(StateResponse.from_host(host).model_dump(mode="json"))

    state.subscribe(_push)
    return host


def init_host(
    *,
    settings: Settings | None = None,
    sandboxes: SandboxFactory | None = None,
    audio: AudioBackend | None = None,
    analytics: Analytics | None = None,
    titles: Mapping[str, str] | None = None,
) -> Host:
    """Build the process-wide host once and cache it.

    Safe to call multiple times; subsequent calls return the already built instance.
    """

    global _HOST
    if _HOST is None:
        _HOST = build_host(
            settings=settings or Settings.from_env(),
            sandboxes=sandboxes,
            audio=audio,
            analytics=analytics,
            titles=titles,
        )
    return _HOST


def reset_host_for_tests() -> None:
    """Drop the cached host so tests can build one with their own collaborators."""

    global _HOST
    _HOST = None


def get_host() -> Host:
    if _HOST is None:
        raise RuntimeError("Host not initialized. Call init_host() at startup.")
    return _HOST
