from __future__ import annotations

import pytest

from fake_scenes import FakeScene, make_host, settle
from scenehost.history import HistoryEntry, HistoryRouter
from scenehost.settings import Settings


@pytest.mark.asyncio
async def test_router_records_entries_and_loads() -> None:
    calls: list[tuple[str, dict[str, str]]] = []

    async def _load(scene: str, data: dict[str, str]) -> bool:
        calls.append((scene, data))
        return True

    router = HistoryRouter(_load)
    assert router.url == "/"

    assert await router.go("maze", {"level": 2, "skip": None}) is True

    assert calls == [("maze", {"level": "2"})]
    assert router.url == "/maze?level=2"
    assert [e.scene for e in router.entries] == ["maze"]


@pytest.mark.asyncio
async def test_unbound_router_refuses_to_navigate() -> None:
    with pytest.raises(RuntimeError):
        await HistoryRouter().go("maze")


def test_write_updates_and_removes_keys() -> None:
    router = HistoryRouter()
    router.write({"ignored": 1})
    assert router.entries == []

    router._entries.append(HistoryEntry(scene="maze", data={"level": "2", "seed": "x"}))
    router.write({"level": 3, "seed": None, "best": 10.5})

    assert router.current == HistoryEntry(scene="maze", data={"level": "3", "best": "10.5"})
    assert router.url == "/maze?best=10.5&level=3"


@pytest.mark.asyncio
async def test_scene_data_lands_in_history() -> None:
    scene = FakeScene()
    host, _ = make_host({"a": scene})

    assert await host.router.go("a", {"level": "1"}) is True
    scene.send("data", {"level": 2})
    await settle()

    assert host.router.url == "/a?level=2"
    host.shell.close()


def test_settings_defaults() -> None:
    s = Settings.from_env({})
    assert s == Settings()
    assert s.preload_timeout_s == 10.0
    assert s.locked_scenes == frozenset({"tracker"})
    assert s.scene_reference("maze") == "/scenes/maze/"
    assert s.scene_reference(None) == "/scenes/index/"


def test_settings_from_env() -> None:
    s = Settings.from_env(
        {
            "SCENEHOST_PRELOAD_TIMEOUT_S": "2.5",
            "SCENEHOST_ATTACH_TIMEOUT_S": "3",
            "SCENEHOST_INTERLUDE_S": "0.2",
            "SCENEHOST_LOCKED_SCENES": "vault, ,tracker",
            "SCENEHOST_SCENE_BASE_URL": "https://cdn.example",
            "SCENEHOST_LOG_LEVEL": "info",
            "SCENEHOST_ANALYTICS": "Redis",
            "SCENEHOST_ANALYTICS_STREAM": "games:ga",
            "REDIS_URL": "redis://cache:6379/1",
        }
    )
    assert s.preload_timeout_s == 2.5
    assert s.attach_timeout_s == 3.0
    assert s.interlude_s == 0.2
    assert s.locked_scenes == frozenset({"vault", "tracker"})
    assert s.scene_reference("maze") == "https://cdn.example/scenes/maze/"
    assert s.log_level == "INFO"
    assert s.analytics == "redis"
    assert s.analytics_stream == "games:ga"
    assert s.redis_url == "redis://cache:6379/1"


def test_empty_locked_list_unlocks_everything() -> None:
    assert Settings.from_env({"SCENEHOST_LOCKED_SCENES": ""}).locked_scenes == frozenset()


@pytest.mark.parametrize(
    "env",
    [
        {"SCENEHOST_PRELOAD_TIMEOUT_S": "soon"},
        {"SCENEHOST_ATTACH_TIMEOUT_S": "-1"},
        {"SCENEHOST_ANALYTICS": "kafka"},
    ],
)
def test_settings_reject_bad_values(env: dict[str, str]) -> None:
    with pytest.raises(ValueError):
        Settings.from_env(env)
