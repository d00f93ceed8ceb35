from __future__ import annotations

import asyncio

import pytest

from fake_scenes import FakeScene, make_host, settle
from scenehost.core.channel import SceneChannel
from scenehost.core.state import StateStore
from scenehost.core.transport import port_pair
from scenehost.keys import GamepadEmulator
from scenehost.shell import DEFAULT_TITLE, SceneContext


@pytest.mark.asyncio
async def test_load_scene_runs_handshake_and_hands_over_control() -> None:
    scene = FakeScene(sounds=["intro"], loaded={"pause": True, "scroll": True, "sound": ["theme"]})
    host, analytics = make_host({"a": scene})

    assert await host.shell.load_scene("a", {"level": "3"}) is True
    await settle()

    state = host.state.get_state()
    assert state.control is not None and state.control.has_transport
    assert state.scene_has_pause is True
    assert state.mini is False
    assert scene.received_types == ["data", "ready", "resume"]
    assert scene.received[0].payload == {"level": "3"}
    assert host.audio.preloaded == ["intro"]
    assert host.audio.sound_bank == ["theme"]
    assert host.audio.volume == 1.0
    assert host.shell.view.title == f"Scene A · {DEFAULT_TITLE}"
    assert host.shell.view.action == "pause"
    assert host.shell.interlude.active is False
    assert analytics.calls == [("set", "page", "/a"), ("send", "pageview")]
    host.shell.close()


@pytest.mark.asyncio
async def test_same_scene_is_not_reloaded() -> None:
    scene = FakeScene()
    host, analytics = make_host({"a": scene})

    assert await host.shell.load_scene("a") is True
    assert await host.shell.load_scene("a") is False

    assert scene.runs == 1
    assert len(analytics.calls) == 2
    host.shell.close()


@pytest.mark.asyncio
async def test_locked_scene_has_no_transport_and_no_error() -> None:
    host, _ = make_host()

    assert await host.shell.load_scene("tracker") is True

    state = host.state.get_state()
    assert state.control is None
    assert host.shell.view.locked is True
    assert host.shell.view.error_code is None
    assert host.shell.view.action is None
    unit = host.loader.active_unit
    assert unit is not None and unit.reference is None
    assert unit.context == SceneContext(scene_name="tracker", locked=True)


@pytest.mark.asyncio
async def test_missing_scene_shows_missing_error() -> None:
    host, _ = make_host()

    assert await host.shell.load_scene("nowhere") is True

    assert host.state.get_state().control is None
    assert host.shell.view.error_code == "missing"
    assert host.shell.view.locked is False


@pytest.mark.asyncio
async def test_preload_error_swaps_in_internal_error_scene() -> None:
    host, _ = make_host({"a": FakeScene(preload_error="assets gone")})

    assert await host.shell.load_scene("a") is False
    await settle()

    unit = host.loader.active_unit
    assert unit is not None and unit.reference is None
    assert unit.context.error == "assets gone"
    assert unit.context.scene_name == "a"
    assert host.shell.view.error_code == "internal"
    assert host.loader.units == (unit,)
    assert host.state.get_state().control is None


@pytest.mark.asyncio
async def test_runtime_error_from_running_scene_reloads_error_scene() -> None:
    scene = FakeScene()
    host, _ = make_host({"a": scene})
    await host.shell.load_scene("a")

    scene.send("error", "crashed")
    await settle()

    unit = host.loader.active_unit
    assert unit is not None and unit.context.error == "crashed"
    assert host.shell.view.error_code == "internal"


@pytest.mark.asyncio
async def test_pause_play_and_one_shot_restart() -> None:
    scene = FakeScene(loaded={"pause": True})
    host, _ = make_host({"a": scene})
    await host.shell.load_scene("a")

    assert host.shell.action("pause") is True
    assert host.shell.view.action == "play"
    assert host.shell.action("play") is True
    assert host.shell.view.action == "pause"
    assert host.shell.action("restart") is True
    assert host.state.get_state().status == ""
    assert host.shell.action("dance") is False
    await settle()

    assert scene.received_types == ["data", "ready", "resume", "pause", "resume", "restart", "resume"]
    host.shell.close()


@pytest.mark.asyncio
async def test_gameover_disables_chrome_and_offers_restart() -> None:
    scene = FakeScene(loaded={"pause": True})
    host, _ = make_host({"a": scene})
    await host.shell.load_scene("a")
    await settle()

    scene.send("score", {"points": 7})
    scene.send("gameover")
    await settle()

    assert host.state.get_state().status == "gameover"
    assert host.shell.view.disabled is True
    assert host.shell.view.action == "restart"
    assert host.shell.view.badge == {"points": 7}

    host.shell.set_hidden(True)
    await settle()
    # No pause for a scene that's over.
    assert "pause" not in scene.received_types
    host.shell.close()


@pytest.mark.asyncio
async def test_orientation_mismatch_tilts_and_pauses() -> None:
    scene = FakeScene(loaded={"orientation": "portrait", "pause": True})
    host, _ = make_host({"a": scene})
    await host.shell.load_scene("a")

    host.shell.set_orientation("landscape")
    view = host.shell.view
    assert (view.tilt, view.disabled, view.orientation_hint, view.action) == (True, True, "portrait", None)

    host.shell.set_orientation("portrait")
    assert (view.tilt, view.disabled, view.orientation_hint, view.action) == (False, False, None, "pause")
    await settle()

    assert scene.received_types[-2:] == ["pause", "resume"]
    host.shell.close()


@pytest.mark.asyncio
async def test_later_load_wins_over_slow_one() -> None:
    slow = FakeScene(send_loaded=False)
    fast = FakeScene()
    host, _ = make_host({"slow": slow, "fast": fast})

    controls: list[SceneChannel] = []
    host.state.subscribe(lambda s: controls.append(s.control) if s.control is not None else None)

    first = asyncio.create_task(host.shell.load_scene("slow"))
    await settle()
    slow_unit = host.loader.current_unit
    assert slow_unit is not None and slow_unit.channel.has_transport
    assert await host.shell.load_scene("fast") is True
    assert await asyncio.wait_for(first, timeout=1) is False
    await settle()

    assert host.loader.active_unit is not None
    assert host.loader.active_unit.context.scene_name == "fast"
    assert "ready" not in slow.received_types
    assert "ready" in fast.received_types
    assert len(host.loader.units) == 1

    fast_channel = host.loader.active_unit.channel
    assert host.state.get_state().control is fast_channel
    assert controls and all(c is fast_channel for c in controls)
    assert slow_unit.channel not in controls
    host.shell.close()


@pytest.mark.asyncio
async def test_key_forwarding() -> None:
    scene = FakeScene()
    host, _ = make_host({"a": scene})
    await host.shell.load_scene("a")

    assert host.shell.key_down("ArrowUp") is True
    assert host.shell.key_down("q") is False
    await settle()

    assert scene.received[-1].type == "keydown"
    assert scene.received[-1].payload == {"key": "ArrowUp", "keyCode": 38}
    host.shell.close()


@pytest.mark.asyncio
async def test_gamepad_repeats_until_released() -> None:
    host_end, scene_end = port_pair()
    control, scene = SceneChannel(host_end), SceneChannel(scene_end)
    state = StateStore()
    state.set_state(control=control)
    pad = GamepadEmulator(state, initial_repeat_s=0.01, following_repeat_s=0.01)

    pad.update(["Up", "Select"])
    assert pad.held == ["Up"]
    await asyncio.sleep(0.05)
    pad.update([])
    assert pad.held == []

    messages = []
    while (msg := await asyncio.wait_for(scene.next(), timeout=1)) is not None:
        messages.append(msg)
        if msg.type == "keyup":
            break

    assert messages[0].payload == {"key": "Up", "keyCode": 38, "repeat": False}
    assert any(m.type == "keydown" and m.payload["repeat"] for m in messages[1:-1])
    assert messages[-1].payload == {"key": "Up", "keyCode": 38, "repeat": True}
    pad.close()


@pytest.mark.asyncio
async def test_hiding_stops_repeat_but_still_releases_held_key() -> None:
    host_end, scene_end = port_pair()
    scene = SceneChannel(scene_end)
    state = StateStore()
    state.set_state(control=SceneChannel(host_end))
    pad = GamepadEmulator(state, initial_repeat_s=0.01, following_repeat_s=0.01)

    pad.update(["Down"])
    state.set_state(hidden=True)
    assert pad.held == ["Down"]
    assert pad.repeating == []

    await asyncio.sleep(0.03)
    pad.update([])
    assert pad.held == []
    state.set_state(hidden=False)
    pad.update([])

    scene_end.close()
    types = []
    while (msg := await scene.next()) is not None:
        types.append((msg.type, msg.payload["repeat"]))
    assert types == [("keydown", False), ("keyup", True)]
    pad.close()


@pytest.mark.asyncio
async def test_runtime_messages_after_preload_timeout_all_arrive() -> None:
    scene = FakeScene(send_loaded=False)
    host, _ = make_host({"a": scene}, preload_timeout_s=0.05)

    assert await host.shell.load_scene("a") is True
    assert host.state.get_state().control is not None

    scene.send("score", {"points": 1})
    await settle()
    assert host.state.get_state().score == {"points": 1}

    scene.send("score", {"points": 2})
    scene.send("gameover")
    await settle()
    assert host.state.get_state().score == {"points": 2}
    assert host.state.get_state().status == "gameover"
    host.shell.close()


@pytest.mark.asyncio
async def test_failed_scene_can_be_requested_again() -> None:
    scene = FakeScene(preload_error="assets gone")
    host, _ = make_host({"a": scene})

    assert await host.shell.load_scene("a") is False
    await settle()
    assert host.shell.view.error_code == "internal"

    await host.shell.load_scene("a")
    await settle()

    assert scene.runs == 2
    host.shell.close()
