from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from scenehost.singleton import Host


class ViewModel(BaseModel):
    title: str
    mini: bool
    nav_open: bool
    disabled: bool
    tilt: bool
    orientation_hint: str | None = None
    action: str | None = None
    badge: dict[str, Any] = Field(default_factory=dict)
    error_code: str | None = None
    error_text: str = ""
    locked: bool = False
    interlude_active: bool = False


class StateResponse(BaseModel):
    version: int
    status: str
    score: dict[str, Any] = Field(default_factory=dict)
    hidden: bool
    orientation: str | None = None
    scene_orientation: str | None = None
    scene_has_pause: bool
    mini: bool
    has_control: bool

    # Scene the shell last asked for, and where its frame should point (remote sandboxes).
    scene: str | None = None
    frame_url: str | None = None

    view: ViewModel

    @classmethod
    def from_host(cls, host: Host) -> StateResponse:
        state = host.state.get_state()
        view = host.shell.view
        unit = host.loader.current_unit
        frame_url = unit.sandbox.url if unit is not None and unit.sandbox is not None else None
        return cls(
            version=state.version,
            status=state.status,
            score=dict(state.score),
            hidden=state.hidden,
            orientation=state.orientation,
            scene_orientation=state.scene_orientation,
            scene_has_pause=state.scene_has_pause,
            mini=state.mini,
            has_control=state.control is not None,
            scene=host.shell.loaded_scene,
            frame_url=frame_url,
            view=ViewModel(
                title=view.title,
                mini=view.mini,
                nav_open=view.nav_open,
                disabled=view.disabled,
                tilt=view.tilt,
                orientation_hint=view.orientation_hint,
                action=view.action,
                badge=dict(view.badge),
                error_code=view.error_code,
                error_text=view.error_text,
                locked=view.locked,
                interlude_active=host.shell.interlude.active,
            ),
        )


class SceneLoadRequest(BaseModel):
    data: dict[str, str] = Field(default_factory=dict)


class SceneLoadResponse(BaseModel):
    scene: str
    accepted: bool


class ActionResponse(BaseModel):
    action: str
    status: str


class VisibilityRequest(BaseModel):
    hidden: bool


class OrientationRequest(BaseModel):
    orientation: Literal["portrait", "landscape"] | None = None


class KeyRequest(BaseModel):
    key: str = Field(..., min_length=1, max_length=32)


class KeyResponse(BaseModel):
    key: str
    handled: bool


class GamepadRequest(BaseModel):
    buttons: list[str] = Field(default_factory=list, max_length=16)


class GamepadResponse(BaseModel):
    held: list[str]
