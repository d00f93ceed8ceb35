from __future__ import annotations

import asyncio
import logging
import re

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from scenehost.api.deps import get_host_dep
from scenehost.api.models import (
    ActionResponse,
    GamepadRequest,
    GamepadResponse,
    KeyRequest,
    KeyResponse,
    OrientationRequest,
    SceneLoadRequest,
    SceneLoadResponse,
    StateResponse,
    VisibilityRequest,
)
from scenehost.core.timeouts import orphan
from scenehost.infra.websocket_port import WebSocketPort
from scenehost.sandbox import RemoteSandboxFactory
from scenehost.singleton import Host, get_host

logger = logging.getLogger(__name__)

router = APIRouter()

_SCENE_NAME = re.compile(r"[A-Za-z0-9_-]{1,64}")

# Close code for a scene socket that names no pending sandbox.
WS_UNKNOWN_UNIT = 4404


@router.websocket("/ws/shell")
async def shell_updates_ws(websocket: WebSocket) -> None:
    host = get_host()
    await host.hub.connect(websocket, StateResponse.from_host(host).model_dump(mode="json"))

    try:
        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await host.hub.disconnect(websocket)
    except Exception:
        await host.hub.disconnect(websocket)
        raise


@router.websocket("/ws/scene/{unit_id}")
async def scene_transport_ws(websocket: WebSocket, unit_id: str) -> None:
    host = get_host()
    await websocket.accept()

    port = WebSocketPort(websocket)
    sandboxes = host.sandboxes
    if not isinstance(sandboxes, RemoteSandboxFactory) or not sandboxes.attach(unit_id, port):
        logger.warning("scene socket for unknown unit %s", unit_id)
        await websocket.close(code=WS_UNKNOWN_UNIT)
        return

    await port.serve()


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/state", response_model=StateResponse)
async def get_state_route(host: Host = Depends(get_host_dep)) -> StateResponse:
    return StateResponse.from_host(host)


@router.post("/scene/{name}", response_model=SceneLoadResponse, status_code=status.HTTP_202_ACCEPTED)
async def load_scene_route(
    name: str,
    payload: SceneLoadRequest | None = None,
    host: Host = Depends(get_host_dep),
) -> SceneLoadResponse:
    if not _SCENE_NAME.fullmatch(name):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Invalid scene name: {name}")

    # Loading runs until the scene is swapped in (or superseded); don't hold the request.
    data = payload.data if payload is not None else None
    orphan(asyncio.ensure_future(host.router.go(name, data)))
    return SceneLoadResponse(scene=name, accepted=True)


@router.post("/action/{action}", response_model=ActionResponse)
async def action_route(action: str, host: Host = Depends(get_host_dep)) -> ActionResponse:
    if not host.shell.action(action):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Unknown action: {action}")
    return ActionResponse(action=action, status=host.state.get_state().status)


@router.post("/visibility", response_model=StateResponse)
async def visibility_route(payload: VisibilityRequest, host: Host = Depends(get_host_dep)) -> StateResponse:
    host.shell.set_hidden(payload.hidden)
    return StateResponse.from_host(host)


@router.post("/orientation", response_model=StateResponse)
async def orientation_route(payload: OrientationRequest, host: Host = Depends(get_host_dep)) -> StateResponse:
    host.shell.set_orientation(payload.orientation)
    return StateResponse.from_host(host)


@router.post("/input/key", response_model=KeyResponse)
async def key_route(payload: KeyRequest, host: Host = Depends(get_host_dep)) -> KeyResponse:
    return KeyResponse(key=payload.key, handled=host.shell.key_down(payload.key))


@router.post("/input/gamepad", response_model=GamepadResponse)
async def gamepad_route(payload: GamepadRequest, host: Host = Depends(get_host_dep)) -> GamepadResponse:
    # Called with the full set of pressed buttons each time it changes.
    host.shell.gamepad.update(payload.buttons)
    return GamepadResponse(held=host.shell.gamepad.held)
