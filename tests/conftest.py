from __future__ import annotations

import os
from collections.abc import Generator

import pytest


@pytest.fixture(autouse=True)
def _hermetic_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's SCENEHOST_* / REDIS_URL settings out of the tests."""

    for key in list(os.environ):
        if key.startswith("SCENEHOST_") or key == "REDIS_URL":
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def _reset_host() -> Generator[None, None, None]:
    from scenehost.singleton import reset_host_for_tests

    reset_host_for_tests()
    yield
    reset_host_for_tests()


@pytest.fixture()
def client():
    """FastAPI TestClient over a host whose scenes dial in over WebSockets."""

    from fastapi.testclient import TestClient

    from scenehost.audio import SilentAudio
    from scenehost.main import app
    from scenehost.sandbox import RemoteSandboxFactory
    from scenehost.settings import Settings
    from scenehost.singleton import init_host
    from scenehost.streams import LoggingAnalytics

    init_host(
        settings=Settings(preload_timeout_s=5.0, attach_timeout_s=5.0),
        sandboxes=RemoteSandboxFactory(),
        audio=SilentAudio(),
        analytics=LoggingAnalytics(),
    )
    with TestClient(app) as c:
        yield c
