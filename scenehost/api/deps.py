from __future__ import annotations

from scenehost.singleton import Host, get_host


def get_host_dep() -> Host:
    return get_host()
