from __future__ import annotations

from pathlib import Path

from scenehost.settings import Settings
from scenehost.singleton import Host, init_host


def init_host_for_app() -> Host:
    # project root is one level up from this file: scenehost/startup.py
    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)

    return init_host(settings=Settings.from_env())
