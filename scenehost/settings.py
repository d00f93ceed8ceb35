from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from scenehost.core.loader import DEFAULT_ATTACH_TIMEOUT_S
from scenehost.core.preload import DEFAULT_PRELOAD_TIMEOUT_S
from scenehost.streams import DEFAULT_ANALYTICS_STREAM


def _float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} must be >= 0")
    return value


@dataclass(frozen=True)
class Settings:
    preload_timeout_s: float = DEFAULT_PRELOAD_TIMEOUT_S
    attach_timeout_s: float = DEFAULT_ATTACH_TIMEOUT_S
    # How long the interlude takes to cover the old scene.
    interlude_s: float = 0.0
    locked_scenes: frozenset[str] = frozenset({"tracker"})
    scene_base_url: str = "/"
    log_level: str = "DEBUG"
    # "log" or "redis"
    analytics: str = "log"
    analytics_stream: str = DEFAULT_ANALYTICS_STREAM
    redis_url: str = "redis://localhost:6379/0"

    def scene_reference(self, scene_name: str | None) -> str:
        base = self.scene_base_url if self.scene_base_url.endswith("/") else self.scene_base_url + "/"
        return f"{base}scenes/{scene_name or 'index'}/"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ

        locked_raw = env.get("SCENEHOST_LOCKED_SCENES")
        locked = (
            frozenset(s.strip() for s in locked_raw.split(",") if s.strip())
            if locked_raw is not None
            else cls.locked_scenes
        )

        analytics = env.get("SCENEHOST_ANALYTICS", cls.analytics).strip().lower()
        if analytics not in {"log", "redis"}:
            raise ValueError(f"SCENEHOST_ANALYTICS must be 'log' or 'redis', got {analytics!r}")

        return cls(
            preload_timeout_s=_float(env, "SCENEHOST_PRELOAD_TIMEOUT_S", cls.preload_timeout_s),
            attach_timeout_s=_float(env, "SCENEHOST_ATTACH_TIMEOUT_S", cls.attach_timeout_s),
            interlude_s=_float(env, "SCENEHOST_INTERLUDE_S", cls.interlude_s),
            locked_scenes=locked,
            scene_base_url=env.get("SCENEHOST_SCENE_BASE_URL", cls.scene_base_url),
            log_level=env.get("SCENEHOST_LOG_LEVEL", cls.log_level).upper(),
            analytics=analytics,
            analytics_stream=env.get("SCENEHOST_ANALYTICS_STREAM", cls.analytics_stream),
            redis_url=env.get("REDIS_URL", cls.redis_url),
        )
