from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol, cast

import redis

logger = logging.getLogger(__name__)

DEFAULT_ANALYTICS_STREAM = "scenehost:analytics"


class Analytics(Protocol):
    """Sink for analytics calls (`ga` messages and pageviews). Reporting happens elsewhere."""

    def send(self, *args: Any) -> None:  # pragma: no cover
        ...


class LoggingAnalytics:
    def send(self, *args: Any) -> None:
        logger.info("analytics %r", args)


@dataclass(frozen=True, slots=True)
class AnalyticsStream:
    name: str = DEFAULT_ANALYTICS_STREAM

    @property
    def key(self) -> str:
        return self.name


def publish_analytics(*, r: redis.Redis, stream: AnalyticsStream, args: tuple[Any, ...]) -> str:
    """Append one analytics call to the stream for an external reporter to consume."""

    fields = {
        "args": json.dumps(list(args), default=str),
        "ts": datetime.now(tz=UTC).isoformat(),
    }
    stream_id = r.xadd(stream.key, fields)
    return cast(str, stream_id)


class RedisStreamAnalytics:
    def __init__(self, *, r: redis.Redis, stream: AnalyticsStream | None = None) -> None:
        self._r = r
        self._stream = stream or AnalyticsStream()

    @property
    def stream(self) -> AnalyticsStream:
        return self._stream

    def send(self, *args: Any) -> None:
        publish_analytics(r=self._r, stream=self._stream, args=args)
