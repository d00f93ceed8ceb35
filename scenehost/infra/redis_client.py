from __future__ import annotations

import os

import redis


def get_redis_url() -> str:
    return os.environ.get("REDIS_URL", "redis://localhost:6379/0")


def create_redis(url: str | None = None) -> redis.Redis:
    # decode_responses=True => stream ids and fields come back as str
    return redis.Redis.from_url(url or get_redis_url(), decode_responses=True)
