from __future__ import annotations

import redis

from rps_lobby.config import Settings, load_settings


def get_redis_url(settings: Settings | None = None) -> str:
    return (settings or load_settings()).redis_url


def create_redis(settings: Settings | None = None) -> redis.Redis:
    # decode_responses=True => strings in/out instead of bytes
    return redis.Redis.from_url(get_redis_url(settings), decode_responses=True)
