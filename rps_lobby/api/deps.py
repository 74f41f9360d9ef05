from __future__ import annotations

from collections.abc import Generator
from functools import lru_cache

import redis
from fastapi import Depends, Header

from rps_lobby.bus import ChangeBus
from rps_lobby.config import Settings, load_settings
from rps_lobby.infra.redis_client import create_redis
from rps_lobby.lobby import Lobby
from rps_lobby.store import StateStore


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis(get_settings())
    try:
        yield client
    finally:
        try:
            client.close()
        except Exception:
            # Some redis client versions don't require explicit close.
            pass


def get_lobby(
    r: redis.Redis = Depends(get_redis),
    settings: Settings = Depends(get_settings),
    x_instance_id: str | None = Header(default=None),
) -> Lobby:
    """A Lobby bound to the calling context.

    Clients send their context id in `X-Instance-Id`; without one a fresh id is
    generated, which is fine for read-only calls.
    """

    store = StateStore(r=r, key=settings.state_key)
    bus = ChangeBus(
        r=r,
        stream_key=settings.changes_stream_key,
        instance_id=x_instance_id,
        maxlen=settings.stream_maxlen,
    )
    return Lobby(store=store, bus=bus, settings=settings)
