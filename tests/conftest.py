from __future__ import annotations

from collections.abc import Callable, Generator

import fakeredis
import pytest
from fastapi.testclient import TestClient

from rps_lobby.bus import ChangeBus
from rps_lobby.config import Settings
from rps_lobby.lobby import Lobby
from rps_lobby.store import StateStore

T0 = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when a test says so."""

    def __init__(self, start: int = T0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings() -> Settings:
    return Settings()


@pytest.fixture()
def make_lobby(r: fakeredis.FakeRedis, clock: FakeClock, settings: Settings) -> Callable[..., Lobby]:
    """Build Lobby instances that share one Redis, like tabs sharing localStorage."""

    def _make(instance_id: str | None = None) -> Lobby:
        store = StateStore(r=r, key=settings.state_key, clock=clock)
        bus = ChangeBus(r=r, stream_key=settings.changes_stream_key, instance_id=instance_id)
        return Lobby(store=store, bus=bus, settings=settings, clock=clock)

    return _make


@pytest.fixture()
def lobby(make_lobby: Callable[..., Lobby]) -> Lobby:
    return make_lobby("tab_test_local")


@pytest.fixture()
def client_and_redis() -> Generator[tuple[TestClient, fakeredis.FakeRedis], None, None]:
    """FastAPI TestClient with the Redis dependency swapped for fakeredis."""

    from rps_lobby.api.deps import get_redis
    from rps_lobby.main import app

    r = fakeredis.FakeRedis(decode_responses=True)

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
