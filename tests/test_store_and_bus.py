from __future__ import annotations

import json

import fakeredis

from rps_lobby.bus import ChangeBus, ChangeEvent
from rps_lobby.models import Document, Player
from rps_lobby.store import StateStore


def test_missing_document_reads_as_default(r: fakeredis.FakeRedis) -> None:
    doc = StateStore(r=r).read()

    assert doc == Document()
    assert doc.players == {}
    assert doc.waiting_queue == []
    assert doc.last_updated is None


def test_malformed_document_reads_as_default(r: fakeredis.FakeRedis) -> None:
    store = StateStore(r=r, key="k")

    r.set("k", "{not json")
    assert store.read().players == {}

    r.set("k", json.dumps({"players": {"alice": {"username": "alice"}}}))
    assert store.read().players == {}


def test_undecodable_bytes_read_as_default_and_are_overwritten(clock) -> None:
    server = fakeredis.FakeServer()
    raw_client = fakeredis.FakeRedis(server=server)
    store = StateStore(r=fakeredis.FakeRedis(server=server, decode_responses=True), key="k", clock=clock)

    raw_client.set("k", b"\xff\xfe\x00garbage")

    assert store.read_raw() is None
    assert store.read() == Document()

    doc = store.read()
    doc.players["alice"] = Player(username="alice", instance_id="tab_1", joined_at=clock.now)
    store.write(doc)
    assert list(store.read().players) == ["alice"]


def test_write_stamps_last_updated_and_uses_camel_case(r: fakeredis.FakeRedis, clock) -> None:
    store = StateStore(r=r, key="k", clock=clock)
    doc = Document()
    doc.players["alice"] = Player(username="alice", instance_id="tab_1", joined_at=clock.now)

    raw = store.write(doc)

    stored = json.loads(r.get("k"))
    assert raw == r.get("k")
    assert stored["lastUpdated"] == clock.now
    assert set(stored) == {"players", "leaderboard", "challenges", "gameSessions", "waitingQueue", "lastUpdated"}
    assert stored["players"]["alice"]["instanceId"] == "tab_1"
    assert stored["players"]["alice"]["isOnline"] is True
    assert stored["players"]["alice"]["stats"] == {
        "gamesPlayed": 0,
        "wins": 0,
        "losses": 0,
        "draws": 0,
        "winStreak": 0,
        "bestStreak": 0,
    }

    # Fresh deserialization every read.
    again = store.read()
    assert again.players["alice"].instance_id == "tab_1"
    assert again is not doc


def test_poll_delivers_only_other_contexts_changes(r: fakeredis.FakeRedis) -> None:
    tab_a = ChangeBus(r=r, stream_key="changes", instance_id="tab_a")
    tab_b = ChangeBus(r=r, stream_key="changes", instance_id="tab_b")

    seen_a: list[ChangeEvent] = []
    seen_b: list[ChangeEvent] = []
    tab_a.subscribe(seen_a.append)
    tab_b.subscribe(seen_b.append)

    tab_a.publish(ChangeEvent(key="state", new_value='{"x":1}', old_value=None, instance_id="tab_a"))

    assert tab_a.poll() == 0
    assert tab_b.poll() == 1
    assert seen_a == []
    assert seen_b == [ChangeEvent(key="state", new_value='{"x":1}', old_value=None, instance_id="tab_a")]

    # Already consumed.
    assert tab_b.poll() == 0


def test_new_context_does_not_replay_history(r: fakeredis.FakeRedis) -> None:
    old = ChangeBus(r=r, stream_key="changes", instance_id="tab_old")
    old.publish(ChangeEvent(key="state", new_value="1", old_value=None, instance_id="tab_old"))

    late = ChangeBus(r=r, stream_key="changes", instance_id="tab_late")
    seen: list[ChangeEvent] = []
    late.subscribe(seen.append)

    assert late.poll() == 0
    old.publish(ChangeEvent(key="state", new_value="2", old_value="1", instance_id="tab_old"))
    assert late.poll() == 1
    assert seen[0].new_value == "2"
    assert seen[0].old_value == "1"


def test_notify_local_isolates_failing_handlers_and_unsubscribe(r: fakeredis.FakeRedis) -> None:
    bus = ChangeBus(r=r, stream_key="changes", instance_id="tab_a")
    seen: list[str] = []

    def _boom(_event: ChangeEvent) -> None:
        raise RuntimeError("handler bug")

    bus.subscribe(_boom)
    unsubscribe = bus.subscribe(lambda e: seen.append(e.key))

    bus.notify_local(ChangeEvent(key="state", new_value=None, old_value=None))
    assert seen == ["state"]

    unsubscribe()
    bus.notify_local(ChangeEvent(key="state", new_value=None, old_value=None))
    assert seen == ["state"]

    # notify_local never touches the stream.
    assert r.xlen("changes") == 0


def test_close_runs_teardown_hooks_once(r: fakeredis.FakeRedis) -> None:
    bus = ChangeBus(r=r, stream_key="changes")
    calls: list[int] = []
    bus.on_teardown(lambda: calls.append(1))

    bus.close()
    bus.close()

    assert calls == [1]
    assert bus.instance_id.startswith("tab_")
