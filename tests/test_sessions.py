from __future__ import annotations

import itertools

import pytest

from rps_lobby.errors import (
    ChoiceAlreadyMade,
    InvalidChoice,
    PlayerNotInSession,
    SessionNotActive,
    SessionNotFound,
)
from rps_lobby.lobby import Lobby
from rps_lobby.models import Choice, GameResult, SessionStatus
from rps_lobby.sessions import resolve

EXPECTED = {
    ("rock", "rock"): "draw",
    ("rock", "paper"): "player2",
    ("rock", "scissors"): "player1",
    ("paper", "rock"): "player1",
    ("paper", "paper"): "draw",
    ("paper", "scissors"): "player2",
    ("scissors", "rock"): "player2",
    ("scissors", "paper"): "player1",
    ("scissors", "scissors"): "draw",
}


def _start_game(lobby: Lobby, a: str = "alice", b: str = "bob") -> str:
    for name in (a, b):
        if lobby.get_player(name) is None:
            lobby.add_player(name)
    challenge = lobby.create_challenge(a, b).challenge
    return lobby.accept_challenge(challenge.id, b).game_session_id


def test_resolution_table_is_exhaustive() -> None:
    pairs = list(itertools.product(Choice, repeat=2))
    assert len(pairs) == 9
    for first, second in pairs:
        assert resolve(first, second) == EXPECTED[(first.value, second.value)]


def test_rock_beats_scissors_and_updates_stats(lobby: Lobby, clock) -> None:
    sid = _start_game(lobby)

    first = lobby.make_choice(sid, "alice", "rock")
    assert not first.resolved
    assert first.session.status == SessionStatus.active
    assert first.session.choices == {"alice": Choice.rock}

    clock.advance(2_000)
    second = lobby.make_choice(sid, "bob", "scissors")
    assert second.resolved

    session = lobby.get_session(sid)
    assert session.status == SessionStatus.completed
    assert session.winner == "alice"
    assert session.result == {"alice": GameResult.win, "bob": GameResult.lose}
    assert session.completed_at == clock.now
    assert lobby.get_active_session_for("alice") is None

    alice = lobby.get_player("alice").stats
    bob = lobby.get_player("bob").stats
    assert (alice.games_played, alice.wins, alice.win_streak, alice.best_streak) == (1, 1, 1, 1)
    assert (bob.games_played, bob.losses, bob.win_streak) == (1, 1, 0)

    board = lobby.get_leaderboard()
    assert [e.username for e in board] == ["alice", "bob"]
    assert board[0].score == 3
    assert board[0].win_rate == 100


def test_draw_leaves_streaks_alone(lobby: Lobby) -> None:
    sid = _start_game(lobby)
    lobby.make_choice(sid, "alice", "rock")
    lobby.make_choice(sid, "bob", "scissors")

    sid = _start_game(lobby)
    lobby.make_choice(sid, "alice", "paper")
    lobby.make_choice(sid, "bob", "paper")

    session = lobby.get_session(sid)
    assert session.winner is None
    assert session.result == {"alice": GameResult.draw, "bob": GameResult.draw}

    alice = lobby.get_player("alice").stats
    assert (alice.games_played, alice.wins, alice.draws, alice.win_streak, alice.best_streak) == (2, 1, 1, 1, 1)


def test_loss_resets_streak_but_keeps_best(lobby: Lobby) -> None:
    for _ in range(3):
        sid = _start_game(lobby)
        lobby.make_choice(sid, "alice", "paper")
        lobby.make_choice(sid, "bob", "rock")

    sid = _start_game(lobby)
    lobby.make_choice(sid, "alice", "scissors")
    lobby.make_choice(sid, "bob", "rock")

    alice = lobby.get_player("alice").stats
    assert (alice.wins, alice.losses, alice.win_streak, alice.best_streak) == (3, 1, 0, 3)
    # 3 wins * 3 + streak bonus 3 * 2
    assert lobby.get_leaderboard()[0].score == 15


def test_choice_is_write_once(lobby: Lobby) -> None:
    sid = _start_game(lobby)
    lobby.make_choice(sid, "alice", "rock")

    for c in ("rock", "paper", "scissors"):
        with pytest.raises(ChoiceAlreadyMade):
            lobby.make_choice(sid, "alice", c)

    assert lobby.get_session(sid).choices == {"alice": Choice.rock}


def test_third_choice_finds_session_completed(lobby: Lobby) -> None:
    sid = _start_game(lobby)
    lobby.make_choice(sid, "alice", "rock")
    lobby.make_choice(sid, "bob", "paper")

    with pytest.raises(SessionNotActive):
        lobby.make_choice(sid, "bob", "rock")
    assert lobby.get_player("bob").stats.wins == 1


def test_choice_validation(lobby: Lobby) -> None:
    sid = _start_game(lobby)
    lobby.add_player("carol")

    with pytest.raises(InvalidChoice):
        lobby.make_choice(sid, "alice", "lizard")
    with pytest.raises(SessionNotFound):
        lobby.make_choice("game_0_missing", "alice", "rock")
    with pytest.raises(PlayerNotInSession):
        lobby.make_choice(sid, "carol", "rock")

    assert lobby.get_session(sid).choices == {}


def test_sweep_completed_respects_retention_and_keeps_active(lobby: Lobby, clock, r) -> None:
    done = _start_game(lobby)
    lobby.make_choice(done, "alice", "rock")
    lobby.make_choice(done, "bob", "rock")

    live = _start_game(lobby, "carol", "dave")

    retention = lobby.settings.session_retention_ms
    clock.advance(retention)
    assert lobby.cleanup_completed_sessions() == 0

    clock.advance(retention * 10)
    assert lobby.cleanup_completed_sessions() == 1
    assert set(lobby.get_state().game_sessions) == {live}

    snapshot = r.get(lobby.store.key)
    assert lobby.cleanup_completed_sessions() == 0
    assert r.get(lobby.store.key) == snapshot


def test_sweep_completed_accepts_explicit_retention(lobby: Lobby, clock) -> None:
    sid = _start_game(lobby)
    lobby.make_choice(sid, "alice", "rock")
    lobby.make_choice(sid, "bob", "paper")

    clock.advance(11)
    assert lobby.cleanup_completed_sessions(retention_ms=10) == 1
    assert lobby.get_session(sid) is None
