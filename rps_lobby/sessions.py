from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from rps_lobby.errors import (
    ChoiceAlreadyMade,
    InvalidChoice,
    PlayerNotInSession,
    SessionNotActive,
    SessionNotFound,
)
from rps_lobby.fsm import SessionFSM
from rps_lobby.ids import new_id
from rps_lobby.matchmaking import try_deliver_for
from rps_lobby.models import Challenge, Choice, Document, GameResult, GameSession, SessionStatus
from rps_lobby.players import apply_result, refresh_leaderboard

SESSION_ID_PREFIX = "game"
DEFAULT_SESSION_RETENTION_MS = 5 * 60 * 1000

# choice -> the choice it beats
WIN_CONDITIONS: dict[Choice, Choice] = {
    Choice.rock: Choice.scissors,
    Choice.paper: Choice.rock,
    Choice.scissors: Choice.paper,
}

RoundWinner = Literal["player1", "player2", "draw"]


@dataclass(frozen=True, slots=True)
class ChoiceOutcome:
    session: GameSession
    # True only for the call that completed the round.
    resolved: bool
    # Challenges auto-issued from the waiting queue once both players were freed.
    delivered: list[Challenge] = field(default_factory=list)


def parse_choice(value: str | Choice) -> Choice:
    try:
        return Choice(value)
    except ValueError as e:
        raise InvalidChoice(f"Invalid choice: {value!r}") from e


def resolve(first: Choice, second: Choice) -> RoundWinner:
    if first == second:
        return "draw"
    if WIN_CONDITIONS[first] == second:
        return "player1"
    return "player2"


def active_session_for(*, doc: Document, username: str) -> GameSession | None:
    return next(
        (s for s in doc.game_sessions.values() if s.status == SessionStatus.active and username in s.players),
        None,
    )


def create_session(*, doc: Document, player_a: str, player_b: str, now: int) -> GameSession:
    session = GameSession(
        id=new_id(SESSION_ID_PREFIX, now=now, taken=doc.game_sessions),
        players=[player_a, player_b],
        status=SessionStatus.active,
        choices={},
        created_at=now,
    )
    doc.game_sessions[session.id] = session
    return session


def require_session(*, doc: Document, session_id: str) -> GameSession:
    session = doc.game_sessions.get(session_id)
    if session is None:
        raise SessionNotFound()
    return session


def _complete(*, doc: Document, session: GameSession, now: int) -> None:
    p1, p2 = session.players
    outcome = resolve(session.choices[p1], session.choices[p2])

    if outcome == "draw":
        session.result = {p1: GameResult.draw, p2: GameResult.draw}
        session.winner = None
    elif outcome == "player1":
        session.result = {p1: GameResult.win, p2: GameResult.lose}
        session.winner = p1
    else:
        session.result = {p1: GameResult.lose, p2: GameResult.win}
        session.winner = p2

    fsm = SessionFSM(session)
    fsm.resolve()
    fsm.sync_status_to_model()
    session.completed_at = now

    for username, result in session.result.items():
        player = doc.players.get(username)
        # A player who left mid-round has no stats left to update.
        if player is not None:
            apply_result(player=player, result=result)
    refresh_leaderboard(doc=doc)


def submit_choice(
    *,
    doc: Document,
    session_id: str,
    username: str,
    choice: str | Choice,
    now: int,
    ttl_ms: int,
) -> ChoiceOutcome:
    picked = parse_choice(choice)
    session = require_session(doc=doc, session_id=session_id)

    if username not in session.players:
        raise PlayerNotInSession()
    if session.status != SessionStatus.active:
        raise SessionNotActive()
    if username in session.choices:
        raise ChoiceAlreadyMade()

    session.choices[username] = picked
    if len(session.choices) < 2:
        return ChoiceOutcome(session=session, resolved=False)

    _complete(doc=doc, session=session, now=now)

    delivered: list[Challenge] = []
    for freed in session.players:
        challenge = try_deliver_for(doc=doc, freed_player=freed, now=now, ttl_ms=ttl_ms)
        if challenge is not None:
            delivered.append(challenge)

    return ChoiceOutcome(session=session, resolved=True, delivered=delivered)


def cancel_session(*, doc: Document, session: GameSession, now: int) -> None:
    """End an active session without a result (a player left)."""

    fsm = SessionFSM(session)
    fsm.cancel()
    fsm.sync_status_to_model()
    session.completed_at = now


def sweep_completed(*, doc: Document, now: int, retention_ms: int = DEFAULT_SESSION_RETENTION_MS) -> int:
    """Purge finished sessions older than `retention_ms`; active sessions always stay."""

    stale = [
        sid
        for sid, s in doc.game_sessions.items()
        if s.status != SessionStatus.active and s.completed_at is not None and now - s.completed_at > retention_ms
    ]
    for sid in stale:
        del doc.game_sessions[sid]
    return len(stale)
