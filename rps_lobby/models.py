from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase in the persisted JSON document."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChallengeStatus(StrEnum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    expired = "expired"


class SessionStatus(StrEnum):
    active = "active"
    completed = "completed"
    cancelled = "cancelled"


class Choice(StrEnum):
    rock = "rock"
    paper = "paper"
    scissors = "scissors"


class GameResult(StrEnum):
    win = "win"
    lose = "lose"
    draw = "draw"


class PlayerStats(CamelModel):
    games_played: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    win_streak: int = 0
    best_streak: int = 0


class Player(CamelModel):
    username: str
    # Execution context that registered this player; used for teardown cleanup.
    instance_id: str
    joined_at: int
    is_online: bool = True
    stats: PlayerStats = Field(default_factory=PlayerStats)


class Challenge(CamelModel):
    id: str
    challenger: str
    challenged: str
    status: ChallengeStatus = ChallengeStatus.pending
    created_at: int
    expires_at: int
    # Set only once accepted.
    game_session_id: str | None = None


class ReplayRequest(CamelModel):
    challenge_id: str
    from_player: str = Field(alias="from")
    to_player: str = Field(alias="to")
    timestamp: int


class GameSession(CamelModel):
    id: str
    # Exactly two usernames, order fixed at creation (challenger first).
    players: list[str]
    status: SessionStatus = SessionStatus.active
    choices: dict[str, Choice] = Field(default_factory=dict)
    result: dict[str, GameResult] | None = None
    winner: str | None = None
    created_at: int
    completed_at: int | None = None

    # Post-game "play again" offer, if one is outstanding.
    replay_challenge: ReplayRequest | None = None

    def opponent_of(self, username: str) -> str:
        return next(p for p in self.players if p != username)


class WaitingQueueEntry(CamelModel):
    id: str
    waiting_player: str
    target_player: str
    created_at: int


class LeaderboardEntry(CamelModel):
    rank: int
    username: str
    score: int
    win_rate: int
    games_played: int
    wins: int
    losses: int
    draws: int
    win_streak: int
    best_streak: int
    is_online: bool


class Document(CamelModel):
    """The whole coordination state. Always read and written as one unit."""

    players: dict[str, Player] = Field(default_factory=dict)
    # Derived from players; cached for fast reads.
    leaderboard: list[LeaderboardEntry] = Field(default_factory=list)
    challenges: dict[str, Challenge] = Field(default_factory=dict)
    game_sessions: dict[str, GameSession] = Field(default_factory=dict)
    waiting_queue: list[WaitingQueueEntry] = Field(default_factory=list)
    last_updated: int | None = None
