from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, Field, StringConstraints

from rps_lobby.challenges import OutcomeKind
from rps_lobby.models import (
    CamelModel,
    Challenge,
    Document,
    GameSession,
    LeaderboardEntry,
    Player,
    WaitingQueueEntry,
)


class PlayerCreateRequest(BaseModel):
    username: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=32)]


class PresenceRequest(BaseModel):
    is_online: bool


class ChallengeCreateRequest(BaseModel):
    challenger: str
    challenged: str


class ActingUserRequest(BaseModel):
    username: str


class ChoiceRequest(BaseModel):
    username: str
    choice: str


class PlayerListResponse(CamelModel):
    players: list[Player]


class ChallengeListResponse(CamelModel):
    challenges: list[Challenge]


class ChallengeCreateResponse(CamelModel):
    status: OutcomeKind
    challenge: Challenge | None = None
    # Set when the target was mid-game and the request was parked instead.
    queue_entry: WaitingQueueEntry | None = None


class AcceptResponse(CamelModel):
    challenge: Challenge
    game_session_id: str


class ChoiceResponse(CamelModel):
    session: GameSession
    resolved: bool
    delivered: list[Challenge] = Field(default_factory=list)


class LeaderboardResponse(CamelModel):
    leaderboard: list[LeaderboardEntry]


class WaitingQueueResponse(CamelModel):
    waiting_queue: list[WaitingQueueEntry]


class CleanupResponse(CamelModel):
    expired_challenges: int
    purged_sessions: int


class StateResponse(CamelModel):
    state: Document
