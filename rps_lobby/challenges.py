from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from rps_lobby.errors import (
    ChallengeAlreadyExists,
    ChallengeExpired,
    ChallengeNotFound,
    NotChallenged,
    NotPending,
    PlayerBusy,
    PlayerNotFound,
    PlayerOffline,
    SelfChallenge,
)
from rps_lobby.fsm import ChallengeFSM
from rps_lobby.ids import new_id
from rps_lobby.matchmaking import enqueue
from rps_lobby.models import Challenge, ChallengeStatus, Document, WaitingQueueEntry
from rps_lobby.sessions import active_session_for, create_session

CHALLENGE_ID_PREFIX = "challenge"
DEFAULT_CHALLENGE_TTL_MS = 2 * 60 * 1000


class OutcomeKind(StrEnum):
    created = "created"
    target_busy = "target_busy"


@dataclass(frozen=True, slots=True)
class ChallengeOutcome:
    """Result of asking for a challenge.

    `target_busy` is not an error: the request was parked in the waiting queue
    and will be replayed when the target's game ends.
    """

    kind: OutcomeKind
    challenge: Challenge | None = None
    queue_entry: WaitingQueueEntry | None = None

    @property
    def target_busy(self) -> bool:
        return self.kind == OutcomeKind.target_busy


@dataclass(frozen=True, slots=True)
class AcceptedChallenge:
    challenge: Challenge
    game_session_id: str


def is_expired(challenge: Challenge, *, now: int) -> bool:
    return now > challenge.expires_at


def effective_status(challenge: Challenge, *, now: int) -> ChallengeStatus:
    """Status as callers should see it: a stale pending challenge reads as expired."""

    if challenge.status == ChallengeStatus.pending and is_expired(challenge, now=now):
        fsm = ChallengeFSM(challenge.model_copy())
        fsm.expire()
        return ChallengeStatus(str(fsm.current_state.value))
    return challenge.status


def pending_between(*, doc: Document, a: str, b: str) -> Challenge | None:
    pair = {a, b}
    for c in doc.challenges.values():
        if c.status == ChallengeStatus.pending and {c.challenger, c.challenged} == pair:
            return c
    return None


def create_challenge(
    *,
    doc: Document,
    challenger: str,
    challenged: str,
    now: int,
    ttl_ms: int = DEFAULT_CHALLENGE_TTL_MS,
) -> ChallengeOutcome:
    if challenger == challenged:
        raise SelfChallenge()

    a = doc.players.get(challenger)
    b = doc.players.get(challenged)
    if a is None or b is None:
        raise PlayerNotFound()
    if not a.is_online or not b.is_online:
        raise PlayerOffline()

    if active_session_for(doc=doc, username=challenged) is not None:
        entry = enqueue(doc=doc, waiting_player=challenger, target_player=challenged, now=now)
        return ChallengeOutcome(kind=OutcomeKind.target_busy, queue_entry=entry)

    # A stale pending record still blocks until the sweep purges it.
    if pending_between(doc=doc, a=challenger, b=challenged) is not None:
        raise ChallengeAlreadyExists()

    challenge = Challenge(
        id=new_id(CHALLENGE_ID_PREFIX, now=now, taken=doc.challenges),
        challenger=challenger,
        challenged=challenged,
        status=ChallengeStatus.pending,
        created_at=now,
        expires_at=now + ttl_ms,
    )
    doc.challenges[challenge.id] = challenge
    return ChallengeOutcome(kind=OutcomeKind.created, challenge=challenge)


def _require_respondable(*, doc: Document, challenge_id: str, acting_user: str) -> Challenge:
    challenge = doc.challenges.get(challenge_id)
    if challenge is None:
        raise ChallengeNotFound()
    if challenge.challenged != acting_user:
        raise NotChallenged()
    if challenge.status != ChallengeStatus.pending:
        raise NotPending()
    return challenge


def accept_challenge(*, doc: Document, challenge_id: str, acting_user: str, now: int) -> AcceptedChallenge:
    challenge = _require_respondable(doc=doc, challenge_id=challenge_id, acting_user=acting_user)
    if is_expired(challenge, now=now):
        raise ChallengeExpired()

    for username in (challenge.challenger, challenge.challenged):
        if username not in doc.players:
            raise PlayerNotFound(f"Player not found: {username}")
        if active_session_for(doc=doc, username=username) is not None:
            raise PlayerBusy(f"{username} is already in an active game")

    session = create_session(doc=doc, player_a=challenge.challenger, player_b=challenge.challenged, now=now)

    fsm = ChallengeFSM(challenge)
    fsm.accept()
    fsm.sync_status_to_model()
    challenge.game_session_id = session.id

    return AcceptedChallenge(challenge=challenge, game_session_id=session.id)


def reject_challenge(*, doc: Document, challenge_id: str, acting_user: str) -> Challenge:
    challenge = _require_respondable(doc=doc, challenge_id=challenge_id, acting_user=acting_user)

    fsm = ChallengeFSM(challenge)
    fsm.reject()
    fsm.sync_status_to_model()
    return challenge


def pending_for(*, doc: Document, username: str, now: int) -> list[Challenge]:
    """Live challenges addressed to `username`, oldest first."""

    out = [
        c
        for c in doc.challenges.values()
        if c.challenged == username and c.status == ChallengeStatus.pending and not is_expired(c, now=now)
    ]
    out.sort(key=lambda c: c.created_at)
    return out


def sent_by(*, doc: Document, username: str, now: int) -> list[Challenge]:
    out = [
        c
        for c in doc.challenges.values()
        if c.challenger == username and c.status == ChallengeStatus.pending and not is_expired(c, now=now)
    ]
    out.sort(key=lambda c: c.created_at)
    return out


def sweep_expired(*, doc: Document, now: int) -> int:
    """Remove pending challenges past their TTL. Returns how many were removed."""

    stale = [cid for cid, c in doc.challenges.items() if c.status == ChallengeStatus.pending and is_expired(c, now=now)]
    for cid in stale:
        del doc.challenges[cid]
    return len(stale)
