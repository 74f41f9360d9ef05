"""Named failures raised by lobby operations.

All of them derive from ValueError so callers that only care about "the request
was invalid" can keep catching that. `kind` groups them for transports that
need a coarser classification (HTTP status codes, UI copy).
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    validation = "validation"
    not_found = "not_found"
    authorization = "authorization"
    state_conflict = "state_conflict"
    expiry = "expiry"


class CoordinationError(ValueError):
    kind: ErrorKind = ErrorKind.validation
    default_message: str = "Invalid request"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


# Validation


class DuplicateUsername(CoordinationError):
    kind = ErrorKind.validation
    default_message = "Username already taken"


class InvalidChoice(CoordinationError):
    kind = ErrorKind.validation
    default_message = "Choice must be one of rock, paper, scissors"


class SelfChallenge(CoordinationError):
    kind = ErrorKind.validation
    default_message = "Players cannot challenge themselves"


# NotFound


class PlayerNotFound(CoordinationError):
    kind = ErrorKind.not_found
    default_message = "One or both players not found"


class ChallengeNotFound(CoordinationError):
    kind = ErrorKind.not_found
    default_message = "Challenge not found"


class SessionNotFound(CoordinationError):
    kind = ErrorKind.not_found
    default_message = "Game session not found"


class NoReplayRequest(CoordinationError):
    kind = ErrorKind.not_found
    default_message = "No replay challenge found in session"


# Authorization


class NotChallenged(CoordinationError):
    kind = ErrorKind.authorization
    default_message = "Only the challenged player can respond to a challenge"


class PlayerNotInSession(CoordinationError):
    kind = ErrorKind.authorization
    default_message = "Player not in this game session"


# StateConflict


class PlayerOffline(CoordinationError):
    kind = ErrorKind.state_conflict
    default_message = "Both players must be online"


class ChallengeAlreadyExists(CoordinationError):
    kind = ErrorKind.state_conflict
    default_message = "Challenge already exists between these players"


class NotPending(CoordinationError):
    kind = ErrorKind.state_conflict
    default_message = "Challenge is no longer pending"


class PlayerBusy(CoordinationError):
    kind = ErrorKind.state_conflict
    default_message = "Player is already in an active game"


class SessionNotActive(CoordinationError):
    kind = ErrorKind.state_conflict
    default_message = "Game session is not active"


class ChoiceAlreadyMade(CoordinationError):
    kind = ErrorKind.state_conflict
    default_message = "Player has already made a choice"


# Expiry


class ChallengeExpired(CoordinationError):
    kind = ErrorKind.expiry
    default_message = "Challenge has expired"
