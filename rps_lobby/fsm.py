from __future__ import annotations

from statemachine import State, StateMachine

from rps_lobby.models import Challenge, ChallengeStatus, GameSession, SessionStatus


class ChallengeFSM(StateMachine):
    """Lifecycle guard for a Challenge: pending -> accepted | rejected | expired.

    Expiry is time based and checked lazily, so `expire` is only fired for views;
    the stored record of a stale challenge stays pending until the sweep purges it.
    """

    pending = State(ChallengeStatus.pending.value, value=ChallengeStatus.pending.value, initial=True)
    accepted = State(ChallengeStatus.accepted.value, value=ChallengeStatus.accepted.value, final=True)
    rejected = State(ChallengeStatus.rejected.value, value=ChallengeStatus.rejected.value, final=True)
    expired = State(ChallengeStatus.expired.value, value=ChallengeStatus.expired.value, final=True)

    accept = pending.to(accepted)
    reject = pending.to(rejected)
    expire = pending.to(expired)

    def __init__(self, challenge: Challenge):
        self.challenge = challenge
        super().__init__(start_value=challenge.status.value)

    def sync_status_to_model(self) -> None:
        self.challenge.status = ChallengeStatus(str(self.current_state.value))


class SessionFSM(StateMachine):
    """Lifecycle guard for a GameSession: active -> completed | cancelled."""

    active = State(SessionStatus.active.value, value=SessionStatus.active.value, initial=True)
    completed = State(SessionStatus.completed.value, value=SessionStatus.completed.value, final=True)
    cancelled = State(SessionStatus.cancelled.value, value=SessionStatus.cancelled.value, final=True)

    resolve = active.to(completed)
    cancel = active.to(cancelled)

    def __init__(self, session: GameSession):
        self.session = session
        super().__init__(start_value=session.status.value)

    def sync_status_to_model(self) -> None:
        self.session.status = SessionStatus(str(self.current_state.value))
