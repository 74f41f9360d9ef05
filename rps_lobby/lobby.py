from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Callable

from rps_lobby import challenges, matchmaking, players, sessions
from rps_lobby.bus import ChangeBus, ChangeEvent
from rps_lobby.challenges import AcceptedChallenge, ChallengeOutcome
from rps_lobby.clock import Clock, now_ms
from rps_lobby.config import Settings
from rps_lobby.errors import NoReplayRequest, PlayerNotInSession, SessionNotActive
from rps_lobby.models import (
    Challenge,
    ChallengeStatus,
    Choice,
    Document,
    GameSession,
    LeaderboardEntry,
    Player,
    ReplayRequest,
    SessionStatus,
    WaitingQueueEntry,
)
from rps_lobby.sessions import ChoiceOutcome
from rps_lobby.store import StateStore, decode_document

logger = logging.getLogger(__name__)


class Lobby:
    """One context's handle on the shared lobby state.

    Every mutating call is a single read -> compute -> write cycle against the
    store. Nothing is locked or versioned: if another context writes in between,
    whichever write lands last wins.
    """

    def __init__(
        self,
        *,
        store: StateStore,
        bus: ChangeBus,
        settings: Settings | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.store = store
        self.bus = bus
        self.settings = settings or Settings()
        self._clock = clock
        self._last_seen_raw: str | None = None

        # Leaving the page drops whoever this context logged in.
        self.bus.on_teardown(self._drop_local_players)

    @property
    def instance_id(self) -> str:
        return self.bus.instance_id

    def now(self) -> int:
        return self._clock()

    # ---- plumbing ----

    def _read(self) -> Document:
        raw = self.store.read_raw()
        self._last_seen_raw = raw
        return decode_document(raw)

    @contextmanager
    def _mutate(self) -> Iterator[Document]:
        old_raw = self.store.read_raw()
        doc = decode_document(old_raw)
        before = doc.model_dump()

        yield doc

        if doc.model_dump() == before:
            self._last_seen_raw = old_raw
            return

        new_raw = self.store.write(doc)
        self._last_seen_raw = new_raw

        event = ChangeEvent(
            key=self.store.key,
            new_value=new_raw,
            old_value=old_raw,
            instance_id=self.instance_id,
        )
        self.bus.publish(event)
        self.bus.notify_local(event)

    def subscribe(self, handler: Callable[[ChangeEvent], None]) -> Callable[[], None]:
        return self.bus.subscribe(handler)

    def refresh(self) -> bool:
        """Re-read the document and tell local subscribers if it moved since we last looked.

        This covers notifications that were missed or never sent.
        """

        previous = self._last_seen_raw
        current = self.store.read_raw()
        self._last_seen_raw = current
        if current == previous:
            return False

        self.bus.notify_local(
            ChangeEvent(key=self.store.key, new_value=current, old_value=previous, instance_id=None)
        )
        return True

    def get_state(self) -> Document:
        return self._read()

    # ---- players ----

    def add_player(self, username: str) -> Player:
        with self._mutate() as doc:
            player = players.register_player(
                doc=doc,
                username=username,
                instance_id=self.instance_id,
                now=self._clock(),
            )
        logger.info("Player %s joined from %s", username, self.instance_id)
        return player

    def remove_player(self, username: str) -> None:
        with self._mutate() as doc:
            self._drop_player(doc=doc, username=username)

    def _drop_player(self, *, doc: Document, username: str) -> None:
        if doc.players.pop(username, None) is None:
            return

        now = self._clock()
        matchmaking.dequeue_all_for(doc=doc, username=username)

        session = sessions.active_session_for(doc=doc, username=username)
        if session is not None:
            sessions.cancel_session(doc=doc, session=session, now=now)
            opponent = session.opponent_of(username)
            if opponent in doc.players:
                matchmaking.try_deliver_for(
                    doc=doc,
                    freed_player=opponent,
                    now=now,
                    ttl_ms=self.settings.challenge_ttl_ms,
                )

        players.refresh_leaderboard(doc=doc)
        logger.info("Player %s left", username)

    def _drop_local_players(self) -> None:
        with self._mutate() as doc:
            for username in players.players_of_instance(doc=doc, instance_id=self.instance_id):
                self._drop_player(doc=doc, username=username)

    def set_online(self, username: str, is_online: bool) -> Player:
        with self._mutate() as doc:
            return players.set_online(doc=doc, username=username, is_online=is_online)

    def get_player(self, username: str) -> Player | None:
        return self._read().players.get(username)

    def get_online_players(self) -> list[Player]:
        return players.list_online(doc=self._read())

    def watch_presence(self, username: str, on_removed: Callable[[], None]) -> Callable[[], None]:
        """Call `on_removed` once when `username` disappears from the shared state.

        Lets a context notice it was logged out by another context's cleanup.
        """

        fired = False

        def _handler(_event: ChangeEvent) -> None:
            nonlocal fired
            if fired:
                return
            # Re-read rather than trust the event payload.
            if username not in self.store.read().players:
                fired = True
                on_removed()

        return self.bus.subscribe(_handler)

    # ---- challenges ----

    def create_challenge(self, challenger: str, challenged: str) -> ChallengeOutcome:
        with self._mutate() as doc:
            outcome = challenges.create_challenge(
                doc=doc,
                challenger=challenger,
                challenged=challenged,
                now=self._clock(),
                ttl_ms=self.settings.challenge_ttl_ms,
            )
        if outcome.target_busy:
            logger.info("%s is busy; queued challenge from %s", challenged, challenger)
        return outcome

    def accept_challenge(self, challenge_id: str, username: str) -> AcceptedChallenge:
        with self._mutate() as doc:
            return challenges.accept_challenge(
                doc=doc,
                challenge_id=challenge_id,
                acting_user=username,
                now=self._clock(),
            )

    def reject_challenge(self, challenge_id: str, username: str) -> Challenge:
        with self._mutate() as doc:
            return challenges.reject_challenge(doc=doc, challenge_id=challenge_id, acting_user=username)

    def get_challenge(self, challenge_id: str) -> Challenge | None:
        challenge = self._read().challenges.get(challenge_id)
        if challenge is None:
            return None
        return challenge.model_copy(update={"status": challenges.effective_status(challenge, now=self._clock())})

    def get_pending_challenges_for(self, username: str) -> list[Challenge]:
        return challenges.pending_for(doc=self._read(), username=username, now=self._clock())

    def get_sent_challenges_for(self, username: str) -> list[Challenge]:
        return challenges.sent_by(doc=self._read(), username=username, now=self._clock())

    # ---- sessions ----

    def make_choice(self, session_id: str, username: str, choice: str | Choice) -> ChoiceOutcome:
        with self._mutate() as doc:
            outcome = sessions.submit_choice(
                doc=doc,
                session_id=session_id,
                username=username,
                choice=choice,
                now=self._clock(),
                ttl_ms=self.settings.challenge_ttl_ms,
            )
        if outcome.resolved:
            logger.info("Session %s completed (winner=%s)", session_id, outcome.session.winner)
        return outcome

    def get_session(self, session_id: str) -> GameSession | None:
        return self._read().game_sessions.get(session_id)

    def get_active_session_for(self, username: str) -> GameSession | None:
        return sessions.active_session_for(doc=self._read(), username=username)

    def is_player_in_active_game(self, username: str) -> bool:
        return self.get_active_session_for(username) is not None

    # ---- replay ----

    def request_replay(self, session_id: str, username: str) -> ChallengeOutcome:
        """Challenge the opponent of a finished game to another round.

        A busy opponent gets the request parked in the waiting queue, exactly
        like `create_challenge`; no replay marker is set in that case.
        """

        with self._mutate() as doc:
            session = self._require_finished_session_member(doc=doc, session_id=session_id, username=username)
            opponent = session.opponent_of(username)
            now = self._clock()
            outcome = challenges.create_challenge(
                doc=doc,
                challenger=username,
                challenged=opponent,
                now=now,
                ttl_ms=self.settings.challenge_ttl_ms,
            )
            if outcome.challenge is not None:
                session.replay_challenge = ReplayRequest(
                    challenge_id=outcome.challenge.id,
                    from_player=username,
                    to_player=opponent,
                    timestamp=now,
                )
        if outcome.target_busy:
            logger.info("%s is busy; queued replay request from %s", opponent, username)
        return outcome

    def accept_replay(self, session_id: str, username: str) -> AcceptedChallenge:
        stale_marker = False
        with self._mutate() as doc:
            session = self._require_finished_session_member(doc=doc, session_id=session_id, username=username)
            replay = session.replay_challenge
            if replay is None:
                raise NoReplayRequest()
            if replay.challenge_id not in doc.challenges:
                # The challenge behind the marker was swept; drop the marker too.
                session.replay_challenge = None
                stale_marker = True
            else:
                accepted = challenges.accept_challenge(
                    doc=doc,
                    challenge_id=replay.challenge_id,
                    acting_user=username,
                    now=self._clock(),
                )
                session.replay_challenge = None
        if stale_marker:
            raise NoReplayRequest()
        return accepted

    def decline_replay(self, session_id: str, username: str) -> None:
        with self._mutate() as doc:
            session = self._require_finished_session_member(doc=doc, session_id=session_id, username=username)
            replay = session.replay_challenge
            if replay is None:
                return
            challenge = doc.challenges.get(replay.challenge_id)
            if (
                challenge is not None
                and challenge.challenged == username
                and challenge.status == ChallengeStatus.pending
            ):
                challenges.reject_challenge(doc=doc, challenge_id=challenge.id, acting_user=username)
            session.replay_challenge = None

    @staticmethod
    def _require_finished_session_member(*, doc: Document, session_id: str, username: str) -> GameSession:
        session = sessions.require_session(doc=doc, session_id=session_id)
        if username not in session.players:
            raise PlayerNotInSession()
        if session.status != SessionStatus.completed:
            raise SessionNotActive("Replay is only available after a completed game")
        return session

    # ---- derived views ----

    def get_leaderboard(self) -> list[LeaderboardEntry]:
        return self._read().leaderboard

    def get_waiting_queue(self) -> list[WaitingQueueEntry]:
        return self._read().waiting_queue

    # ---- sweeps (never raise on domain state) ----

    def cleanup_expired_challenges(self) -> int:
        with self._mutate() as doc:
            return challenges.sweep_expired(doc=doc, now=self._clock())

    def cleanup_completed_sessions(self, retention_ms: int | None = None) -> int:
        retention = self.settings.session_retention_ms if retention_ms is None else retention_ms
        with self._mutate() as doc:
            return sessions.sweep_completed(doc=doc, now=self._clock(), retention_ms=retention)

    def close(self) -> None:
        self.bus.close()
