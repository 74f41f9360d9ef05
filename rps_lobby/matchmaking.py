from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rps_lobby.errors import CoordinationError
from rps_lobby.ids import new_id
from rps_lobby.models import Document, WaitingQueueEntry

if TYPE_CHECKING:
    from rps_lobby.models import Challenge

logger = logging.getLogger(__name__)

QUEUE_ID_PREFIX = "queue"


def find_entry(*, doc: Document, waiting_player: str, target_player: str) -> WaitingQueueEntry | None:
    return next(
        (e for e in doc.waiting_queue if e.waiting_player == waiting_player and e.target_player == target_player),
        None,
    )


def enqueue(*, doc: Document, waiting_player: str, target_player: str, now: int) -> WaitingQueueEntry:
    """Park a challenge intent. Re-enqueueing the same ordered pair returns the existing entry."""

    existing = find_entry(doc=doc, waiting_player=waiting_player, target_player=target_player)
    if existing is not None:
        return existing

    entry = WaitingQueueEntry(
        id=new_id(QUEUE_ID_PREFIX, now=now, taken={e.id for e in doc.waiting_queue}),
        waiting_player=waiting_player,
        target_player=target_player,
        created_at=now,
    )
    doc.waiting_queue.append(entry)
    return entry


def dequeue_entry(*, doc: Document, waiting_player: str, target_player: str) -> bool:
    before = len(doc.waiting_queue)
    doc.waiting_queue = [
        e for e in doc.waiting_queue if not (e.waiting_player == waiting_player and e.target_player == target_player)
    ]
    return len(doc.waiting_queue) != before


def dequeue_all_for(*, doc: Document, username: str) -> int:
    """Drop every entry the player takes part in, on either side."""

    before = len(doc.waiting_queue)
    doc.waiting_queue = [e for e in doc.waiting_queue if username not in (e.waiting_player, e.target_player)]
    return before - len(doc.waiting_queue)


def entries_for_target(*, doc: Document, target_player: str) -> list[WaitingQueueEntry]:
    out = [e for e in doc.waiting_queue if e.target_player == target_player]
    out.sort(key=lambda e: e.created_at)
    return out


def try_deliver_for(*, doc: Document, freed_player: str, now: int, ttl_ms: int) -> Challenge | None:
    """Turn the oldest deliverable queue entry aimed at `freed_player` into a challenge.

    Entries whose waiting player went offline or got into another game are
    discarded along the way. Returns None when nothing could be delivered.
    """

    from rps_lobby.challenges import create_challenge
    from rps_lobby.sessions import active_session_for

    for entry in entries_for_target(doc=doc, target_player=freed_player):
        dequeue_entry(doc=doc, waiting_player=entry.waiting_player, target_player=entry.target_player)

        waiting = doc.players.get(entry.waiting_player)
        if waiting is None or not waiting.is_online:
            logger.debug("Discarding queue entry %s: %s is gone", entry.id, entry.waiting_player)
            continue
        if active_session_for(doc=doc, username=entry.waiting_player) is not None:
            logger.debug("Discarding queue entry %s: %s is playing", entry.id, entry.waiting_player)
            continue

        try:
            outcome = create_challenge(
                doc=doc,
                challenger=entry.waiting_player,
                challenged=freed_player,
                now=now,
                ttl_ms=ttl_ms,
            )
        except CoordinationError as e:
            logger.info("Queued challenge %s -> %s not delivered: %s", entry.waiting_player, freed_player, e)
            return None
        return outcome.challenge

    return None
