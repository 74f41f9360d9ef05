from __future__ import annotations

import logging

import redis
from pydantic import ValidationError

from rps_lobby.clock import Clock, now_ms
from rps_lobby.models import Document

logger = logging.getLogger(__name__)

DEFAULT_STATE_KEY = "rps_game_state"


def decode_document(raw: str | None) -> Document:
    """Parse a stored document; anything missing or malformed reads as empty."""

    if not raw:
        return Document()
    try:
        return Document.model_validate_json(raw)
    except ValidationError:
        logger.warning("Discarding malformed lobby state (%d bytes)", len(raw))
        return Document()


def encode_document(doc: Document) -> str:
    return doc.model_dump_json(by_alias=True)


class StateStore:
    """Whole-document read/write over a single Redis key.

    There is no partial update and no version check: callers read, compute a
    new document and write it back, and the last write wins.
    """

    def __init__(self, *, r: redis.Redis, key: str = DEFAULT_STATE_KEY, clock: Clock = now_ms) -> None:
        self.r = r
        self.key = key
        self._clock = clock

    def read_raw(self) -> str | None:
        try:
            raw = self.r.get(self.key)
        except UnicodeDecodeError:
            # Undecodable bytes are treated like a missing document.
            logger.warning("Discarding undecodable lobby state under %s", self.key)
            return None
        return raw or None

    def read(self) -> Document:
        return decode_document(self.read_raw())

    def write(self, doc: Document) -> str:
        """Stamp `last_updated`, persist, and return the serialized document."""

        doc.last_updated = self._clock()
        raw = encode_document(doc)
        self.r.set(self.key, raw)
        return raw
