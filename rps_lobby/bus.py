from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Mapping, cast

import redis

from rps_lobby.clock import now_ms
from rps_lobby.ids import new_instance_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """A "the shared document changed" notification.

    Payloads are hints only: handlers should re-read the store instead of
    trusting `new_value`, since the document may have changed again since.
    """

    key: str
    new_value: str | None
    old_value: str | None
    instance_id: str | None = None

    def to_fields(self) -> dict[str, str]:
        # Streams only carry strings; None travels as "".
        return {
            "key": self.key,
            "newValue": self.new_value or "",
            "oldValue": self.old_value or "",
            "instanceId": self.instance_id or "",
        }

    @staticmethod
    def from_fields(fields: Mapping[str, str]) -> "ChangeEvent":
        return ChangeEvent(
            key=fields.get("key", ""),
            new_value=fields.get("newValue") or None,
            old_value=fields.get("oldValue") or None,
            instance_id=fields.get("instanceId") or None,
        )


ChangeHandler = Callable[[ChangeEvent], None]
TeardownHook = Callable[[], None]


class ChangeBus:
    """Cross-context change notification over a Redis stream.

    - `publish()` appends to the stream for every *other* context.
    - `poll()` reads entries appended since the last poll and dispatches the ones
      written by other contexts to local subscribers.
    - `notify_local()` dispatches to local subscribers only; writers call it when
      their own subscribers need to react right away.
    """

    def __init__(
        self,
        *,
        r: redis.Redis,
        stream_key: str,
        instance_id: str | None = None,
        maxlen: int = 1_000,
    ) -> None:
        self.r = r
        self.stream_key = stream_key
        self.instance_id = instance_id or new_instance_id(now=now_ms())
        self.maxlen = maxlen

        self._handlers: list[ChangeHandler] = []
        self._teardown_hooks: list[TeardownHook] = []
        self._closed = False
        self._last_id = self._latest_stream_id()

    def _latest_stream_id(self) -> str:
        # Only deliver what is published after this context came up.
        entries = self.r.xrevrange(self.stream_key, count=1)
        if entries:
            return cast(str, entries[0][0])
        return "0-0"

    def subscribe(self, handler: ChangeHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    def publish(self, event: ChangeEvent) -> str:
        stream_id = self.r.xadd(self.stream_key, event.to_fields(), maxlen=self.maxlen, approximate=True)
        return cast(str, stream_id)

    def notify_local(self, event: ChangeEvent) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                logger.exception("Change handler failed for %s", event.key)

    def poll(self, *, block_ms: int = 0, count: int = 100) -> int:
        """Dispatch changes made by other contexts. Returns how many were delivered."""

        # block=0 would block forever in Redis; None means return immediately.
        resp = self.r.xread({self.stream_key: self._last_id}, count=count, block=block_ms or None)
        if not resp:
            return 0

        delivered = 0
        for _stream, messages in resp:
            for msg_id, fields in messages:
                self._last_id = msg_id
                event = ChangeEvent.from_fields(fields)
                if event.instance_id == self.instance_id:
                    continue
                self.notify_local(event)
                delivered += 1
        return delivered

    def on_teardown(self, hook: TeardownHook) -> None:
        self._teardown_hooks.append(hook)

    def close(self) -> None:
        """Run teardown hooks once (page hide / process exit) and drop subscribers."""

        if self._closed:
            return
        self._closed = True
        for hook in self._teardown_hooks:
            try:
                hook()
            except Exception:
                logger.exception("Teardown hook failed for instance %s", self.instance_id)
        self._handlers.clear()
