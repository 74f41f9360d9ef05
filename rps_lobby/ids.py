from __future__ import annotations

import random
import string
from collections.abc import Container

_ALPHABET = string.ascii_lowercase + string.digits
_rng = random.SystemRandom()


def _suffix(n: int = 9) -> str:
    return "".join(_rng.choice(_ALPHABET) for _ in range(n))


def new_id(kind: str, *, now: int, taken: Container[str] = ()) -> str:
    """Return `<kind>_<timestamp>_<random-suffix>`, re-rolling on a collision with `taken`."""

    while True:
        candidate = f"{kind}_{now}_{_suffix()}"
        if candidate not in taken:
            return candidate


def new_instance_id(*, now: int) -> str:
    return new_id("tab", now=now)
