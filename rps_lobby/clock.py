from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time as integer epoch milliseconds."""

    return time.time_ns() // 1_000_000
