from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from e


@dataclass(frozen=True, slots=True)
class Settings:
    redis_url: str = "redis://localhost:6379/0"
    state_key: str = "rps_game_state"

    # Pending challenges stop being acceptable after this long.
    challenge_ttl_ms: int = 2 * 60 * 1000
    # Completed/cancelled sessions are kept this long for result screens.
    session_retention_ms: int = 5 * 60 * 1000

    refresh_interval_ms: int = 5_000
    cleanup_interval_ms: int = 10_000

    stream_maxlen: int = 1_000

    @property
    def changes_stream_key(self) -> str:
        return f"{self.state_key}:changes"


def load_settings(*, dotenv_path: Path | None = None) -> Settings:
    """Build Settings from the environment.

    If `dotenv_path` exists it is loaded first without overriding variables that
    are already set.
    """

    if dotenv_path is not None and dotenv_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=dotenv_path, override=False)

    defaults = Settings()
    return Settings(
        redis_url=os.environ.get("REDIS_URL", defaults.redis_url),
        state_key=os.environ.get("RPS_STATE_KEY", defaults.state_key),
        challenge_ttl_ms=_env_int("RPS_CHALLENGE_TTL_MS", defaults.challenge_ttl_ms),
        session_retention_ms=_env_int("RPS_SESSION_RETENTION_MS", defaults.session_retention_ms),
        refresh_interval_ms=_env_int("RPS_REFRESH_INTERVAL_MS", defaults.refresh_interval_ms),
        cleanup_interval_ms=_env_int("RPS_CLEANUP_INTERVAL_MS", defaults.cleanup_interval_ms),
        stream_maxlen=_env_int("RPS_STREAM_MAXLEN", defaults.stream_maxlen),
    )
