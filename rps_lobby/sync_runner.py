from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from rps_lobby.config import Settings
from rps_lobby.lobby import Lobby

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SyncRunnerConfig:
    # How long to block waiting for a change-stream entry.
    block_ms: int = 250
    # Max stream entries to read per poll.
    count: int = 100
    refresh_interval_ms: int = 5_000
    cleanup_interval_ms: int = 10_000

    @staticmethod
    def from_settings(settings: Settings, *, block_ms: int = 250) -> "SyncRunnerConfig":
        return SyncRunnerConfig(
            block_ms=block_ms,
            refresh_interval_ms=settings.refresh_interval_ms,
            cleanup_interval_ms=settings.cleanup_interval_ms,
        )


@dataclass(slots=True)
class SyncRunnerState:
    last_refresh_ms: int | None = None
    last_cleanup_ms: int | None = None


@dataclass(frozen=True, slots=True)
class SyncStepResult:
    delivered: int
    refreshed: bool
    expired_challenges: int
    purged_sessions: int


def _due(last: int | None, *, now: int, interval_ms: int) -> bool:
    return last is None or now - last >= interval_ms


def run_sync_step(*, lobby: Lobby, state: SyncRunnerState, config: SyncRunnerConfig, now: int) -> SyncStepResult:
    """One reconciliation pass for a context.

    - Delivers change notifications written by other contexts
    - Re-reads the document on the refresh interval, in case a notification was lost
    - Runs both sweeps on the cleanup interval
    """

    delivered = lobby.bus.poll(block_ms=config.block_ms, count=config.count)

    refreshed = False
    if _due(state.last_refresh_ms, now=now, interval_ms=config.refresh_interval_ms):
        refreshed = lobby.refresh()
        state.last_refresh_ms = now

    expired = purged = 0
    if _due(state.last_cleanup_ms, now=now, interval_ms=config.cleanup_interval_ms):
        expired = lobby.cleanup_expired_challenges()
        purged = lobby.cleanup_completed_sessions()
        state.last_cleanup_ms = now
        if expired or purged:
            logger.debug("Sweep removed %d challenges and %d sessions", expired, purged)

    return SyncStepResult(
        delivered=delivered,
        refreshed=refreshed,
        expired_challenges=expired,
        purged_sessions=purged,
    )


async def run_sync_loop(
    *,
    lobby: Lobby,
    stop: asyncio.Event,
    config: SyncRunnerConfig | None = None,
    idle_s: float = 0.25,
) -> None:
    """Run sync steps until `stop` is set.

    Polls without blocking Redis and sleeps on the event loop between steps, so
    other coroutines in this context keep running.
    """

    cfg = config or SyncRunnerConfig.from_settings(lobby.settings)
    step_cfg = SyncRunnerConfig(
        block_ms=0,
        count=cfg.count,
        refresh_interval_ms=cfg.refresh_interval_ms,
        cleanup_interval_ms=cfg.cleanup_interval_ms,
    )
    state = SyncRunnerState()

    while not stop.is_set():
        run_sync_step(lobby=lobby, state=state, config=step_cfg, now=lobby.now())
        try:
            await asyncio.wait_for(stop.wait(), timeout=idle_s)
        except asyncio.TimeoutError:
            pass
