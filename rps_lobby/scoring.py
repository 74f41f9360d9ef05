from __future__ import annotations

from collections.abc import Iterable

from rps_lobby.models import LeaderboardEntry, Player, PlayerStats

WIN_POINTS = 3
DRAW_POINTS = 1
STREAK_THRESHOLD = 3
STREAK_MULTIPLIER = 2


def score(stats: PlayerStats) -> int:
    bonus = stats.best_streak * STREAK_MULTIPLIER if stats.best_streak >= STREAK_THRESHOLD else 0
    return stats.wins * WIN_POINTS + stats.draws * DRAW_POINTS + bonus


def win_rate(stats: PlayerStats) -> int:
    """Whole-number percentage of games won; 0 before the first game."""

    if stats.games_played == 0:
        return 0
    # Half-up, so 2/3 -> 67 and 1/8 -> 13 regardless of banker's rounding.
    return int(stats.wins * 100 / stats.games_played + 0.5)


def rank(players: Iterable[Player]) -> list[LeaderboardEntry]:
    """Sort by (score desc, win rate desc, games played desc).

    The sort is stable: players tied on all three keys keep the order they
    were given in.
    """

    rows = [(p, score(p.stats), win_rate(p.stats)) for p in players]
    rows.sort(key=lambda row: (-row[1], -row[2], -row[0].stats.games_played))

    return [
        LeaderboardEntry(
            rank=idx,
            username=p.username,
            score=points,
            win_rate=rate,
            games_played=p.stats.games_played,
            wins=p.stats.wins,
            losses=p.stats.losses,
            draws=p.stats.draws,
            win_streak=p.stats.win_streak,
            best_streak=p.stats.best_streak,
            is_online=p.is_online,
        )
        for idx, (p, points, rate) in enumerate(rows, start=1)
    ]
