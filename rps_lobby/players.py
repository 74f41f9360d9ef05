from __future__ import annotations

from rps_lobby.errors import DuplicateUsername, PlayerNotFound
from rps_lobby.models import Document, GameResult, Player, PlayerStats
from rps_lobby.scoring import rank


def refresh_leaderboard(*, doc: Document) -> None:
    doc.leaderboard = rank(doc.players.values())


def register_player(*, doc: Document, username: str, instance_id: str, now: int) -> Player:
    if username in doc.players:
        raise DuplicateUsername()

    player = Player(username=username, instance_id=instance_id, joined_at=now, is_online=True, stats=PlayerStats())
    doc.players[username] = player
    refresh_leaderboard(doc=doc)
    return player


def require_player(*, doc: Document, username: str) -> Player:
    player = doc.players.get(username)
    if player is None:
        raise PlayerNotFound(f"Player not found: {username}")
    return player


def set_online(*, doc: Document, username: str, is_online: bool) -> Player:
    player = require_player(doc=doc, username=username)
    player.is_online = is_online
    refresh_leaderboard(doc=doc)
    return player


def list_online(*, doc: Document) -> list[Player]:
    return [p for p in doc.players.values() if p.is_online]


def players_of_instance(*, doc: Document, instance_id: str) -> list[str]:
    return [p.username for p in doc.players.values() if p.instance_id == instance_id]


def apply_result(*, player: Player, result: GameResult) -> None:
    """Fold one finished game into a player's stats."""

    stats = player.stats
    stats.games_played += 1
    if result == GameResult.win:
        stats.wins += 1
        stats.win_streak += 1
        stats.best_streak = max(stats.best_streak, stats.win_streak)
    elif result == GameResult.lose:
        stats.losses += 1
        stats.win_streak = 0
    else:
        stats.draws += 1
