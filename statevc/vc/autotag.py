"""Heuristic tags derived from the shape of a game-state document."""

from datetime import datetime
from typing import Any

from statevc.vc.walk import kind_of


ROUND_MILESTONE = 10


def derive_tags(document: Any, timestamp: datetime) -> list[str]:
    """
    Derive automatic labels for a commit.

    Documents that do not look like a game state simply get no
    document-based labels.

    Args:
        document: The state being committed.
        timestamp: Commit time.

    Returns:
        Labels such as "round-20", "game-end", "bankruptcy", "weekend-save".
    """
    tags: list[str] = []

    if kind_of(document) == "mapping":
        round_number = document.get("round")
        if (
            isinstance(round_number, int)
            and not isinstance(round_number, bool)
            and round_number > 0
            and round_number % ROUND_MILESTONE == 0
        ):
            tags.append(f"round-{round_number}")

        if document.get("status") == "finished":
            tags.append("game-end")

        players = document.get("players")
        if kind_of(players) == "sequence" and any(_is_bankrupt(p) for p in players):
            tags.append("bankruptcy")

    # Saturday and Sunday
    if timestamp.weekday() >= 5:
        tags.append("weekend-save")

    return tags


def _is_bankrupt(player: Any) -> bool:
    if kind_of(player) != "mapping":
        return False
    money = player.get("money")
    return isinstance(money, (int, float)) and not isinstance(money, bool) and money <= 0
