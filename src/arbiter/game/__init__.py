"""Game collaborators: rules capability object and search primitive."""

from arbiter.game.clock import GameClock
from arbiter.game.rules import (
    SENTINEL,
    ChessRules,
    GameRules,
    Outcome,
    parse_side,
    side_label,
)
from arbiter.game.search import (
    MATE_THRESHOLD,
    MAX_EVAL,
    SearchCancelled,
    SearchStats,
    is_decisive,
)

__all__ = [
    "SENTINEL",
    "ChessRules",
    "GameClock",
    "GameRules",
    "MATE_THRESHOLD",
    "MAX_EVAL",
    "Outcome",
    "SearchCancelled",
    "SearchStats",
    "is_decisive",
    "parse_side",
    "side_label",
]
