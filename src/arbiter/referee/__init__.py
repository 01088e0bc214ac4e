"""Referee: move sources, transcript and the game loop."""

from arbiter.referee.game_loop import GameLoop, GameSummary, LoopState, run_game
from arbiter.referee.sources import DisplaySource, EngineSource, MoveSource, TextInputSource
from arbiter.referee.transcript import (
    HistoryEntry,
    Transcript,
    format_record,
    parse_history,
    read_history,
)

__all__ = [
    "DisplaySource",
    "EngineSource",
    "GameLoop",
    "GameSummary",
    "HistoryEntry",
    "LoopState",
    "MoveSource",
    "TextInputSource",
    "Transcript",
    "format_record",
    "parse_history",
    "read_history",
    "run_game",
]
