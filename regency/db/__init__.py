"""Storage module for the game catalog, shared variables, game state and history."""

from .database import Database, json_dumps, json_loads, utc_now
from .catalog import Catalog
from .variable_store import VariableStore, clamp
from .history import HistoryLedger
from .game_state import GameStateStore

__all__ = [
    "Database",
    "json_dumps",
    "json_loads",
    "utc_now",
    "Catalog",
    "VariableStore",
    "clamp",
    "HistoryLedger",
    "GameStateStore",
]
