"""Test fixtures for regency tests."""

from .issues import make_issue, make_queue
from .state import setup_kingdom, setup_minimal_game

__all__ = [
    "make_issue",
    "make_queue",
    "setup_kingdom",
    "setup_minimal_game",
]
