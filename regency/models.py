"""
Domain records for the game catalog, shared state and history.
"""

from dataclasses import dataclass, field
from typing import Optional


ISSUE_STATUSES = ("pending", "active", "resolving", "resolved", "archived")
GAME_STATUSES = ("active", "paused", "completed")


@dataclass
class Role:
    """A player position such as the Regent or the Treasury Minister."""
    id: str
    name: str
    description: str = ""


@dataclass
class Issue:
    """A decision point players resolve."""
    id: str
    title: str
    description: str = ""
    category: str = ""
    status: str = "pending"
    position: int = 0

    def summary(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "status": self.status,
        }


@dataclass
class Variable:
    """A shared integer quantity, optionally bounded."""
    id: str
    name: str
    current_value: int = 0
    min_value: Optional[int] = None
    max_value: Optional[int] = None
    description: str = ""


@dataclass
class GameState:
    """The singleton record of which issue is live and which round it is."""
    current_issue_id: Optional[str]
    round: int = 1
    status: str = "active"


@dataclass
class HistoryRecord:
    """An immutable entry describing one resolution and what it changed."""
    issue_id: str
    player_role: str
    resolution_choice: str
    narrative_outcome: str
    round: int
    state_changes: dict[str, int] = field(default_factory=dict)
    success: bool = True
    id: Optional[int] = None
    created_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "issue_id": self.issue_id,
            "player_role": self.player_role,
            "resolution_choice": self.resolution_choice,
            "narrative_outcome": self.narrative_outcome,
            "state_changes": dict(self.state_changes),
            "round": self.round,
            "success": self.success,
            "created_at": self.created_at,
        }
