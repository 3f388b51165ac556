"""Core module for the issue resolution pipeline."""

from .locks import IssueLockRegistry
from .policy import (
    IssueSelectionPolicy,
    Selection,
    PositionQueuePolicy,
    OrderedQueuePolicy,
    NoNextIssuePolicy,
)
from .orchestrator import (
    ResolutionOrchestrator,
    ResolutionResult,
    GameSnapshot,
    build_orchestrator,
)

__all__ = [
    "IssueLockRegistry",
    "IssueSelectionPolicy",
    "Selection",
    "PositionQueuePolicy",
    "OrderedQueuePolicy",
    "NoNextIssuePolicy",
    "ResolutionOrchestrator",
    "ResolutionResult",
    "GameSnapshot",
    "build_orchestrator",
]
