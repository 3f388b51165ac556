"""
Issue selection policies.

After an issue resolves, the orchestrator asks a policy which pending issue
becomes active next and which pending issues, if any, are archived because
play has moved past them.
"""

from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

from ..models import Issue


@dataclass
class Selection:
    """A policy decision."""
    next_issue_id: Optional[str] = None
    archive_ids: list[str] = field(default_factory=list)


@runtime_checkable
class IssueSelectionPolicy(Protocol):
    """Chooses the next active issue."""

    def select_next(self, resolved: Issue, issues: list[Issue]) -> Selection:
        """
        Args:
            resolved: The issue that has just been resolved
            issues: Every issue in the catalog, in position order
        """
        ...


class PositionQueuePolicy:
    """
    Activate the first pending issue by catalog position.

    With archive_skipped, pending issues positioned before the resolved one
    are archived, since play has already moved past them.
    """

    def __init__(self, archive_skipped: bool = False):
        self.archive_skipped = archive_skipped

    def select_next(self, resolved: Issue, issues: list[Issue]) -> Selection:
        pending = [i for i in issues if i.status == "pending" and i.id != resolved.id]
        skipped = []
        if self.archive_skipped:
            skipped = [i for i in pending if i.position < resolved.position]
        remaining = [i for i in pending if i not in skipped]

        return Selection(
            next_issue_id=remaining[0].id if remaining else None,
            archive_ids=[i.id for i in skipped]
        )


class OrderedQueuePolicy:
    """
    Walk a fixed list of issue ids.

    The next issue is the first pending id after the resolved one in the
    queue. With archive_skipped, pending ids the walk passes over (because
    they come earlier in the queue) are archived.
    """

    def __init__(self, issue_ids: list[str], archive_skipped: bool = True):
        self.issue_ids = list(issue_ids)
        self.archive_skipped = archive_skipped

    def select_next(self, resolved: Issue, issues: list[Issue]) -> Selection:
        status = {i.id: i.status for i in issues}
        if resolved.id in self.issue_ids:
            start = self.issue_ids.index(resolved.id) + 1
        else:
            start = 0

        next_id = None
        for issue_id in self.issue_ids[start:]:
            if status.get(issue_id) == "pending":
                next_id = issue_id
                break

        archive_ids = []
        if self.archive_skipped:
            archive_ids = [
                issue_id for issue_id in self.issue_ids[:start]
                if status.get(issue_id) == "pending" and issue_id != resolved.id
            ]
        return Selection(next_issue_id=next_id, archive_ids=archive_ids)


class NoNextIssuePolicy:
    """Leave the game without an active issue after each resolution."""

    def select_next(self, resolved: Issue, issues: list[Issue]) -> Selection:
        return Selection()
