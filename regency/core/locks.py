"""
Per-issue single-flight locks.

A second request for an issue that is already being resolved is refused
immediately instead of queuing behind the first.
"""

import threading
from contextlib import contextmanager
from typing import Iterator

from ..errors import ConflictError

RESOLUTION_IN_PROGRESS = "resolution already in progress"


class IssueLockRegistry:
    """Tracks which issues have a resolution in flight in this process."""

    def __init__(self):
        self._guard = threading.Lock()
        self._held: set[str] = set()

    def try_acquire(self, issue_id: str) -> bool:
        with self._guard:
            if issue_id in self._held:
                return False
            self._held.add(issue_id)
            return True

    def release(self, issue_id: str) -> None:
        with self._guard:
            self._held.discard(issue_id)

    def is_held(self, issue_id: str) -> bool:
        with self._guard:
            return issue_id in self._held

    @contextmanager
    def hold(self, issue_id: str) -> Iterator[None]:
        """Hold the lock for the block, or raise ConflictError if it is taken."""
        if not self.try_acquire(issue_id):
            raise ConflictError(RESOLUTION_IN_PROGRESS)
        try:
            yield
        finally:
            self.release(issue_id)
