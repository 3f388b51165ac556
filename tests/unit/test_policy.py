"""
Tests for issue selection policies.
"""

from regency.core.policy import (
    IssueSelectionPolicy,
    NoNextIssuePolicy,
    OrderedQueuePolicy,
    PositionQueuePolicy,
    Selection,
)
from tests.fixtures.issues import make_queue


class TestPositionQueuePolicy:
    """Tests for the default position-ordered queue."""

    def test_first_pending_after_resolved(self):
        issues = make_queue("resolved", "resolved", "pending", "pending")
        selection = PositionQueuePolicy().select_next(issues[1], issues)

        assert selection.next_issue_id == "issue_2"
        assert selection.archive_ids == []

    def test_earlier_pending_picked_without_archiving(self):
        """An earlier pending issue is still next when skipping is off."""
        issues = make_queue("pending", "resolved", "pending")
        selection = PositionQueuePolicy().select_next(issues[1], issues)
        assert selection.next_issue_id == "issue_0"

    def test_archive_skipped(self):
        """With archiving, issues before the resolved one are retired."""
        issues = make_queue("pending", "resolved", "pending")
        selection = PositionQueuePolicy(archive_skipped=True).select_next(issues[1], issues)

        assert selection.next_issue_id == "issue_2"
        assert selection.archive_ids == ["issue_0"]

    def test_exhausted_queue(self):
        issues = make_queue("resolved", "resolved")
        assert PositionQueuePolicy().select_next(issues[1], issues) == Selection()

    def test_ignores_non_pending(self):
        issues = make_queue("resolved", "archived", "active", "pending")
        selection = PositionQueuePolicy().select_next(issues[0], issues)
        assert selection.next_issue_id == "issue_3"


class TestOrderedQueuePolicy:
    """Tests for the explicit queue."""

    def test_follows_listed_order(self):
        issues = make_queue("resolved", "pending", "pending")
        policy = OrderedQueuePolicy(["issue_0", "issue_2", "issue_1"])

        assert policy.select_next(issues[0], issues).next_issue_id == "issue_2"

    def test_archives_passed_over(self):
        issues = make_queue("pending", "resolved", "pending")
        policy = OrderedQueuePolicy(["issue_0", "issue_1", "issue_2"])
        selection = policy.select_next(issues[1], issues)

        assert selection.next_issue_id == "issue_2"
        assert selection.archive_ids == ["issue_0"]

    def test_keep_passed_over(self):
        issues = make_queue("pending", "resolved", "pending")
        policy = OrderedQueuePolicy(["issue_0", "issue_1", "issue_2"], archive_skipped=False)
        assert policy.select_next(issues[1], issues).archive_ids == []

    def test_resolved_not_in_queue_starts_at_front(self):
        issues = make_queue("pending", "resolved")
        policy = OrderedQueuePolicy(["issue_0"])
        assert policy.select_next(issues[1], issues).next_issue_id == "issue_0"

    def test_end_of_queue(self):
        issues = make_queue("resolved", "resolved")
        policy = OrderedQueuePolicy(["issue_0", "issue_1"])
        assert policy.select_next(issues[1], issues).next_issue_id is None


class TestNoNextIssuePolicy:
    def test_never_selects(self):
        issues = make_queue("resolved", "pending")
        assert NoNextIssuePolicy().select_next(issues[0], issues) == Selection()


class TestProtocol:
    def test_policies_satisfy_protocol(self):
        """Every bundled policy is an IssueSelectionPolicy."""
        for policy in (PositionQueuePolicy(), OrderedQueuePolicy([]), NoNextIssuePolicy()):
            assert isinstance(policy, IssueSelectionPolicy)
