"""
Integration tests for a full playthrough of the kingdom scenario.

Tests scenario loading through the last resolution, with several
threads competing for the same issue along the way.
"""

import threading

import pytest

from regency.core import ResolutionOrchestrator
from regency.errors import ConflictError, NotFoundError
from regency.llm.gateway import MockGateway
from regency.llm.narrative import NarrativeGenerator
from tests.fixtures.state import setup_kingdom

DECISIONS = [
    ("northern_border", "military", "Fortify the northern passes", {
        "narrative": "Stone walls rise along the passes.",
        "stateChanges": {"militarism_level": 20, "treasury_level": -15},
        "success": True
    }),
    ("trade_crisis", "treasury", "Impose matching tariffs", {
        "narrative": "Merchants grumble as the trade war deepens.",
        "stateChanges": {"treasury_level": -60, "diplomacy_level": -10, "public_morale": -5},
        "success": False
    }),
    ("plague_outbreak", "regent", "Quarantine the capital", {
        "narrative": "The capital falls silent behind its gates.",
        "stateChanges": {"public_morale": -10, "treasury_level": 5},
        "success": True
    }),
]


@pytest.fixture
def scripted(database, prompt_registry):
    """Orchestrator over the kingdom with a response for every decision."""
    setup_kingdom(database)
    gateway = MockGateway({choice: outcome for _, _, choice, outcome in DECISIONS})
    generator = NarrativeGenerator(gateway, prompts=prompt_registry, timeout=5)
    yield ResolutionOrchestrator(database, generator)
    generator.close()


class TestPlaythrough:
    """Tests for resolving every issue in order."""

    def test_full_game(self, scripted):
        for issue_id, role, choice, _ in DECISIONS:
            assert scripted.get_current_issue().id == issue_id
            scripted.resolve_issue(issue_id, role, choice)

        snapshot = scripted.get_game_state()
        assert snapshot.round == 4
        assert snapshot.active_issue_summary is None
        assert snapshot.variable_values == {
            "diplomacy_level": 50,
            "militarism_level": 50,
            "public_morale": 40,
            "treasury_level": 5,
        }

    def test_history_matches_variables(self, scripted):
        """Summing recorded effects reproduces the final variables."""
        start = scripted.variables.snapshot()
        for issue_id, role, choice, _ in DECISIONS:
            scripted.resolve_issue(issue_id, role, choice)

        totals = dict(start)
        for record in scripted.history.list_all():
            for variable_id, delta in record.state_changes.items():
                totals[variable_id] += delta

        assert totals == scripted.variables.snapshot()
        # Treasury hit the floor in round 2: 35 - 60 clamps to 0.
        assert scripted.get_history(round_no=2)[0].state_changes["treasury_level"] == -35

    def test_all_issues_closed(self, scripted):
        for issue_id, role, choice, _ in DECISIONS:
            scripted.resolve_issue(issue_id, role, choice)

        assert {i.status for i in scripted.catalog.list_issues()} == {"resolved"}
        with pytest.raises(NotFoundError):
            scripted.resolve_issue("plague_outbreak", "regent", "Again")


class TestContention:
    """Many players submitting at once."""

    def test_one_winner_per_issue(self, scripted):
        """Of several simultaneous submissions exactly one commits per round."""
        barrier = threading.Barrier(4)
        outcomes = []
        guard = threading.Lock()

        def submit(role):
            barrier.wait()
            try:
                result = scripted.resolve_issue(
                    "northern_border", role, "Fortify the northern passes"
                )
                outcome = ("ok", result.round)
            except (ConflictError, NotFoundError) as e:
                outcome = ("refused", type(e).__name__)
            with guard:
                outcomes.append(outcome)

        threads = [
            threading.Thread(target=submit, args=(role,))
            for role in ("regent", "treasury", "military", "diplomat")
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert len(outcomes) == 4
        assert outcomes.count(("ok", 2)) == 1
        assert scripted.history.count() == 1
        assert scripted.get_game_state().round == 2
        assert scripted.variables.get("militarism_level").current_value == 50
