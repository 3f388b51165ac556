"""
Resolution Orchestrator - Runs a player's decision through the engine.

Pipeline:
  Validate → Lock issue → Snapshot variables → Narrative generator →
  Commit (variables + history + issue status + game state) → Unlock

Issue lifecycle: active → resolving → resolved, or back to active when the
commit fails. The commit is one storage transaction, so a failed resolution
leaves no variable change, no history record and no round increment.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from ..config import EngineConfig, load_engine_config
from ..db import Catalog, Database, GameStateStore, HistoryLedger, VariableStore
from ..errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from ..llm.gateway import ClaudeGateway, LLMGateway
from ..llm.narrative import NarrativeGenerator, NarrativeOutcome
from ..models import HistoryRecord, Issue
from .locks import RESOLUTION_IN_PROGRESS, IssueLockRegistry
from .policy import IssueSelectionPolicy, PositionQueuePolicy

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHOICE_LENGTH = 2000
ISSUE_NOT_FOUND = "Issue not found"
ISSUE_NOT_ACTIVE = "Issue is not active"
GAME_NOT_ACTIVE = "Game is not active"


@dataclass
class ResolutionResult:
    """What the caller sees after a successful resolution."""
    narrative: str
    state_changes: dict[str, int]
    success: bool
    round: int
    issue_id: str = ""
    next_issue_id: Optional[str] = None
    history_id: Optional[int] = None
    debug_info: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "narrative": self.narrative,
            "stateChanges": dict(self.state_changes),
            "success": self.success,
            "round": self.round,
        }


@dataclass
class GameSnapshot:
    """Read-only aggregate of the game for display."""
    active_issue_summary: Optional[dict]
    round: int
    status: str
    variable_values: dict[str, int]

    def to_dict(self) -> dict:
        return {
            "activeIssue": self.active_issue_summary,
            "round": self.round,
            "status": self.status,
            "variables": dict(self.variable_values),
        }


class ResolutionOrchestrator:
    """
    Sole writer of issue status, game state and history.

    All collaborators are injected; build_orchestrator() wires the default
    SQLite-backed set.
    """

    def __init__(
        self,
        database: Database,
        generator: NarrativeGenerator,
        catalog: Optional[Catalog] = None,
        variables: Optional[VariableStore] = None,
        history: Optional[HistoryLedger] = None,
        game_state: Optional[GameStateStore] = None,
        policy: Optional[IssueSelectionPolicy] = None,
        locks: Optional[IssueLockRegistry] = None,
        max_choice_length: int = DEFAULT_MAX_CHOICE_LENGTH
    ):
        self.db = database
        self.generator = generator
        self.catalog = catalog or Catalog(database)
        self.variables = variables or VariableStore(database)
        self.history = history or HistoryLedger(database)
        self.game_state = game_state or GameStateStore(database)
        self.policy = policy or PositionQueuePolicy()
        self.locks = locks or IssueLockRegistry()
        self.max_choice_length = max_choice_length

    # =========================================================================
    # Resolution
    # =========================================================================

    def resolve_issue(
        self,
        issue_id: str,
        player_role: str,
        resolution_choice: str
    ) -> ResolutionResult:
        """
        Resolve the active issue with a player's decision.

        Raises:
            ValidationError: empty or oversized input
            NotFoundError: unknown issue, or not the active one
            ConflictError: a resolution for the issue is already in flight,
                or the game is paused or completed
            PersistenceError: storage failed; nothing was changed
        """
        issue_id, player_role, resolution_choice = self._validate(
            issue_id, player_role, resolution_choice
        )
        self._require_active(issue_id)

        with self.locks.hold(issue_id):
            # Re-read under the lock: another resolution may have finished
            # between the first check and acquiring the lock.
            issue = self._require_active(issue_id)
            return self._run(issue, player_role, resolution_choice)

    def _validate(self, issue_id, player_role, resolution_choice) -> tuple[str, str, str]:
        issue_id = (issue_id or "").strip() if isinstance(issue_id, str) else ""
        player_role = (player_role or "").strip() if isinstance(player_role, str) else ""
        if not isinstance(resolution_choice, str):
            resolution_choice = ""

        if not issue_id:
            raise ValidationError("issueId must not be empty")
        if not player_role:
            raise ValidationError("playerRole must not be empty")
        if not resolution_choice.strip():
            raise ValidationError("resolutionChoice must not be empty")
        if len(resolution_choice) > self.max_choice_length:
            raise ValidationError(
                f"resolutionChoice exceeds {self.max_choice_length} characters"
            )
        return issue_id, player_role, resolution_choice.strip()

    def _require_active(self, issue_id: str) -> Issue:
        issue = self.catalog.get_issue(issue_id)
        if issue is None:
            raise NotFoundError(ISSUE_NOT_FOUND)
        if issue.status == "resolving":
            raise ConflictError(RESOLUTION_IN_PROGRESS)

        state = self.game_state.current()
        if issue.status != "active" or state.current_issue_id != issue.id:
            raise NotFoundError(ISSUE_NOT_ACTIVE)
        if state.status != "active":
            raise ConflictError(GAME_NOT_ACTIVE)
        return issue

    def _run(self, issue: Issue, player_role: str, resolution_choice: str) -> ResolutionResult:
        t0 = time.monotonic()
        snapshot = self.variables.snapshot()

        # Storage-level single flight: only one caller can move active → resolving,
        # even across processes sharing the database file.
        if not self.catalog.set_issue_status(issue.id, "resolving", expected="active"):
            raise ConflictError(RESOLUTION_IN_PROGRESS)

        try:
            outcome = self.generator.generate(
                issue_title=issue.title,
                issue_description=issue.description,
                player_role=player_role,
                resolution_choice=resolution_choice,
                current_variables=snapshot
            )
            t_generated = time.monotonic()
            result = self._commit(issue, player_role, resolution_choice, outcome)
        except Exception:
            self._restore_active(issue.id)
            raise

        result.debug_info = {
            "generator_ms": int((t_generated - t0) * 1000),
            "total_ms": int((time.monotonic() - t0) * 1000),
            "proposed_changes": dict(outcome.state_changes),
        }
        logger.info(
            "Resolved %s by %s in round %d (%d variable changes); next issue: %s",
            issue.id, player_role, result.round - 1,
            len(result.state_changes), result.next_issue_id
        )
        return result

    def _commit(
        self,
        issue: Issue,
        player_role: str,
        resolution_choice: str,
        outcome: NarrativeOutcome
    ) -> ResolutionResult:
        """Apply the outcome as one transaction under the global state lock."""
        with self.game_state.transition_lock, self.db.transaction() as tx:
            state = self.game_state.current(conn=tx)

            applied = self.variables.apply_deltas(outcome.state_changes, conn=tx)

            record = self.history.append(
                HistoryRecord(
                    issue_id=issue.id,
                    player_role=player_role,
                    resolution_choice=resolution_choice,
                    narrative_outcome=outcome.narrative,
                    state_changes=applied,
                    round=state.round,
                    success=outcome.success
                ),
                conn=tx
            )

            if not self.catalog.set_issue_status(issue.id, "resolved", expected="resolving", conn=tx):
                raise PersistenceError(f"Issue {issue.id} left the resolving state mid-resolution")

            selection = self.policy.select_next(issue, self.catalog.list_issues(conn=tx))
            for archived_id in selection.archive_ids:
                self.catalog.set_issue_status(archived_id, "archived", expected="pending", conn=tx)
            next_issue_id = selection.next_issue_id
            if next_issue_id is not None:
                if not self.catalog.set_issue_status(next_issue_id, "active", expected="pending", conn=tx):
                    raise PersistenceError(f"Issue {next_issue_id} is not pending and cannot be activated")

            new_state = self.game_state.transition(
                next_issue_id,
                state.round + 1,
                state.status,
                expected_round=state.round,
                conn=tx
            )

        return ResolutionResult(
            narrative=outcome.narrative,
            state_changes=applied,
            success=outcome.success,
            round=new_state.round,
            issue_id=issue.id,
            next_issue_id=next_issue_id,
            history_id=record.id
        )

    def _restore_active(self, issue_id: str) -> None:
        try:
            self.catalog.set_issue_status(issue_id, "active", expected="resolving")
        except PersistenceError:
            logger.exception("Could not return issue %s to active after a failed resolution", issue_id)
            return
        logger.warning("Resolution of %s rolled back; issue is active again", issue_id)

    # =========================================================================
    # Read Projections
    # =========================================================================

    def get_current_issue(self) -> Optional[Issue]:
        """The issue the game state points at, or None."""
        state = self.game_state.current()
        if not state.current_issue_id:
            return None
        return self.catalog.get_issue(state.current_issue_id)

    def get_game_state(self) -> GameSnapshot:
        state = self.game_state.current()
        issue = self.catalog.get_issue(state.current_issue_id) if state.current_issue_id else None
        return GameSnapshot(
            active_issue_summary=issue.summary() if issue else None,
            round=state.round,
            status=state.status,
            variable_values=self.variables.snapshot()
        )

    def get_history(
        self,
        round_no: Optional[int] = None,
        issue_id: Optional[str] = None
    ) -> list[HistoryRecord]:
        """History filtered by round or issue (newest first), or all of it (oldest first)."""
        if round_no is not None:
            return self.history.by_round(round_no)
        if issue_id is not None:
            return self.history.by_issue(issue_id)
        return self.history.list_all()

    def summarize_game(self, recent: int = 5) -> str:
        """Narrative summary of recent issues, variables and events."""
        records = self.history.recent(recent)
        issue_ids = {r.issue_id for r in records}
        current = self.get_current_issue()
        if current:
            issue_ids.add(current.id)
        issues = [i for i in self.catalog.list_issues() if i.id in issue_ids]
        events = [r.narrative_outcome for r in reversed(records)]
        return self.generator.summarize(issues, self.variables.snapshot(), events)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def recover_interrupted(self) -> list[str]:
        """
        Return issues stuck in resolving to active.

        A process that dies mid-resolution leaves its issue marked resolving
        with nothing committed. Issues resolving in this process are skipped.
        """
        recovered = []
        for issue in self.catalog.list_issues(status="resolving"):
            if self.locks.is_held(issue.id):
                continue
            if self.catalog.set_issue_status(issue.id, "active", expected="resolving"):
                logger.warning("Recovered interrupted resolution of %s", issue.id)
                recovered.append(issue.id)
        return recovered

    def pause(self):
        return self.game_state.set_status("paused")

    def resume(self):
        return self.game_state.set_status("active")

    def complete(self):
        return self.game_state.set_status("completed")

    def close(self) -> None:
        self.generator.close()
        self.db.close()


def build_orchestrator(
    config: Optional[EngineConfig] = None,
    gateway: Optional[LLMGateway] = None,
    policy: Optional[IssueSelectionPolicy] = None,
    database: Optional[Database] = None
) -> ResolutionOrchestrator:
    """
    Wire an orchestrator from configuration.

    Uses the Claude gateway unless one is given, initializes the schema and
    recovers any resolution interrupted by a previous process.
    """
    config = config or load_engine_config()

    if gateway is None:
        gateway = ClaudeGateway(
            api_key=config.api_key,
            model=config.model,
            max_retries=config.max_retries,
            timeout=config.generator_timeout
        )

    if database is None:
        database = Database(config.db_path)
    database.ensure_schema()

    orchestrator = ResolutionOrchestrator(
        database=database,
        generator=NarrativeGenerator(
            gateway,
            timeout=config.generator_timeout,
            max_workers=config.generator_workers
        ),
        policy=policy or PositionQueuePolicy(archive_skipped=config.archive_skipped_issues),
        max_choice_length=config.max_choice_length
    )
    orchestrator.recover_interrupted()
    return orchestrator
