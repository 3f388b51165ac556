"""
Game State Store - The singleton record of the live issue and round.

Transitions are serialized twice over: a process-wide lock, and a
compare-and-set on the round column so a writer in another process cannot
slip an increment in between read and write.
"""

import logging
import sqlite3
import threading
from typing import Optional

from ..errors import NotFoundError, StaleStateError
from ..models import GAME_STATUSES, GameState
from .database import Database, utc_now

logger = logging.getLogger(__name__)

# Shared by every store in the process. Re-entrant so the orchestrator can
# hold it across its commit transaction and still call transition().
_TRANSITION_LOCK = threading.RLock()


class GameStateStore:
    """Reads and transitions the game_state row."""

    def __init__(self, database: Database):
        self.db = database
        self.transition_lock = _TRANSITION_LOCK

    def initialize(
        self,
        current_issue_id: Optional[str] = None,
        round_no: int = 1,
        status: str = "active"
    ) -> GameState:
        """Create or reset the game state row. Used by scenario setup only."""
        _check(round_no, status)
        with self.transition_lock, self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO game_state (id, current_issue_id, round, status, updated_at)
                VALUES (1, ?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    current_issue_id = excluded.current_issue_id,
                    round = excluded.round,
                    status = excluded.status,
                    updated_at = excluded.updated_at
                """,
                (current_issue_id, round_no, status, utc_now())
            )
        return self.current()

    def current(self, conn: Optional[sqlite3.Connection] = None) -> GameState:
        """The current game state. Raises NotFoundError before setup has run."""
        sql = "SELECT * FROM game_state WHERE id = 1"
        if conn is not None:
            row = conn.execute(sql).fetchone()
        else:
            with self.db.connect() as conn:
                row = conn.execute(sql).fetchone()
        if not row:
            raise NotFoundError("Game state not initialized")
        return GameState(
            current_issue_id=row["current_issue_id"],
            round=row["round"],
            status=row["status"]
        )

    def transition(
        self,
        next_issue_id: Optional[str],
        new_round: int,
        new_status: str,
        expected_round: Optional[int] = None,
        conn: Optional[sqlite3.Connection] = None
    ) -> GameState:
        """
        Move the game to a new issue, round and status in one update.

        expected_round defaults to the round read inside the same
        transaction. The round may never decrease. Raises StaleStateError if
        the stored round no longer matches expected_round.
        """
        _check(new_round, new_status)
        with self.transition_lock, self.db.transaction(conn) as tx:
            if expected_round is None:
                expected_round = self.current(conn=tx).round
            if new_round < expected_round:
                raise ValueError(
                    f"Round cannot move backwards ({expected_round} -> {new_round})"
                )
            cursor = tx.execute(
                """
                UPDATE game_state
                SET current_issue_id = ?, round = ?, status = ?, updated_at = ?
                WHERE id = 1 AND round = ?
                """,
                (next_issue_id, new_round, new_status, utc_now(), expected_round)
            )
            if cursor.rowcount != 1:
                raise StaleStateError(
                    f"Game state moved on from round {expected_round}"
                )
        logger.debug(
            "Game state -> issue=%s round=%d status=%s",
            next_issue_id, new_round, new_status
        )
        return GameState(
            current_issue_id=next_issue_id,
            round=new_round,
            status=new_status
        )

    def set_status(self, status: str) -> GameState:
        """Pause, resume or complete the game without touching issue or round."""
        with self.transition_lock, self.db.transaction() as tx:
            state = self.current(conn=tx)
            return self.transition(
                state.current_issue_id,
                state.round,
                status,
                expected_round=state.round,
                conn=tx
            )


def _check(round_no: int, status: str) -> None:
    if round_no < 1:
        raise ValueError(f"Round must be >= 1, got {round_no}")
    if status not in GAME_STATUSES:
        raise ValueError(f"Unknown game status: {status}")
