"""
History Ledger - Append-only record of resolutions.

There are no update or delete operations; the schema's triggers reject them
as well, so every narrative outcome stays auditable.
"""

import sqlite3
from typing import Optional

from ..models import HistoryRecord
from .database import Database, json_dumps, json_loads, utc_now


class HistoryLedger:
    """Appends and queries HistoryRecords."""

    def __init__(self, database: Database):
        self.db = database

    def append(
        self,
        record: HistoryRecord,
        conn: Optional[sqlite3.Connection] = None
    ) -> HistoryRecord:
        """
        Append a record and return it with its id and timestamp filled in.

        Raises PersistenceError if storage is unavailable; the write is never
        retried here.
        """
        created_at = utc_now()
        with self.db.transaction(conn) as tx:
            cursor = tx.execute(
                """
                INSERT INTO history (issue_id, player_role, resolution_choice,
                    narrative_outcome, state_changes_json, round, success, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.issue_id,
                    record.player_role,
                    record.resolution_choice,
                    record.narrative_outcome,
                    json_dumps(record.state_changes),
                    record.round,
                    1 if record.success else 0,
                    created_at
                )
            )
            record_id = cursor.lastrowid

        return HistoryRecord(
            id=record_id,
            issue_id=record.issue_id,
            player_role=record.player_role,
            resolution_choice=record.resolution_choice,
            narrative_outcome=record.narrative_outcome,
            state_changes=dict(record.state_changes),
            round=record.round,
            success=record.success,
            created_at=created_at
        )

    def list_all(self) -> list[HistoryRecord]:
        """Every record, oldest first."""
        return self._query("SELECT * FROM history ORDER BY id ASC")

    def by_round(self, round_no: int) -> list[HistoryRecord]:
        """Records for one round, newest first."""
        return self._query(
            "SELECT * FROM history WHERE round = ? ORDER BY id DESC",
            (round_no,)
        )

    def by_issue(self, issue_id: str) -> list[HistoryRecord]:
        """Records for one issue, newest first."""
        return self._query(
            "SELECT * FROM history WHERE issue_id = ? ORDER BY id DESC",
            (issue_id,)
        )

    def recent(self, limit: int = 5) -> list[HistoryRecord]:
        """The latest records, newest first."""
        return self._query(
            "SELECT * FROM history ORDER BY id DESC LIMIT ?",
            (limit,)
        )

    def count(self) -> int:
        with self.db.connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM history").fetchone()
        return row["n"]

    def _query(self, sql: str, params: tuple = ()) -> list[HistoryRecord]:
        with self.db.connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_parse_history_row(row) for row in rows]


def _parse_history_row(row: sqlite3.Row) -> HistoryRecord:
    """Parse a history row."""
    return HistoryRecord(
        id=row["id"],
        issue_id=row["issue_id"],
        player_role=row["player_role"],
        resolution_choice=row["resolution_choice"],
        narrative_outcome=row["narrative_outcome"],
        state_changes=json_loads(row["state_changes_json"]) or {},
        round=row["round"],
        success=bool(row["success"]),
        created_at=row["created_at"]
    )
