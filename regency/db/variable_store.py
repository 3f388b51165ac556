"""
Variable Store - Bounded integer variables shared by all players.

apply_delta reads, clamps and writes inside one IMMEDIATE transaction, so
two deltas for the same variable serialize instead of losing an update.
Unknown variable ids are skipped: delta keys come from an untrusted
generator and must never create rows.
"""

import logging
import sqlite3
from typing import Optional

from ..models import Variable
from .database import Database, utc_now

logger = logging.getLogger(__name__)

# Range of an SQLite INTEGER column.
SQLITE_MIN_INT = -(2 ** 63)
SQLITE_MAX_INT = 2 ** 63 - 1


def clamp(value: int, min_value: Optional[int] = None, max_value: Optional[int] = None) -> int:
    """Saturate value at whichever bounds are set, and always within the SQLite integer range."""
    value = max(SQLITE_MIN_INT, min(SQLITE_MAX_INT, value))
    if min_value is not None and value < min_value:
        return min_value
    if max_value is not None and value > max_value:
        return max_value
    return value


class VariableStore:
    """Owns every write to Variable.current_value."""

    def __init__(self, database: Database):
        self.db = database

    def define(
        self,
        variable_id: str,
        name: str,
        current_value: int = 0,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
        description: str = ""
    ) -> Variable:
        """Create or redefine a variable. The starting value is clamped to its bounds."""
        if min_value is not None and max_value is not None and min_value > max_value:
            raise ValueError(
                f"Variable {variable_id}: min_value {min_value} exceeds max_value {max_value}"
            )
        value = clamp(int(current_value), min_value, max_value)

        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO variables (id, name, description, current_value,
                    min_value, max_value, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    name = excluded.name,
                    description = excluded.description,
                    current_value = excluded.current_value,
                    min_value = excluded.min_value,
                    max_value = excluded.max_value,
                    updated_at = excluded.updated_at
                """,
                (variable_id, name, description, value, min_value, max_value, utc_now())
            )
        return self.get(variable_id)

    def get(self, variable_id: str) -> Optional[Variable]:
        """Get variable by ID."""
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM variables WHERE id = ?",
                (variable_id,)
            ).fetchone()
        if not row:
            return None
        return _parse_variable_row(row)

    def list_variables(self) -> list[Variable]:
        with self.db.connect() as conn:
            rows = conn.execute("SELECT * FROM variables ORDER BY id").fetchall()
        return [_parse_variable_row(row) for row in rows]

    def snapshot(self, conn: Optional[sqlite3.Connection] = None) -> dict[str, int]:
        """Current values as a detached mapping of variable id to value."""
        sql = "SELECT id, current_value FROM variables ORDER BY id"
        if conn is not None:
            rows = conn.execute(sql).fetchall()
        else:
            with self.db.connect() as conn:
                rows = conn.execute(sql).fetchall()
        return {row["id"]: row["current_value"] for row in rows}

    def apply_delta(
        self,
        variable_id: str,
        delta: int,
        conn: Optional[sqlite3.Connection] = None
    ) -> Optional[int]:
        """
        Add delta to a variable, saturating at its bounds.

        Returns the new value, or None if the variable does not exist.
        """
        with self.db.transaction(conn) as tx:
            change = self._apply(tx, variable_id, delta)
        return change[1] if change else None

    def apply_deltas(
        self,
        deltas: dict[str, int],
        conn: Optional[sqlite3.Connection] = None
    ) -> dict[str, int]:
        """
        Apply a batch of deltas in one transaction.

        Returns the effect actually applied to each known variable
        (new value minus old value). Unknown ids are left out.
        """
        applied = {}
        with self.db.transaction(conn) as tx:
            for variable_id, delta in deltas.items():
                change = self._apply(tx, variable_id, delta)
                if change is None:
                    continue
                old_value, new_value = change
                applied[variable_id] = new_value - old_value
        return applied

    def _apply(
        self,
        tx: sqlite3.Connection,
        variable_id: str,
        delta: int
    ) -> Optional[tuple[int, int]]:
        row = tx.execute(
            "SELECT current_value, min_value, max_value FROM variables WHERE id = ?",
            (variable_id,)
        ).fetchone()
        if row is None:
            logger.debug("Skipping delta for unknown variable %r", variable_id)
            return None

        old_value = row["current_value"]
        delta = int(delta)
        new_value = clamp(old_value + delta, row["min_value"], row["max_value"])
        if new_value != old_value + delta:
            logger.info(
                "Clamped %s: %d%+d saturates at %d",
                variable_id, old_value, delta, new_value
            )
        tx.execute(
            "UPDATE variables SET current_value = ?, updated_at = ? WHERE id = ?",
            (new_value, utc_now(), variable_id)
        )
        return old_value, new_value


def _parse_variable_row(row: sqlite3.Row) -> Variable:
    """Parse a variable row."""
    return Variable(
        id=row["id"],
        name=row["name"],
        current_value=row["current_value"],
        min_value=row["min_value"],
        max_value=row["max_value"],
        description=row["description"]
    )
