"""
Catalog - Keyed storage for roles and issues.

Roles are static content. Issue rows are created by scenario setup; after
that only the resolution orchestrator changes their status.
"""

import sqlite3
from typing import Optional

from ..models import ISSUE_STATUSES, Issue, Role
from .database import Database, utc_now


class Catalog:
    """Role and issue lookups backed by the game database."""

    def __init__(self, database: Database):
        self.db = database

    # =========================================================================
    # Role Operations
    # =========================================================================

    def upsert_role(self, role_id: str, name: str, description: str = "") -> Role:
        """Create a role or update its name and description."""
        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO roles (id, name, description) VALUES (?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    name = excluded.name,
                    description = excluded.description
                """,
                (role_id, name, description)
            )
        return self.get_role(role_id)

    def get_role(self, role_id: str) -> Optional[Role]:
        """Get role by ID."""
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM roles WHERE id = ?",
                (role_id,)
            ).fetchone()
        if not row:
            return None
        return _parse_role_row(row)

    def list_roles(self) -> list[Role]:
        with self.db.connect() as conn:
            rows = conn.execute("SELECT * FROM roles ORDER BY id").fetchall()
        return [_parse_role_row(row) for row in rows]

    # =========================================================================
    # Issue Operations
    # =========================================================================

    def upsert_issue(
        self,
        issue_id: str,
        title: str,
        description: str = "",
        category: str = "",
        status: str = "pending",
        position: Optional[int] = None
    ) -> Issue:
        """
        Create an issue or replace its content.

        Position defaults to the end of the current ordering.
        """
        _check_status(status)
        with self.db.transaction() as conn:
            if position is None:
                row = conn.execute(
                    "SELECT COALESCE(MAX(position), -1) + 1 AS next_pos FROM issues"
                ).fetchone()
                position = row["next_pos"]
            conn.execute(
                """
                INSERT INTO issues (id, title, description, category, status,
                    position, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    title = excluded.title,
                    description = excluded.description,
                    category = excluded.category,
                    status = excluded.status,
                    position = excluded.position,
                    updated_at = excluded.updated_at
                """,
                (issue_id, title, description, category, status, position, utc_now())
            )
        return self.get_issue(issue_id)

    def get_issue(
        self,
        issue_id: str,
        conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Issue]:
        """Get issue by ID."""
        if conn is not None:
            row = conn.execute("SELECT * FROM issues WHERE id = ?", (issue_id,)).fetchone()
        else:
            with self.db.connect() as conn:
                row = conn.execute(
                    "SELECT * FROM issues WHERE id = ?",
                    (issue_id,)
                ).fetchone()
        if not row:
            return None
        return _parse_issue_row(row)

    def list_issues(
        self,
        status: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None
    ) -> list[Issue]:
        """All issues in position order, optionally filtered by status."""
        sql = "SELECT * FROM issues"
        params: tuple = ()
        if status is not None:
            _check_status(status)
            sql += " WHERE status = ?"
            params = (status,)
        sql += " ORDER BY position, id"

        if conn is not None:
            rows = conn.execute(sql, params).fetchall()
        else:
            with self.db.connect() as conn:
                rows = conn.execute(sql, params).fetchall()
        return [_parse_issue_row(row) for row in rows]

    def set_issue_status(
        self,
        issue_id: str,
        status: str,
        expected: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None
    ) -> bool:
        """
        Change an issue's status.

        With expected set this is a compare-and-set: the row only changes if
        its current status equals expected. Returns whether a row changed.
        """
        _check_status(status)
        sql = "UPDATE issues SET status = ?, updated_at = ? WHERE id = ?"
        params: list = [status, utc_now(), issue_id]
        if expected is not None:
            sql += " AND status = ?"
            params.append(expected)

        with self.db.transaction(conn) as tx:
            cursor = tx.execute(sql, params)
        return cursor.rowcount == 1


def _check_status(status: str) -> None:
    if status not in ISSUE_STATUSES:
        raise ValueError(f"Unknown issue status: {status}")


def _parse_role_row(row: sqlite3.Row) -> Role:
    """Parse a role row."""
    return Role(
        id=row["id"],
        name=row["name"],
        description=row["description"]
    )


def _parse_issue_row(row: sqlite3.Row) -> Issue:
    """Parse an issue row."""
    return Issue(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        category=row["category"],
        status=row["status"],
        position=row["position"]
    )
