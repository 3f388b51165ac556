"""
Scenario Loader - Loads scenario YAML files and populates initial game state.

A scenario lists roles, variables, issues and the starting game state:

    roles:
      - {id: regent, name: Regent, description: ...}
    variables:
      - {id: treasury_level, name: Treasury Level, value: 50, min: 0, max: 100}
    issues:
      - {id: northern_border, title: ..., category: Militarism, status: active}
    game_state:
      current_issue: northern_border
      round: 1
"""

import logging
from pathlib import Path
from typing import Optional

import yaml

from ..db import Catalog, Database, GameStateStore, VariableStore

logger = logging.getLogger(__name__)


class ScenarioError(ValueError):
    """The scenario file is missing or inconsistent."""


class ScenarioLoader:
    """Loads scenario files and populates the database with initial state."""

    def __init__(self, database: Database, scenarios_dir: Optional[Path] = None):
        self.db = database
        self.catalog = Catalog(database)
        self.variables = VariableStore(database)
        self.game_state = GameStateStore(database)
        self.scenarios_dir = scenarios_dir or Path(__file__).parent.parent / "scenarios"

    def list_scenarios(self) -> list[dict]:
        """List available scenarios."""
        scenarios = []
        for path in sorted(self.scenarios_dir.glob("*.yaml")):
            try:
                with open(path) as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Could not load %s: %s", path, e)
                continue
            scenarios.append({
                "id": data.get("id", path.stem),
                "name": data.get("name", path.stem),
                "description": data.get("description", ""),
                "path": str(path)
            })
        return scenarios

    def load_scenario(self, scenario_id: str) -> dict:
        """
        Load a scenario and create initial game state.

        Args:
            scenario_id: ID of a bundled scenario, or a path to a YAML file

        Returns:
            Summary dict with counts and the starting issue
        """
        scenario_path = self._find_scenario(scenario_id)
        with open(scenario_path) as f:
            scenario = yaml.safe_load(f) or {}
        return self.load_data(scenario, name=scenario_path.stem)

    def load_data(self, scenario: dict, name: str = "scenario") -> dict:
        """Populate the database from an already-parsed scenario mapping."""
        issues = scenario.get("issues", [])
        starting_issue = self._starting_issue(scenario, issues)

        self.db.ensure_schema()

        for role in scenario.get("roles", []):
            self.catalog.upsert_role(
                role_id=role["id"],
                name=role.get("name", role["id"]),
                description=role.get("description", "")
            )

        for var in scenario.get("variables", []):
            self.variables.define(
                variable_id=var["id"],
                name=var.get("name", var["id"]),
                current_value=var.get("value", 0),
                min_value=var.get("min"),
                max_value=var.get("max"),
                description=var.get("description", "")
            )

        for position, issue in enumerate(issues):
            status = "active" if issue["id"] == starting_issue else issue.get("status", "pending")
            self.catalog.upsert_issue(
                issue_id=issue["id"],
                title=issue["title"],
                description=issue.get("description", ""),
                category=issue.get("category", ""),
                status=status,
                position=issue.get("position", position)
            )

        state = scenario.get("game_state", {})
        self.game_state.initialize(
            current_issue_id=starting_issue,
            round_no=state.get("round", 1),
            status=state.get("status", "active")
        )

        logger.info(
            "Loaded scenario %s: %d roles, %d variables, %d issues, starting issue %s",
            scenario.get("name", name),
            len(scenario.get("roles", [])),
            len(scenario.get("variables", [])),
            len(issues),
            starting_issue
        )
        return {
            "name": scenario.get("name", name),
            "roles_loaded": len(scenario.get("roles", [])),
            "variables_loaded": len(scenario.get("variables", [])),
            "issues_loaded": len(issues),
            "current_issue_id": starting_issue,
            "opening_text": scenario.get("opening_text", "")
        }

    def _starting_issue(self, scenario: dict, issues: list[dict]) -> Optional[str]:
        """The one issue that starts active, or None."""
        ids = [issue["id"] for issue in issues]
        for issue in issues:
            if issue.get("status") == "resolving":
                raise ScenarioError(f"Issue {issue['id']!r} cannot start in the resolving state")
        active = [issue["id"] for issue in issues if issue.get("status") == "active"]
        configured = scenario.get("game_state", {}).get("current_issue")

        if configured is not None:
            if configured not in ids:
                raise ScenarioError(f"game_state.current_issue {configured!r} is not a scenario issue")
            if active and active != [configured]:
                raise ScenarioError(
                    f"current_issue {configured!r} conflicts with active issues {active}"
                )
            return configured
        if len(active) > 1:
            raise ScenarioError(f"At most one issue may start active, got {active}")
        return active[0] if active else None

    def _find_scenario(self, scenario_id: str) -> Path:
        """Find scenario file by ID or path."""
        path = Path(scenario_id)
        if path.exists():
            return path

        for candidate in (
            self.scenarios_dir / f"{scenario_id}.yaml",
            self.scenarios_dir / f"{scenario_id}.yml",
        ):
            if candidate.exists():
                return candidate

        raise ScenarioError(f"Scenario not found: {scenario_id}")


def load_scenario(database: Database, scenario_id: str) -> dict:
    """Convenience function to load a scenario."""
    return ScenarioLoader(database).load_scenario(scenario_id)
