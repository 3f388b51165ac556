"""Setup module for scenario loading."""

from .scenario_loader import ScenarioLoader, ScenarioError, load_scenario

__all__ = [
    "ScenarioLoader",
    "ScenarioError",
    "load_scenario",
]
