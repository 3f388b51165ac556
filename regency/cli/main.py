"""
Regency CLI.

Commands:
  init-db         Initialize the SQLite schema
  list-scenarios  List bundled scenarios
  load-scenario   Seed roles, variables, issues and game state from YAML
  state           Show round, active issue and variables
  current-issue   Show the active issue
  resolve         Resolve the active issue with a decision
  history         Show resolution history
  summary         Narrative summary of the game so far
  pause / resume  Stop or restart accepting resolutions
  recover         Return issues left mid-resolution to active
  login / logout  Store or remove the Anthropic API key
"""

import argparse
import json
import logging
import sys

from regency.config import (
    clear_api_key, get_config_path, load_engine_config, set_api_key
)
from regency.core import ResolutionOrchestrator, build_orchestrator
from regency.db import Database
from regency.errors import EngineError
from regency.llm.gateway import MockGateway
from regency.setup import ScenarioError, ScenarioLoader


def _orchestrator(args, needs_generator: bool = False) -> ResolutionOrchestrator:
    """Build an orchestrator; read-only commands never need an API key."""
    config = load_engine_config(db_path=args.db, generator_timeout=args.timeout)
    gateway = None
    if args.mock or not needs_generator:
        gateway = MockGateway()
    elif not config.api_key:
        print("Error: no API key. Run 'login --key ...' or set ANTHROPIC_API_KEY.", file=sys.stderr)
        sys.exit(1)
    return build_orchestrator(config, gateway=gateway)


def _print_json(value) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False))


def init_db(args):
    """Initialize the database schema."""
    Database(args.db).ensure_schema()
    print(f"Initialized database at {args.db}")


def login_cmd(args):
    """Store the API key."""
    set_api_key(args.key)
    print(f"API key saved to: {get_config_path()}")


def logout_cmd(args):
    """Remove stored API key."""
    clear_api_key()
    print(f"Logged out. API key removed from {get_config_path()}")


def list_scenarios_cmd(args):
    loader = ScenarioLoader(Database(args.db))
    scenarios = loader.list_scenarios()
    if not scenarios:
        print("No scenarios found.")
        return
    for scenario in scenarios:
        print(f"  {scenario['id']:<20} {scenario['name']}")
        if scenario["description"]:
            print(f"  {'':<20} {scenario['description']}")


def load_scenario_cmd(args):
    loader = ScenarioLoader(Database(args.db))
    result = loader.load_scenario(args.scenario)
    print(f"\n{'='*60}")
    print(f"Scenario: {result['name']}")
    print(f"Roles loaded: {result['roles_loaded']}")
    print(f"Variables loaded: {result['variables_loaded']}")
    print(f"Issues loaded: {result['issues_loaded']}")
    print(f"Active issue: {result['current_issue_id'] or '(none)'}")
    print(f"{'='*60}")
    if result["opening_text"]:
        print(f"\n{result['opening_text']}")


def state_cmd(args):
    orchestrator = _orchestrator(args)
    snapshot = orchestrator.get_game_state()
    if args.json:
        _print_json(snapshot.to_dict())
        return

    print(f"\nRound {snapshot.round} ({snapshot.status})")
    issue = snapshot.active_issue_summary
    if issue:
        print(f"Active issue: {issue['title']} [{issue['category']}]")
    else:
        print("Active issue: (none)")
    print()
    for variable in orchestrator.variables.list_variables():
        print(f"  {variable.name:<20} {_progress_bar(variable)} {variable.current_value}")


def current_issue_cmd(args):
    issue = _orchestrator(args).get_current_issue()
    if issue is None:
        print("No active issue.")
        return
    if args.json:
        _print_json(issue.summary())
        return
    print(f"\n{issue.title} [{issue.category}]")
    print(f"\n{issue.description}\n")


def resolve_cmd(args):
    orchestrator = _orchestrator(args, needs_generator=True)
    try:
        result = orchestrator.resolve_issue(args.issue, args.role, args.choice)
    finally:
        orchestrator.close()

    if args.json:
        _print_json(result.to_dict())
        return
    print(f"\n{result.narrative}\n")
    if result.state_changes:
        for variable_id, delta in sorted(result.state_changes.items()):
            print(f"  {variable_id}: {delta:+d}")
    print(f"\nRound {result.round} begins.", end="")
    print(f" Next issue: {result.next_issue_id}" if result.next_issue_id else " No issue is pending.")


def history_cmd(args):
    records = _orchestrator(args).get_history(round_no=args.round, issue_id=args.issue)
    if args.json:
        _print_json([record.to_dict() for record in records])
        return
    if not records:
        print("No history yet.")
        return
    for record in records:
        changes = ", ".join(f"{k} {v:+d}" for k, v in sorted(record.state_changes.items())) or "no changes"
        print(f"\n[Round {record.round}] {record.issue_id} - {record.player_role}: {record.resolution_choice}")
        print(f"  {record.narrative_outcome}")
        print(f"  ({changes})")


def summary_cmd(args):
    orchestrator = _orchestrator(args, needs_generator=True)
    try:
        print(f"\n{orchestrator.summarize_game()}\n")
    finally:
        orchestrator.close()


def pause_cmd(args):
    state = _orchestrator(args).pause()
    print(f"Game {state.status} at round {state.round}.")


def resume_cmd(args):
    state = _orchestrator(args).resume()
    print(f"Game {state.status} at round {state.round}.")


def recover_cmd(args):
    # build_orchestrator already recovers; report what is still stuck.
    orchestrator = _orchestrator(args)
    stuck = orchestrator.catalog.list_issues(status="resolving")
    print("No interrupted resolutions." if not stuck else f"Still resolving: {', '.join(i.id for i in stuck)}")


def _progress_bar(variable, width=20):
    if variable.min_value is None or variable.max_value is None or variable.max_value == variable.min_value:
        return " " * (width + 2)
    ratio = (variable.current_value - variable.min_value) / (variable.max_value - variable.min_value)
    filled = int(round(ratio * width))
    return "[" + "#" * filled + "-" * (width - filled) + "]"


def build_parser():
    parser = argparse.ArgumentParser(
        description="Regency CLI - resolve the issues facing the council"
    )
    parser.add_argument(
        "--db",
        default=None,
        help="SQLite database path (default: REGENCY_DB or regency.db)",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use the offline mock generator (outcomes fall back to neutral text)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Narrative generator timeout in seconds",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    init_db_parser = sub.add_parser("init-db", help="Initialize the SQLite schema")
    init_db_parser.set_defaults(func=init_db)

    login_parser = sub.add_parser("login", help="Store the Anthropic API key")
    login_parser.add_argument("--key", required=True, help="API key")
    login_parser.set_defaults(func=login_cmd)

    logout_parser = sub.add_parser("logout", help="Remove stored API key")
    logout_parser.set_defaults(func=logout_cmd)

    list_parser = sub.add_parser("list-scenarios", help="List available scenarios")
    list_parser.set_defaults(func=list_scenarios_cmd)

    load_parser = sub.add_parser("load-scenario", help="Seed the game from a scenario")
    load_parser.add_argument("scenario", nargs="?", default="kingdom", help="Scenario ID or YAML path")
    load_parser.set_defaults(func=load_scenario_cmd)

    state_parser = sub.add_parser("state", help="Show the game state")
    state_parser.add_argument("--json", action="store_true", help="Output JSON")
    state_parser.set_defaults(func=state_cmd)

    issue_parser = sub.add_parser("current-issue", help="Show the active issue")
    issue_parser.add_argument("--json", action="store_true", help="Output JSON")
    issue_parser.set_defaults(func=current_issue_cmd)

    resolve_parser = sub.add_parser("resolve", help="Resolve the active issue")
    resolve_parser.add_argument("--issue", required=True, help="Issue ID")
    resolve_parser.add_argument("--role", required=True, help="Player role")
    resolve_parser.add_argument("--choice", required=True, help="The decision")
    resolve_parser.add_argument("--json", action="store_true", help="Output JSON")
    resolve_parser.set_defaults(func=resolve_cmd)

    history_parser = sub.add_parser("history", help="Show resolution history")
    history_group = history_parser.add_mutually_exclusive_group()
    history_group.add_argument("--round", type=int, help="Only this round")
    history_group.add_argument("--issue", help="Only this issue")
    history_parser.add_argument("--json", action="store_true", help="Output JSON")
    history_parser.set_defaults(func=history_cmd)

    summary_parser = sub.add_parser("summary", help="Narrative summary of the game")
    summary_parser.set_defaults(func=summary_cmd)

    pause_parser = sub.add_parser("pause", help="Stop accepting resolutions")
    pause_parser.set_defaults(func=pause_cmd)

    resume_parser = sub.add_parser("resume", help="Accept resolutions again")
    resume_parser.set_defaults(func=resume_cmd)

    recover_parser = sub.add_parser("recover", help="Recover interrupted resolutions")
    recover_parser.set_defaults(func=recover_cmd)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.db is None:
        args.db = load_engine_config().db_path

    try:
        args.func(args)
    except (EngineError, ScenarioError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
