"""
Narrative Generator - Turns a player's decision into a narrative outcome.

The external model is untrusted and may be slow, unreachable or wrong.
try_generate() reports what happened as a GenerationResult; generate()
collapses a failed result into a fixed neutral outcome, so callers always
receive a NarrativeOutcome and never an exception.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..errors import GeneratorFault
from .gateway import LLMGateway, load_schema
from .prompt_registry import PromptRegistry

logger = logging.getLogger(__name__)

FALLBACK_NARRATIVE = "The decision has been recorded and will have consequences for the kingdom."
EMPTY_NARRATIVE = "The decision has been recorded."
FALLBACK_SUMMARY = "The kingdom stands at a crossroads."

OUTCOME_FIELDS = ("narrative", "stateChanges", "success")

# SQLite stores integers as signed 64-bit.
MAX_DELTA = 2 ** 63 - 1


@dataclass(frozen=True)
class NarrativeOutcome:
    """The generator's answer: prose, proposed variable deltas and a success flag."""
    narrative: str
    state_changes: dict[str, int] = field(default_factory=dict)
    success: bool = True

    def to_dict(self) -> dict:
        return {
            "narrative": self.narrative,
            "stateChanges": dict(self.state_changes),
            "success": self.success,
        }


def fallback_outcome() -> NarrativeOutcome:
    """The neutral outcome used whenever generation fails."""
    return NarrativeOutcome(narrative=FALLBACK_NARRATIVE, state_changes={}, success=True)


@dataclass(frozen=True)
class GenerationResult:
    """Either an outcome from the model or the reason there is none."""
    outcome: Optional[NarrativeOutcome] = None
    failure: Optional[str] = None

    @classmethod
    def succeeded(cls, outcome: NarrativeOutcome) -> "GenerationResult":
        return cls(outcome=outcome)

    @classmethod
    def failed(cls, reason: str) -> "GenerationResult":
        return cls(failure=reason)

    @property
    def ok(self) -> bool:
        return self.outcome is not None

    def outcome_or_fallback(self) -> NarrativeOutcome:
        return self.outcome if self.outcome is not None else fallback_outcome()


def parse_outcome(content) -> NarrativeOutcome:
    """
    Convert a structured response into a NarrativeOutcome.

    Deltas are coerced to int (truncating toward zero) and must fit a signed
    64-bit integer. Raises GeneratorFault for anything outside the contract.
    """
    if not isinstance(content, dict):
        raise GeneratorFault(f"Expected a JSON object, got {type(content).__name__}")
    extra = set(content) - set(OUTCOME_FIELDS)
    if extra:
        raise GeneratorFault(f"Unexpected fields: {', '.join(sorted(extra))}")

    narrative = content.get("narrative", "")
    if not isinstance(narrative, str):
        raise GeneratorFault("narrative must be a string")

    raw_changes = content.get("stateChanges") or {}
    if not isinstance(raw_changes, dict):
        raise GeneratorFault("stateChanges must be an object")
    changes = {}
    for key, value in raw_changes.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise GeneratorFault(f"stateChanges[{key!r}] is not a number")
        if isinstance(value, float) and not math.isfinite(value):
            raise GeneratorFault(f"stateChanges[{key!r}] is not finite")
        delta = int(value)
        if abs(delta) > MAX_DELTA:
            raise GeneratorFault(f"stateChanges[{key!r}] is out of range")
        changes[str(key)] = delta

    return NarrativeOutcome(
        narrative=narrative.strip() or EMPTY_NARRATIVE,
        state_changes=changes,
        success=content.get("success") is not False
    )


def format_variables(variables: dict[str, int]) -> str:
    """Render variables as a '- id: value' list for prompts."""
    if not variables:
        return "(no variables)"
    return "\n".join(f"- {key}: {value}" for key, value in sorted(variables.items()))


class NarrativeGenerator:
    """
    Adapter between the resolution engine and the external text generator.

    Every call is bounded by timeout seconds of wall-clock time. A call that
    times out still holds its worker until the gateway returns, so the
    gateway client needs its own timeout; ClaudeGateway is built with one.
    max_workers caps how many calls may be stuck that way at once.
    """

    def __init__(
        self,
        gateway: LLMGateway,
        prompts: Optional[PromptRegistry] = None,
        timeout: float = 30.0,
        prompt_version: Optional[str] = None,
        max_workers: int = 4
    ):
        self.gateway = gateway
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.prompts = prompts or PromptRegistry()
        self.timeout = timeout
        self.prompt_version = prompt_version
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="narrative"
        )

    def generate(
        self,
        issue_title: str,
        issue_description: str,
        player_role: str,
        resolution_choice: str,
        current_variables: dict[str, int],
        game_context: Optional[str] = None
    ) -> NarrativeOutcome:
        """Generate an outcome, falling back to the neutral one on any failure."""
        result = self.try_generate(
            issue_title,
            issue_description,
            player_role,
            resolution_choice,
            current_variables,
            game_context
        )
        if not result.ok:
            logger.warning("Narrative generation failed (%s); using fallback outcome", result.failure)
        return result.outcome_or_fallback()

    def try_generate(
        self,
        issue_title: str,
        issue_description: str,
        player_role: str,
        resolution_choice: str,
        current_variables: dict[str, int],
        game_context: Optional[str] = None
    ) -> GenerationResult:
        """Ask the model for an outcome and report success or the failure reason."""
        snapshot = dict(current_variables)
        input_data = {
            "issue_title": issue_title,
            "issue_description": issue_description or "",
            "player_role": player_role,
            "resolution_choice": resolution_choice,
            "current_variables": format_variables(snapshot),
            "game_context": f"Additional Context: {game_context}" if game_context else "",
        }

        # This is the boundary to untrusted code: every failure becomes a result.
        try:
            prompt = self.prompts.get_prompt("narrative", self.prompt_version)
            schema = load_schema(prompt.schema_name)
            response = self._call(
                self.gateway.run_structured,
                prompt=prompt.template,
                input_data=input_data,
                schema=schema
            )
            outcome = parse_outcome(response.content)
        except FuturesTimeout:
            return GenerationResult.failed(f"timed out after {self.timeout}s")
        except Exception as e:
            return GenerationResult.failed(f"{type(e).__name__}: {e}")

        return GenerationResult.succeeded(outcome)

    def summarize(
        self,
        issues: Iterable,
        variables: dict[str, int],
        recent_history: Optional[list[str]] = None
    ) -> str:
        """Short prose summary of the game so far. Never raises."""
        issue_lines = "\n".join(
            f"- {issue.title}: {issue.description}" for issue in issues
        ) or "(none)"
        event_lines = "\n".join(
            f"{i}. {event}" for i, event in enumerate(recent_history or [], start=1)
        ) or "(none)"

        try:
            prompt = self.prompts.get_prompt("summary")
            text = self._call(
                self.gateway.run_text,
                prompt=prompt.template,
                input_data={
                    "issues": issue_lines,
                    "variables": format_variables(dict(variables)),
                    "recent_events": event_lines,
                },
                options={"system": "You are a skilled game narrator. Summarize the current game state concisely."}
            )
        except FuturesTimeout:
            logger.warning("Game summary timed out after %ss", self.timeout)
            return FALLBACK_SUMMARY
        except Exception as e:
            logger.warning("Game summary failed (%s: %s)", type(e).__name__, e)
            return FALLBACK_SUMMARY

        return text.strip() if isinstance(text, str) and text.strip() else FALLBACK_SUMMARY

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _call(self, fn, **kwargs):
        future = self._executor.submit(fn, **kwargs)
        try:
            return future.result(timeout=self.timeout)
        except FuturesTimeout:
            future.cancel()
            raise
