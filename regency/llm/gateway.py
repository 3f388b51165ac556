"""
LLM Gateway - Provider-agnostic interface for LLM interactions.

Handles structured output generation with schema validation.
"""

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import jsonschema

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

JSON_ONLY_SYSTEM = (
    "Reply with a single raw JSON object and nothing else: "
    "no prose before or after it and no markdown fences."
)

FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")
BARE_JSON = re.compile(r"\{[\s\S]*\}")
PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


@dataclass
class LLMResponse:
    """Response from an LLM call."""
    content: dict
    raw_text: str
    model: str
    usage: dict
    latency_ms: float


@dataclass
class LLMError:
    """Error from an LLM call."""
    error_type: str
    message: str
    retryable: bool


class GatewayError(Exception):
    """Raised when an LLM call fails after all retries."""

    def __init__(self, error: LLMError, attempts: int):
        super().__init__(f"LLM call failed after {attempts} attempts: {error.message}")
        self.error = error
        self.attempts = attempts


class LLMGateway(ABC):
    """
    A text-generation provider.

    Prompts use {{name}} placeholders; dict and list values are rendered as
    indented JSON.
    """

    @abstractmethod
    def run_structured(
        self,
        prompt: str,
        input_data: dict,
        schema: dict,
        options: Optional[dict] = None
    ) -> LLMResponse:
        """
        Render prompt with input_data and return a reply that validates
        against schema.

        options may carry system, max_tokens and temperature. Raises
        GatewayError once the provider has given up.
        """
        pass

    @abstractmethod
    def run_text(
        self,
        prompt: str,
        input_data: dict,
        options: Optional[dict] = None
    ) -> str:
        """Run a prompt and return its free-text answer."""
        pass

    def _render_prompt(self, template: str, data: dict) -> str:
        """Fill {{name}} placeholders; unknown names are left as they are."""
        def substitute(match):
            key = match.group(1)
            if key not in data:
                return match.group(0)
            value = data[key]
            if isinstance(value, (dict, list)):
                return json.dumps(value, indent=2)
            return str(value)

        return PLACEHOLDER.sub(substitute, template)

    def _validate_output(self, output: dict, schema: dict) -> None:
        """Validate output against JSON schema."""
        jsonschema.validate(instance=output, schema=schema)


class ClaudeGateway(LLMGateway):
    """
    Anthropic Messages API gateway.

    The SDK's own retries are disabled; run_structured retries here so a
    reply that fails to parse or validate is retried like a transport error.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        timeout: float = 30.0
    ):
        if not api_key:
            raise ValueError("No Anthropic API key configured")

        import anthropic

        self.model = model
        self.attempts = max(1, max_retries)
        self.retry_delay = retry_delay
        self.client = anthropic.Anthropic(api_key=api_key, timeout=timeout, max_retries=0)

    def run_structured(
        self,
        prompt: str,
        input_data: dict,
        schema: dict,
        options: Optional[dict] = None
    ) -> LLMResponse:
        options = options or {}
        user_text = (
            self._render_prompt(prompt, input_data)
            + "\n\nThe JSON object must validate against this schema:\n"
            + json.dumps(schema, indent=2)
        )

        error = None
        attempt = 0
        while attempt < self.attempts:
            attempt += 1
            try:
                return self._structured_once(user_text, schema, options)
            except jsonschema.ValidationError as e:
                error = LLMError("validation_error", f"Reply does not match schema: {e.message}", True)
            except json.JSONDecodeError as e:
                error = LLMError("parse_error", f"Reply is not JSON: {e}", True)
            except Exception as e:
                error = _api_error(e)

            logger.debug("Claude attempt %d/%d failed: %s", attempt, self.attempts, error.message)
            if not error.retryable:
                break
            if attempt < self.attempts:
                time.sleep(self.retry_delay * attempt)

        raise GatewayError(error, attempt)

    def _structured_once(self, user_text: str, schema: dict, options: dict) -> LLMResponse:
        started = time.monotonic()
        message = self._create(
            user_text,
            system=options.get("system") or JSON_ONLY_SYSTEM,
            max_tokens=options.get("max_tokens", 1024),
            temperature=options.get("temperature", 0.7)
        )
        raw_text = message.content[0].text
        content = self._extract_json(raw_text)
        self._validate_output(content, schema)
        return LLMResponse(
            content=content,
            raw_text=raw_text,
            model=message.model,
            usage={
                "input_tokens": message.usage.input_tokens,
                "output_tokens": message.usage.output_tokens
            },
            latency_ms=(time.monotonic() - started) * 1000
        )

    def run_text(
        self,
        prompt: str,
        input_data: dict,
        options: Optional[dict] = None
    ) -> str:
        """Single attempt; the caller decides what a failure means."""
        options = options or {}
        try:
            message = self._create(
                self._render_prompt(prompt, input_data),
                system=options.get("system", ""),
                max_tokens=options.get("max_tokens", 512),
                temperature=options.get("temperature", 0.7)
            )
        except Exception as e:
            raise GatewayError(_api_error(e), 1) from e
        return message.content[0].text.strip()

    def _create(self, user_text: str, system: str, max_tokens: int, temperature: float):
        return self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=[{"role": "user", "content": user_text}]
        )

    def _extract_json(self, text: str) -> dict:
        """Parse a reply as JSON, tolerating markdown fences and stray prose."""
        candidates = [text.strip()]
        fenced = FENCED_JSON.search(text)
        if fenced:
            candidates.append(fenced.group(1))
        bare = BARE_JSON.search(text)
        if bare:
            candidates.append(bare.group(0))

        for candidate in candidates:
            try:
                return json.loads(candidate)
            except json.JSONDecodeError:
                continue
        raise json.JSONDecodeError("No JSON object in reply", text, 0)


class MockGateway(LLMGateway):
    """Mock gateway for testing without API calls."""

    def __init__(self, responses: Optional[dict] = None, delay: float = 0.0):
        """
        Initialize mock gateway.

        Args:
            responses: Dict mapping prompt substrings to response dicts,
                strings (for run_text) or exceptions to raise
            delay: Seconds to sleep before answering, to simulate a slow provider
        """
        self.responses = responses or {}
        self.delay = delay
        self.call_log: list[dict] = []

    def set_response(self, prompt_contains: str, response) -> None:
        """Set a mock response for prompts containing a string."""
        self.responses[prompt_contains] = response

    def run_structured(
        self,
        prompt: str,
        input_data: dict,
        schema: dict,
        options: Optional[dict] = None
    ) -> LLMResponse:
        """Return mock response based on prompt content."""
        rendered = self._record(prompt, input_data, schema)
        response = self._match(rendered)
        self._validate_output(response, schema)
        return LLMResponse(
            content=response,
            raw_text=json.dumps(response),
            model="mock",
            usage={"input_tokens": 0, "output_tokens": 0},
            latency_ms=self.delay * 1000
        )

    def run_text(
        self,
        prompt: str,
        input_data: dict,
        options: Optional[dict] = None
    ) -> str:
        rendered = self._record(prompt, input_data, None)
        return str(self._match(rendered))

    def _record(self, prompt: str, input_data: dict, schema: Optional[dict]) -> str:
        rendered = self._render_prompt(prompt, input_data)
        self.call_log.append({
            "prompt": prompt,
            "input_data": input_data,
            "schema": schema,
            "rendered": rendered
        })
        if self.delay:
            time.sleep(self.delay)
        return rendered

    def _match(self, rendered: str):
        for key, response in self.responses.items():
            if key in rendered:
                if isinstance(response, BaseException):
                    raise response
                return response
        raise GatewayError(
            LLMError(
                error_type="mock_error",
                message=f"No mock response configured for prompt containing: {rendered[:100]}...",
                retryable=False
            ),
            1
        )


def _api_error(exc: Exception) -> LLMError:
    error_str = str(exc)
    retryable = "rate_limit" in error_str.lower() or "timeout" in error_str.lower()
    return LLMError(
        error_type="api_error",
        message=f"{type(exc).__name__}: {error_str}",
        retryable=retryable
    )


def load_schema(schema_name: str) -> dict:
    """Load a JSON schema from the schemas directory."""
    schema_path = Path(__file__).parent.parent / "schemas" / f"{schema_name}.schema.json"
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema not found: {schema_path}")

    with open(schema_path) as f:
        return json.load(f)


def create_gateway(provider: str = "claude", **kwargs) -> LLMGateway:
    """Factory function to create an LLM gateway."""
    if provider == "claude":
        return ClaudeGateway(**kwargs)
    elif provider == "mock":
        return MockGateway(**kwargs)
    else:
        raise ValueError(f"Unknown provider: {provider}")
