"""LLM module for the gateway, prompt management and narrative generation."""

from .gateway import (
    LLMGateway,
    ClaudeGateway,
    MockGateway,
    LLMResponse,
    LLMError,
    GatewayError,
    create_gateway,
    load_schema
)
from .prompt_registry import PromptRegistry, PromptTemplate
from .narrative import (
    NarrativeGenerator,
    NarrativeOutcome,
    GenerationResult,
    fallback_outcome,
    parse_outcome,
    FALLBACK_NARRATIVE,
    FALLBACK_SUMMARY,
)

__all__ = [
    "LLMGateway",
    "ClaudeGateway",
    "MockGateway",
    "LLMResponse",
    "LLMError",
    "GatewayError",
    "create_gateway",
    "load_schema",
    "PromptRegistry",
    "PromptTemplate",
    "NarrativeGenerator",
    "NarrativeOutcome",
    "GenerationResult",
    "fallback_outcome",
    "parse_outcome",
    "FALLBACK_NARRATIVE",
    "FALLBACK_SUMMARY",
]
