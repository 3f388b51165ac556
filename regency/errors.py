"""
Errors surfaced by the issue resolution engine.

Every error a caller can observe derives from EngineError. GeneratorFault
is the exception: it is raised and absorbed inside the narrative adapter
and never reaches the orchestrator.
"""


class EngineError(Exception):
    """Base class for engine errors."""

    retryable = False


class ValidationError(EngineError):
    """Request fields are empty or oversized. No state was touched."""


class NotFoundError(EngineError):
    """Unknown issue, or an issue that is not the active one."""


class ConflictError(EngineError):
    """A resolution is already in flight, or the game is not accepting them."""


class PersistenceError(EngineError):
    """Storage failed. Partial effects were rolled back; safe to retry."""

    retryable = True


class StaleStateError(PersistenceError):
    """The game state changed under a compare-and-set transition."""


class GeneratorFault(EngineError):
    """The narrative generator failed or returned malformed output."""
