"""Exceptions raised by the transformer engine.

Every error carries a ``message`` that is safe to show to the user; raw
parse errors and provider tracebacks never leave the engine.
"""
from __future__ import annotations


class TransformerError(Exception):
    """Base class for engine failures that callers are expected to handle."""

    default_message = "Something went wrong while working on your plan. Please try again."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ProviderUnavailableError(TransformerError):
    default_message = "AI generation is temporarily unavailable. Please try again later."


class MalformedOutputError(TransformerError):
    default_message = "AI returned an invalid response. Please try again."


EMPTY_RESPONSE_MESSAGE = "AI returned an empty response. Please try again."
INVALID_RESPONSE_MESSAGE = MalformedOutputError.default_message
INCOMPLETE_SYSTEM_MESSAGE = "AI generated an incomplete system. Please try again."


class BudgetExceededError(TransformerError):
    default_message = "Maximum refinement turns reached."


class LifecycleError(TransformerError):
    default_message = "This plan cannot be changed in its current state."


class PatchError(TransformerError):
    """A single patch referenced an invalid phase or habit; skipped by the caller."""

    default_message = "Patch could not be applied."


class JSONExtractionError(ValueError):
    """No JSON object could be recovered from a raw model response."""
