"""Custom exceptions for the screening context."""

from typing import Optional


class ClassificationError(Exception):
    """
    Exception raised when an LLM stage returns an unusable response.

    Covers unparsable output, a missing or mistyped key, and labels outside
    the stage's allowed values. The analysis queue treats it like any other
    job failure (reset to pending, bounded by the retry budget).

    Attributes:
        message: Error description
        stage: Classifier stage that failed (e.g., 'basic_fit', 'elite')
        raw_response: The LLM output that failed validation
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        raw_response: Optional[str] = None,
    ):
        self.message = message
        self.stage = stage
        self.raw_response = raw_response

        parts = [message]
        if stage:
            parts.append(f"Stage: {stage}")
        if raw_response:
            snippet = raw_response[:200] + "..." if len(raw_response) > 200 else raw_response
            parts.append(f"Response: {snippet}")

        super().__init__("\n".join(parts))


class ConditionError(ValueError):
    """Raised when a screening condition is rejected (e.g., too long)."""
