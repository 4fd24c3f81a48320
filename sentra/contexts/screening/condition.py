"""
Screening condition holder.

The condition is the free-text fitness criterion every resume is judged
against. Jobs snapshot it at enqueue time, so changing it only affects files
admitted afterwards.
"""

from dataclasses import dataclass
from typing import Optional

from sentra.config import CONDITION_MAX_BULK, CONDITION_MAX_SINGLE, DEFAULT_CONDITION
from sentra.contexts.screening.exceptions import ConditionError
from sentra.contexts.screening.logger import _log_info
from sentra.utils.timestamp import now_exact


@dataclass(frozen=True)
class ConditionSnapshot:
    condition: str
    version: int
    updated_at: str

    def to_dict(self) -> dict:
        return {"condition": self.condition, "version": self.version, "updated_at": self.updated_at}


def validate_condition(condition: Optional[str], max_length: int = CONDITION_MAX_BULK) -> Optional[str]:
    """
    Normalize a condition string.

    Returns:
        Stripped condition, or None for blank input

    Raises:
        ConditionError: If the condition is longer than max_length
    """
    if condition is None:
        return None
    text = condition.strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ConditionError(f"Condition too long ({len(text)} chars, max {max_length})")
    return text


class ConditionStore:
    """
    Current condition with a version counter.

    Args:
        initial: Starting condition (default DEFAULT_CONDITION)
    """

    def __init__(self, initial: Optional[str] = None):
        self._condition = validate_condition(initial) or DEFAULT_CONDITION
        self._version = 1
        self._updated_at = now_exact()

    @property
    def current(self) -> str:
        return self._condition

    def snapshot(self) -> ConditionSnapshot:
        return ConditionSnapshot(self._condition, self._version, self._updated_at)

    def set(self, condition: Optional[str], single: bool = False) -> ConditionSnapshot:
        """
        Replace the condition. Blank input keeps the previous one.

        Args:
            condition: New condition text
            single: Apply the single-candidate limit instead of the bulk limit

        Raises:
            ConditionError: If the condition exceeds the applicable limit
        """
        limit = CONDITION_MAX_SINGLE if single else CONDITION_MAX_BULK
        text = validate_condition(condition, limit)
        if text is None or text == self._condition:
            return self.snapshot()

        self._condition = text
        self._version += 1
        self._updated_at = now_exact()
        _log_info(f"Condition updated (v{self._version}): {text[:80]}")
        return self.snapshot()
