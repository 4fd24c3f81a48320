"""
Tracking context logger.

Provides logging interface for tracking context with automatic [track] prefix.
All tracking modules should import from this module, not from loguru directly.
"""

from loguru import logger

CONTEXT_PREFIX = "[track]"


def _log_info(message: str) -> None:
    """Log info message with [track] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [track] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [track] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [track] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


def log_orphans_removed(removed: list[str]) -> None:
    """Log orphan cleanup, listing at most five filenames."""
    if not removed:
        return
    preview = ", ".join(removed[:5])
    more = f" ... and {len(removed) - 5} more" if len(removed) > 5 else ""
    _log_info(f"Cleaned {len(removed)} orphan entries: {preview}{more}")
