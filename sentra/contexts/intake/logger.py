"""
Intake context logger.

Provides logging interface for intake context with automatic [intake] prefix.
All intake modules should import from this module, not from loguru directly.
"""

from pathlib import Path

from loguru import logger

CONTEXT_PREFIX = "[intake]"


def _log_info(message: str) -> None:
    """Log info message with [intake] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [intake] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [intake] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [intake] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


def log_watcher_ready(watch_dir: Path, initial_count: int) -> None:
    _log_info(f"Resume watcher ready - dir={watch_dir} ({initial_count} existing PDFs)")


def log_file_discovered(rel_path: str, initial: bool) -> None:
    if initial:
        _log_debug(f"Existing file: {rel_path}")
    else:
        _log_info(f"NEW FILE ADDED: {rel_path}")
