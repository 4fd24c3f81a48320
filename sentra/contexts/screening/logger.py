"""
Screening context logger.

Provides logging interface for screening context with automatic [screen] prefix.
All screening modules should import from this module, not from loguru directly.
"""

from loguru import logger

from sentra.utils.labels import TIER_DISPLAY

CONTEXT_PREFIX = "[screen]"


def _log_info(message: str) -> None:
    """Log info message with [screen] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [screen] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [screen] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [screen] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [screen] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


# High-level screening-specific logging helpers


def log_job_started(filename: str, running: int, queued: int) -> None:
    _log_info(f"Starting {filename} (running: {running}, queued: {queued})")


def log_decision(filename: str, decision, elapsed_time: float) -> None:
    """
    Log a classification decision.

    Args:
        filename: Resume filename
        decision: ClassificationDecision from TieredClassifier
        elapsed_time: Seconds spent on the job
    """
    tier = TIER_DISPLAY.get(decision.label, decision.label)
    name = f" ({decision.candidate_name})" if decision.candidate_name else ""
    message = f"{filename}: {tier}{name} ({elapsed_time:.1f}s)"
    if decision.label == "rejected":
        _log_info(message)
    else:
        _log_success(message)
    _log_debug(f"  Reason: {decision.reason}")


def log_job_failure(filename: str, error: Exception, attempt: int, max_attempts: int) -> None:
    _log_error(f"{filename}: {type(error).__name__}: {error} (attempt {attempt}/{max_attempts})")
    # Full traceback goes to the file sink only
    logger.opt(exception=error).debug(f"{CONTEXT_PREFIX} Traceback for {filename}")
