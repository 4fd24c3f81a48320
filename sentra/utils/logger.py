"""
Loguru session setup for screener commands.

Each command run gets its own log file under the logs directory, holding
every DEBUG record, while the console shows INFO and above. The first lines
of every session record where and how it was started.

Context-specific wrappers ([intake], [screen], [track]) live in
contexts/{context}/logger.py.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from sentra import __version__
from sentra.utils.timestamp import session_stamp

CONSOLE_FORMAT = "{time:HH:mm:ss} | <level>{level: <7}</level> | <level>{message}</level>"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <7} | {thread.name} | {message}"

# Overrides applied on top of loguru's level colors
LEVEL_COLORS = {
    "DEBUG": "<dim>",
    "WARNING": "<yellow>",
    "ERROR": "<red>",
}


def setup_logger(
    context_name: str,
    log_dir: Path,
    extra_provenance: Optional[dict] = None,
    console_level: str = "INFO",
) -> Path:
    """
    Route loguru output to a per-session file and the console.

    Args:
        context_name: Session name used as the log file prefix (e.g., "screener")
        log_dir: Directory for session logs (created if missing)
        extra_provenance: Additional key-value pairs for the session header
        console_level: Minimum level shown on the console

    Returns:
        Path to this session's log file

    Example:
        log_file = setup_logger(
            "screener",
            Path("outs/logs"),
            extra_provenance={"Resume dir": "dataset/resumes"},
        )
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{context_name}_{session_stamp()}.log"

    logger.remove()
    for level_name, color in LEVEL_COLORS.items():
        logger.level(level_name, color=color)

    # enqueue=True: job threads and the event loop log through one writer
    logger.add(log_file, format=FILE_FORMAT, level="DEBUG", enqueue=True)
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=console_level, colorize=True)

    log_provenance(context_name, extra_provenance)
    return log_file


def log_provenance(context_name: str, extra_context: Optional[dict] = None) -> None:
    """Write the session header: command line, environment and extra context."""
    logger.info("=" * 80)
    logger.info(f"Session: {context_name} (sentra {__version__})")
    logger.info(f"Command: {' '.join(sys.argv)}")
    logger.info(f"Working directory: {Path.cwd()}")
    logger.info(f"Python: {sys.version.split()[0]}")
    for key, value in (extra_context or {}).items():
        logger.info(f"{key}: {value}")
    logger.info("=" * 80)
