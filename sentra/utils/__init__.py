"""
Shared utilities for SENTRA.

Common functionality used across contexts:
- Status label vocabulary
- LLM providers and response parsing
- PDF text extraction
- Logging and pipeline event logs
"""

from sentra.utils.timestamp import now_exact, now_ms

__all__ = ["now_exact", "now_ms"]
