"""
Rejected candidate registry.

Tracks rejected candidates in a JSON file (default dataset/rejected_candidates.json)
so ATS pulls can skip people who were already screened out. Keyed by ATS
candidate id; files without an identity cannot be tracked.

Schema:
    {
      "version": 1,
      "last_updated": "<ISO 8601>",
      "candidates": {
        "<candidate_id>": {
          "application_id": str,
          "candidate_name": str | null,
          "rejected_at": "<ISO 8601>",
          "reason": "bad_fit" | "scan_failed",
          "archive_status": "success" | "failed" | "skipped"
        }
      }
    }
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Set

from sentra.contexts.tracking.logger import _log_info, _log_warning
from sentra.utils.timestamp import now_exact, session_stamp

REGISTRY_VERSION = 1

ARCHIVE_SUCCESS = "success"
ARCHIVE_FAILED = "failed"
ARCHIVE_SKIPPED = "skipped"


def _empty_registry() -> dict:
    return {"version": REGISTRY_VERSION, "last_updated": now_exact(), "candidates": {}}


class RejectionTracker:
    """JSON-file registry of rejected candidates with serialized writes."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._write_lock = asyncio.Lock()

    def _load(self, preserve_corrupt: bool = False) -> dict:
        """
        Read the registry; unreadable content yields an empty one.

        Args:
            preserve_corrupt: Move an unreadable file aside before it gets overwritten
        """
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return _empty_registry()
        except json.JSONDecodeError:
            data = None
        if not isinstance(data, dict):
            self._handle_corrupt(preserve_corrupt)
            return _empty_registry()
        if not isinstance(data.get("candidates"), dict):
            data["candidates"] = {}
        return data

    def _handle_corrupt(self, preserve: bool) -> None:
        if not preserve:
            _log_warning(f"Corrupt rejected registry at {self.path}, reading as empty")
            return
        backup = self.path.with_name(f"{self.path.name}.corrupt-{session_stamp()}")
        os.replace(self.path, backup)
        _log_warning(f"Corrupt rejected registry moved to {backup}, starting fresh")

    def _save(self, data: dict) -> None:
        data["last_updated"] = now_exact()
        self.path.parent.mkdir(parents=True, exist_ok=True)

        temp_fd, temp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(temp_path, self.path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    async def add(
        self,
        candidate_id: str,
        application_id: str,
        reason: str,
        archive_status: str = ARCHIVE_SKIPPED,
        candidate_name: Optional[str] = None,
    ) -> None:
        """Record (or overwrite) a rejected candidate."""

        def operation() -> None:
            data = self._load(preserve_corrupt=True)
            data["candidates"][candidate_id] = {
                "application_id": application_id,
                "candidate_name": candidate_name,
                "rejected_at": now_exact(),
                "reason": reason,
                "archive_status": archive_status,
            }
            self._save(data)

        async with self._write_lock:
            await asyncio.to_thread(operation)
        _log_info(f"Rejected {candidate_id} (reason: {reason}, archive: {archive_status})")

    async def all(self) -> Dict[str, dict]:
        return (await asyncio.to_thread(self._load))["candidates"]

    async def is_rejected(self, candidate_id: str) -> bool:
        return candidate_id in await self.all()

    async def rejected_ids(self) -> Set[str]:
        return set(await self.all())

    async def stats(self) -> Dict[str, int]:
        """Counts by reason and archive outcome."""
        candidates = list((await self.all()).values())
        return {
            "total": len(candidates),
            "bad_fit": sum(1 for c in candidates if c.get("reason") == "bad_fit"),
            "scan_failed": sum(1 for c in candidates if c.get("reason") == "scan_failed"),
            "archive_failed": sum(
                1 for c in candidates if c.get("archive_status") == ARCHIVE_FAILED
            ),
        }
