"""
Manifest Store

Authoritative filename -> label state for the screening pipeline.
Stored as a two-column CSV (default dataset/manifest.csv).

Schema:
    filename (str): Resume filename (PRIMARY KEY)
    label (str): Pipeline status (see sentra.utils.labels)

Every mutation runs under a single asyncio lock, re-reads the file, merges in
memory and rewrites the whole file through a temp file + rename. Concurrent
jobs therefore never interleave partial writes, and a failed write leaves the
previous file untouched. Unparsable rows are skipped on read.

Usage:
    store = ManifestStore(Path("dataset/manifest.csv"))

    await store.append_if_missing("Jane_Doe__....pdf")   # -> "pending"
    await store.upsert("Jane_Doe__....pdf", "passed", source="queue")
"""

import asyncio
import csv
import io
import os
import tempfile
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, TypeVar

from sentra.contexts.tracking.logger import _log_debug, log_orphans_removed
from sentra.utils.event_logging import PipelineEventLog
from sentra.utils.labels import STATUS_IN_PROGRESS, STATUS_PENDING, is_in_flight, is_valid_label

MANIFEST_COLUMNS = ["filename", "label"]

T = TypeVar("T")


@dataclass
class OrphanCleanup:
    """Result of removing entries whose backing file is gone."""

    removed: List[str] = field(default_factory=list)
    kept: int = 0


class ManifestStorage(Protocol):
    """Storage contract the pipeline depends on; CSV is one implementation."""

    async def read_all(self) -> Dict[str, str]: ...

    async def get(self, filename: str) -> Optional[str]: ...

    async def upsert(self, filename: str, label: str, source: str = ...) -> str: ...

    async def append_if_missing(self, filename: str, source: str = ...) -> str: ...

    async def claim(self, filename: str, source: str = ...) -> bool: ...

    async def transition(
        self, filename: str, label: str, expected: str = ..., source: str = ...
    ) -> bool: ...

    async def remove(self, filename: str, source: str = ...) -> bool: ...

    async def clean_orphans(self, directory: Path) -> OrphanCleanup: ...

    async def count_by_label(self) -> Counter: ...

    async def clear(self) -> None: ...


def parse_manifest(raw: str) -> Dict[str, str]:
    """
    Parse manifest CSV text into an ordered filename -> label dict.

    Rows without a filename, without a label, or with a label outside the
    known vocabulary are skipped. A label containing unquoted commas (hand
    edited file) is rejoined. Later rows win over earlier duplicates.
    """
    labels: Dict[str, str] = {}
    reader = csv.reader(io.StringIO(raw))
    for i, row in enumerate(reader):
        if not row:
            continue
        if i == 0 and row[0].strip().lower() == "filename":
            continue
        if len(row) < 2:
            continue

        filename = row[0].strip()
        label = ",".join(row[1:]).strip()
        if not filename or not is_valid_label(label):
            _log_debug(f"Skipping malformed manifest row {i + 1}: {row!r}")
            continue
        labels[filename] = label
    return labels


def render_manifest(labels: Dict[str, str]) -> str:
    """Render labels as manifest CSV text (header first)."""
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(MANIFEST_COLUMNS)
    for filename, label in labels.items():
        writer.writerow([filename, label])
    return out.getvalue()


class ManifestStore:
    """
    CSV-backed manifest with a single serialized writer.

    Args:
        path: Manifest CSV location (created with a header on first write)
        event_log: Optional pipeline event log; every label change is recorded
    """

    def __init__(self, path: Path, event_log: Optional[PipelineEventLog] = None):
        self.path = Path(path)
        self.event_log = event_log
        self._write_lock = asyncio.Lock()

    # --- File I/O (runs in worker threads) ---

    def _read_labels(self) -> Dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        return parse_manifest(raw)

    def _write_labels(self, labels: Dict[str, str]) -> None:
        """Atomically replace the manifest file with the given labels."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Temp file in the same directory so os.replace is an atomic rename
        temp_fd, temp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(temp_fd, "w", newline="", encoding="utf-8") as f:
                f.write(render_manifest(labels))
                f.flush()
                os.fsync(f.fileno())

            os.replace(temp_path, self.path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def _record_change(
        self, filename: str, old: Optional[str], new: Optional[str], source: str
    ) -> None:
        if self.event_log is None or old == new:
            return
        if new is None:
            self.event_log.log_event("removed", filename, source, old_status=old)
        else:
            self.event_log.log_status_change(filename, old, new, source)

    async def _mutate(self, operation: Callable[[], T]) -> T:
        """Run a read-merge-write operation behind the writer lock."""
        async with self._write_lock:
            return await asyncio.to_thread(operation)

    # --- Reads ---

    async def read_all(self) -> Dict[str, str]:
        """Snapshot of every filename -> label."""
        return await asyncio.to_thread(self._read_labels)

    async def get(self, filename: str) -> Optional[str]:
        return (await self.read_all()).get(filename)

    async def count_by_label(self) -> Counter:
        """Counts per label; review labels are grouped under "reviewed"."""
        counts = Counter()
        for label in (await self.read_all()).values():
            counts["reviewed" if label.startswith("reviewed#") else label] += 1
        return counts

    # --- Writes ---

    async def upsert(self, filename: str, label: str, source: str = "manifest") -> str:
        """
        Insert or replace the label for a filename.

        Raises:
            ValueError: If label is not a valid status
        """
        if not is_valid_label(label):
            raise ValueError(f"Invalid manifest label: {label!r}")
        if not filename or "\n" in filename:
            raise ValueError(f"Invalid manifest filename: {filename!r}")

        def operation() -> str:
            labels = self._read_labels()
            old = labels.get(filename)
            labels[filename] = label
            self._write_labels(labels)
            self._record_change(filename, old, label, source)
            return label

        return await self._mutate(operation)

    async def append_if_missing(self, filename: str, source: str = "manifest") -> str:
        """
        Register a filename as pending unless it already has a label.

        Returns:
            The label now stored for filename (existing labels are never downgraded)
        """

        def operation() -> str:
            labels = self._read_labels()
            existing = labels.get(filename)
            if existing:
                return existing
            labels[filename] = STATUS_PENDING
            self._write_labels(labels)
            self._record_change(filename, None, STATUS_PENDING, source)
            return STATUS_PENDING

        return await self._mutate(operation)

    async def claim(self, filename: str, source: str = "queue") -> bool:
        """
        Compare-and-set a file to in_progress.

        Succeeds only when the current label is missing, pending or in_progress,
        so files with a terminal label are never picked up again.
        """

        def operation() -> bool:
            labels = self._read_labels()
            current = labels.get(filename)
            if not is_in_flight(current):
                return False
            if current != STATUS_IN_PROGRESS:
                labels[filename] = STATUS_IN_PROGRESS
                self._write_labels(labels)
            self._record_change(filename, current, STATUS_IN_PROGRESS, source)
            return True

        return await self._mutate(operation)

    async def transition(
        self,
        filename: str,
        label: str,
        expected: str = STATUS_IN_PROGRESS,
        source: str = "queue",
    ) -> bool:
        """
        Set label only if the entry still exists with the expected label.

        A job finishing after its file was deleted (entry removed) or reviewed
        (label replaced) leaves the manifest untouched.

        Returns:
            True if the label was written

        Raises:
            ValueError: If label is not a valid status
        """
        if not is_valid_label(label):
            raise ValueError(f"Invalid manifest label: {label!r}")

        def operation() -> bool:
            labels = self._read_labels()
            current = labels.get(filename)
            if current != expected:
                return False
            labels[filename] = label
            self._write_labels(labels)
            self._record_change(filename, current, label, source)
            return True

        return await self._mutate(operation)

    async def remove(self, filename: str, source: str = "manifest") -> bool:
        """Remove an entry. Returns False if it was not present."""

        def operation() -> bool:
            labels = self._read_labels()
            if filename not in labels:
                return False
            old = labels.pop(filename)
            self._write_labels(labels)
            self._record_change(filename, old, None, source)
            return True

        return await self._mutate(operation)

    async def clean_orphans(self, directory: Path) -> OrphanCleanup:
        """Remove entries whose file no longer exists in directory."""
        directory = Path(directory)

        def operation() -> OrphanCleanup:
            labels = self._read_labels()
            kept = {}
            removed = []
            for filename, label in labels.items():
                if (directory / filename).exists():
                    kept[filename] = label
                else:
                    removed.append(filename)

            if removed:
                self._write_labels(kept)
                for filename in removed:
                    self._record_change(filename, labels[filename], None, "reconciler")

            return OrphanCleanup(removed=removed, kept=len(kept))

        result = await self._mutate(operation)
        log_orphans_removed(result.removed)
        return result

    async def clear(self) -> None:
        """Reset the manifest to a header-only file."""
        await self._mutate(lambda: self._write_labels({}))
