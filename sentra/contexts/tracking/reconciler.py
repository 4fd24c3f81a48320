"""
Manifest / disk reconciliation.

Brings the manifest back in line with the watched directory and re-admits
work that never reached a terminal label (e.g., jobs interrupted by a
restart, which stay ``in_progress`` on disk).

Runs once when the watcher reports ready, and on demand.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from sentra.contexts.intake.watcher import DirectoryWatcher, list_pdfs, to_rel_path
from sentra.contexts.screening.queue import AnalysisJob, AnalysisQueue
from sentra.contexts.tracking.logger import _log_debug, _log_info, _log_warning
from sentra.contexts.tracking.manifest import ManifestStorage
from sentra.utils.labels import is_in_flight

# (filename, condition) -> job
JobFactory = Callable[[str, str], AnalysisJob]


@dataclass
class ReconcileReport:
    removed: List[str] = field(default_factory=list)
    registered: List[str] = field(default_factory=list)
    enqueued: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "removed": self.removed,
            "registered": self.registered,
            "enqueued": self.enqueued,
        }


class Reconciler:
    """
    Args:
        store: Manifest storage
        queue: Analysis queue to re-admit work into
        watch_dir: Directory whose PDFs the manifest mirrors
        job_factory: Builds an AnalysisJob for (filename, condition)
        watcher: Optional watcher used by kick() to force re-discovery
    """

    def __init__(
        self,
        store: ManifestStorage,
        queue: AnalysisQueue,
        watch_dir: Path,
        job_factory: Optional[JobFactory] = None,
        watcher: Optional[DirectoryWatcher] = None,
    ):
        self.store = store
        self.queue = queue
        self.watch_dir = Path(watch_dir)
        self.job_factory = job_factory or self._default_job
        self.watcher = watcher

    def _default_job(self, filename: str, condition: str) -> AnalysisJob:
        abs_path = (self.watch_dir / filename).resolve()
        return AnalysisJob(filename, abs_path, to_rel_path(abs_path), condition)

    async def reconcile(self, condition: str) -> ReconcileReport:
        """
        Remove orphans, register unrecorded PDFs and enqueue non-terminal files.

        Args:
            condition: Condition snapshot for every job admitted here

        Returns:
            ReconcileReport listing removed, registered and enqueued filenames
        """
        report = ReconcileReport()

        cleanup = await self.store.clean_orphans(self.watch_dir)
        report.removed = list(cleanup.removed)

        labels = await self.store.read_all()
        for filename in list_pdfs(self.watch_dir):
            if filename not in labels:
                labels[filename] = await self.store.append_if_missing(filename, source="reconciler")
                report.registered.append(filename)

        for filename, label in sorted(labels.items()):
            if not is_in_flight(label):
                continue
            if not (self.watch_dir / filename).exists():
                continue
            if self.queue.enqueue(self.job_factory(filename, condition)):
                report.enqueued.append(filename)

        _log_info(
            f"Reconciled: {len(report.removed)} removed, "
            f"{len(report.registered)} registered, {len(report.enqueued)} enqueued"
        )
        return report

    async def kick(self, condition: str) -> List[str]:
        """
        Force re-discovery of every non-terminal file.

        Each file's mtime is bumped and the watcher forgets it, so the next
        scan reports it again once stable. Without a watcher the files are
        enqueued directly. Files that cannot be touched are skipped.

        Returns:
            Filenames kicked
        """
        labels = await self.store.read_all()
        kicked = []
        for filename, label in sorted(labels.items()):
            if not is_in_flight(label) or self.queue.is_active(filename):
                continue
            path = self.watch_dir / filename
            try:
                os.utime(path, None)
            except OSError as e:
                _log_warning(f"Cannot kick {filename}: {e}")
                continue

            if self.watcher is not None:
                self.watcher.forget(filename)
            else:
                self.queue.enqueue(self.job_factory(filename, condition))
            kicked.append(filename)
            _log_debug(f"Kicked {filename}")

        if kicked:
            _log_info(f"Kicked {len(kicked)} pending files")
        return kicked
