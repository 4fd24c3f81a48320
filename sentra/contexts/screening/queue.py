"""
Bounded-concurrency analysis queue.

Jobs are admitted FIFO, at most ``max_concurrency`` at a time. Every
completion immediately admits the next queued job. Per file the queue drives

    pending -> in_progress -> {passed | exceeds | elite | rejected}

with two deviations:
- insufficient text finalizes as ``rejected`` (scan_failed) without retrying;
- any other failure resets the file to ``pending`` for the reconciler to pick
  up later, until ``max_attempts`` failures mark it ``failed``.

Idempotency: a filename that is already queued or running is not queued
again, and a job only runs if ManifestStore.claim() succeeds (the label is
still pending/in_progress). Results are written with
ManifestStore.transition(), so a file deleted or reviewed while its job ran
keeps whatever the manifest says now. A file missing at read time has its
entry removed instead of counting as a failure.
"""

import asyncio
import time
from collections import Counter, deque
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Deque, Optional, Protocol, Set

from sentra.contexts.screening.classifier import (
    ClassificationDecision,
    TieredClassifier,
    scan_failed_decision,
)
from sentra.contexts.screening.logger import (
    _log_debug,
    _log_error,
    _log_info,
    _log_warning,
    log_decision,
    log_job_failure,
    log_job_started,
)
from sentra.contexts.tracking.events import LabelUpdate
from sentra.contexts.tracking.manifest import ManifestStorage
from sentra.utils.labels import STATUS_FAILED, STATUS_IN_PROGRESS, STATUS_PENDING
from sentra.utils.pdf_processing import InsufficientTextError

DEFAULT_MAX_CONCURRENCY = 5
DEFAULT_MAX_ATTEMPTS = 3


class TextExtractor(Protocol):
    def extract(self, data: bytes) -> str: ...


@dataclass
class AnalysisJob:
    """
    One file awaiting classification.

    Attributes:
        filename: Manifest key (basename)
        abs_path: File location on disk
        rel_path: Display path reported in events
        condition: Condition snapshot taken at enqueue time
        on_update: Called with a LabelUpdate after every manifest transition
    """

    filename: str
    abs_path: Path
    rel_path: str
    condition: str
    on_update: Optional[Callable[[LabelUpdate], None]] = None


@dataclass(frozen=True)
class QueueStatus:
    queued: int
    running: int
    max_concurrency: int

    def to_dict(self) -> dict:
        return {
            "queued": self.queued,
            "running": self.running,
            "maxConcurrency": self.max_concurrency,
        }


DecisionHook = Callable[[AnalysisJob, ClassificationDecision], Awaitable[None]]


class AnalysisQueue:
    """
    FIFO job scheduler with a concurrency ceiling.

    Args:
        store: Manifest storage (owns labels)
        classifier: TieredClassifier
        extractor: Object with extract(bytes) -> str
        max_concurrency: Jobs allowed to run at once
        max_attempts: Failures per file before it is marked failed
        on_decision: Optional async hook for side effects after a terminal label
    """

    def __init__(
        self,
        store: ManifestStorage,
        classifier: TieredClassifier,
        extractor: TextExtractor,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        on_decision: Optional[DecisionHook] = None,
    ):
        self.store = store
        self.classifier = classifier
        self.extractor = extractor
        self.max_concurrency = max(1, max_concurrency)
        self.max_attempts = max(1, max_attempts)
        self.on_decision = on_decision

        self._queue: Deque[AnalysisJob] = deque()
        self._active: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._failures: Counter = Counter()
        self._running = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False
        self.peak_running = 0

    # --- Public API ---

    def enqueue(self, job: AnalysisJob) -> bool:
        """
        Queue a job unless the same filename is already queued or running.

        Must be called from within the event loop.

        Returns:
            True if the job was queued
        """
        if self._closed:
            _log_warning(f"Queue closed, ignoring {job.filename}")
            return False
        if job.filename in self._active:
            _log_debug(f"Already queued or running: {job.filename}")
            return False

        self._active.add(job.filename)
        self._queue.append(job)
        self._idle.clear()
        _log_debug(f"Enqueued {job.filename} (total: {len(self._queue)})")
        self._drain()
        return True

    def is_active(self, filename: str) -> bool:
        return filename in self._active

    def status(self) -> QueueStatus:
        return QueueStatus(
            queued=len(self._queue),
            running=self._running,
            max_concurrency=self.max_concurrency,
        )

    def failure_count(self, filename: str) -> int:
        return self._failures[filename]

    async def join(self) -> None:
        """Wait until nothing is queued or running."""
        await self._idle.wait()

    async def shutdown(self) -> None:
        """
        Stop admitting jobs, drop queued ones and cancel running ones.

        Cancelled files keep their on-disk label (usually in_progress) and are
        re-admitted by the reconciler on the next start.
        """
        self._closed = True
        dropped = len(self._queue)
        while self._queue:
            self._active.discard(self._queue.popleft().filename)

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if dropped or tasks:
            _log_info(f"Queue shut down ({dropped} queued dropped, {len(tasks)} running cancelled)")
        self._idle.set()

    # --- Scheduling ---

    def _drain(self) -> None:
        while self._running < self.max_concurrency and self._queue:
            job = self._queue.popleft()
            self._running += 1
            self.peak_running = max(self.peak_running, self._running)
            log_job_started(job.filename, self._running, len(self._queue))

            task = asyncio.create_task(self._run_job(job), name=f"analyze:{job.filename}")
            self._tasks.add(task)
            task.add_done_callback(lambda t, filename=job.filename: self._on_job_done(t, filename))

    def _on_job_done(self, task: asyncio.Task, filename: str) -> None:
        self._tasks.discard(task)
        self._running -= 1
        self._active.discard(filename)
        if not self._closed:
            self._drain()
        if self._running == 0 and not self._queue:
            self._idle.set()

    # --- Job execution ---

    def _notify(
        self, job: AnalysisJob, label: Optional[str], candidate_name: Optional[str] = None
    ) -> None:
        if job.on_update is None:
            return
        try:
            job.on_update(LabelUpdate(job.filename, job.rel_path, label, candidate_name))
        except Exception as e:
            # Subscriber may have disconnected; the pipeline carries on
            _log_warning(f"Update callback failed for {job.filename}: {e}")

    async def _classify(self, job: AnalysisJob) -> Optional[ClassificationDecision]:
        """Classify one file. Returns None when the file is no longer on disk."""
        try:
            data = await asyncio.to_thread(Path(job.abs_path).read_bytes)
        except FileNotFoundError:
            return None
        try:
            text = await asyncio.to_thread(self.extractor.extract, data)
        except InsufficientTextError as e:
            _log_warning(f"{job.filename}: scanned PDF ({e.char_count} chars), marking rejected")
            return scan_failed_decision(e.char_count, e.min_chars)
        return await self.classifier.classify(text, job.condition)

    async def _drop_missing(self, job: AnalysisJob) -> None:
        self._failures.pop(job.filename, None)
        _log_info(f"{job.filename} disappeared before analysis, dropping entry")
        if await self.store.remove(job.filename, source="queue"):
            self._notify(job, None)

    async def _run_job(self, job: AnalysisJob) -> None:
        filename = job.filename
        start_time = time.time()

        try:
            if not await self.store.claim(filename, source="queue"):
                current = await self.store.get(filename)
                _log_info(f"Skipping {filename} - already has label: {current}")
                return
            self._notify(job, STATUS_IN_PROGRESS)

            decision = await self._classify(job)
            if decision is None:
                await self._drop_missing(job)
                return

            self._failures.pop(filename, None)
            if not await self.store.transition(filename, decision.label, source="queue"):
                current = await self.store.get(filename)
                _log_info(f"Discarding {decision.label} for {filename} - entry is now {current}")
                return
            self._notify(job, decision.label, decision.candidate_name)
            log_decision(filename, decision, time.time() - start_time)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._handle_failure(job, e)
            return

        if self.on_decision is not None:
            try:
                await self.on_decision(job, decision)
            except Exception as e:
                _log_error(f"Post-decision side effects failed for {filename}: {e}")

    async def _handle_failure(self, job: AnalysisJob, error: Exception) -> None:
        self._failures[job.filename] += 1
        attempts = self._failures[job.filename]
        log_job_failure(job.filename, error, attempts, self.max_attempts)

        next_label = STATUS_FAILED if attempts >= self.max_attempts else STATUS_PENDING
        try:
            written = await self.store.transition(job.filename, next_label, source="queue")
        except Exception as reset_error:
            _log_error(f"Could not reset {job.filename} to {next_label}: {reset_error}")
            return
        if not written:
            _log_debug(f"{job.filename} changed while running, leaving its entry alone")
            return
        self._notify(job, next_label)
        if next_label == STATUS_FAILED:
            _log_error(f"{job.filename}: giving up after {attempts} attempts")
