"""
Screening service: explicit wiring of the intake, screening and tracking contexts.

Flow per file:
    watcher discovers PDF -> manifest records pending -> ``added`` published
    -> queue admits job -> classifier runs -> every transition written to the
    manifest and published as ``label`` -> ATS side effects on the terminal label

Nothing here is a module-level singleton; callers build a ScreeningService
from settings (injecting fakes where needed) and own its lifecycle.

Usage:
    service = ScreeningService(load_settings())
    await service.start()
    ...
    await service.shutdown()
"""

import asyncio
from pathlib import Path
from typing import AsyncIterator, Dict, Iterable, List, Optional

from loguru import logger

from sentra.config import ScreenerSettings
from sentra.contexts.intake.watcher import DirectoryWatcher, DiscoveryEvent, to_rel_path
from sentra.contexts.screening.classifier import TextGenerator, TieredClassifier
from sentra.contexts.screening.condition import ConditionSnapshot, ConditionStore
from sentra.contexts.screening.queue import AnalysisJob, AnalysisQueue, TextExtractor
from sentra.contexts.tracking.ats import ATSClient, DecisionSideEffects
from sentra.contexts.tracking.events import (
    EVENT_ADDED,
    EVENT_LABEL,
    EVENT_READY,
    EventBus,
    LabelUpdate,
    StreamMessage,
)
from sentra.contexts.tracking.manifest import ManifestStorage, ManifestStore
from sentra.contexts.tracking.reconciler import ReconcileReport, Reconciler
from sentra.contexts.tracking.rejected import RejectionTracker
from sentra.utils.event_logging import PipelineEventLog
from sentra.utils.labels import STATUS_REJECTED, is_in_flight, make_review_label
from sentra.utils.llm import get_provider
from sentra.utils.pdf_processing import PDFTextExtractor


async def review_file(
    store: ManifestStorage,
    filename: str,
    comment: str,
    bus: Optional[EventBus] = None,
    rel_path: Optional[str] = None,
) -> str:
    """
    Record a human review as the file's label.

    Args:
        store: Manifest storage
        filename: Manifest key
        comment: Review text (newlines collapsed, 1-255 chars)
        bus: Optional event bus to publish the new label on
        rel_path: Display path for the published event (default: filename)

    Returns:
        The stored review label

    Raises:
        KeyError: If filename is not in the manifest
        ValueError: If the comment is empty or too long
    """
    label = make_review_label(comment)
    if await store.get(filename) is None:
        raise KeyError(filename)
    await store.upsert(filename, label, source="review")
    if bus is not None:
        bus.publish(EVENT_LABEL, LabelUpdate(filename, rel_path or filename, label))
    return label


async def clear_rejected(store: ManifestStorage, watch_dir: Path) -> List[str]:
    """
    Delete rejected PDFs from disk and drop their manifest entries.

    Returns:
        Filenames cleared
    """
    labels = await store.read_all()
    cleared = []
    for filename, label in sorted(labels.items()):
        if label != STATUS_REJECTED:
            continue
        path = Path(watch_dir) / filename
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not delete {path}: {e}")
            continue
        await store.remove(filename, source="clear_rejected")
        cleared.append(filename)

    if cleared:
        logger.info(f"Cleared {len(cleared)} rejected resumes")
    return cleared


class ScreeningService:
    """
    Owns one pipeline instance.

    Args:
        settings: ScreenerSettings
        provider: LLM text generator (default: built from settings)
        extractor: PDF text extractor (default: pdfplumber-based PDFTextExtractor)
        ats: Optional ATS client for archival and stage moves
        store: Manifest storage (default: CSV ManifestStore at settings.manifest_path)
    """

    def __init__(
        self,
        settings: ScreenerSettings,
        provider: Optional[TextGenerator] = None,
        extractor: Optional[TextExtractor] = None,
        ats: Optional[ATSClient] = None,
        store: Optional[ManifestStorage] = None,
    ):
        self.settings = settings
        self.watch_dir = Path(settings.resume_dir)

        self.event_log = PipelineEventLog(settings.pipeline_events_file)
        self.store = store or ManifestStore(settings.manifest_path, self.event_log)
        self.bus = EventBus()
        self.conditions = ConditionStore(settings.condition)
        self.rejections = RejectionTracker(settings.rejected_path)

        if provider is None:
            provider = get_provider(
                settings.llm_provider, settings.llm_model, settings.llm_timeout_seconds
            )
        self.classifier = TieredClassifier(
            provider,
            strict_mode=settings.strict_mode,
            tiering_enabled=settings.tiering_enabled,
            min_text_chars=settings.min_text_chars,
            max_resume_chars=settings.max_resume_chars,
        )
        self.side_effects = DecisionSideEffects(
            self.rejections,
            ats=ats,
            auto_archive=settings.auto_archive_rejected,
            archive_reason_id=settings.archive_reason_id,
            stage_mappings=settings.stage_mappings,
            event_log=self.event_log,
        )
        self.queue = AnalysisQueue(
            self.store,
            self.classifier,
            extractor or PDFTextExtractor(min_chars=settings.min_text_chars),
            max_concurrency=settings.max_concurrency,
            max_attempts=settings.max_attempts,
            on_decision=self.side_effects,
        )
        self.watcher = DirectoryWatcher(
            self.watch_dir,
            on_discovered=self._on_discovered,
            on_removed=self._on_removed,
            on_ready=self._on_ready,
            stability_seconds=settings.watch_stability_seconds,
            poll_seconds=settings.watch_poll_seconds,
        )
        self.reconciler = Reconciler(
            self.store, self.queue, self.watch_dir, job_factory=self.make_job, watcher=self.watcher
        )
        self.last_reconcile: Optional[ReconcileReport] = None

    # --- Lifecycle ---

    async def start(self) -> None:
        """Start watching; the reconciler runs once the startup scan is reported."""
        logger.info(f"Starting screener on {self.watch_dir} (max concurrency {self.queue.max_concurrency})")
        await self.watcher.start()

    async def shutdown(self) -> None:
        await self.watcher.stop()
        await self.queue.shutdown()
        self.bus.close()
        logger.info("Screener stopped")

    async def __aenter__(self) -> "ScreeningService":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.shutdown()

    # --- Wiring ---

    def make_job(self, filename: str, condition: str) -> AnalysisJob:
        abs_path = (self.watch_dir / filename).resolve()
        return AnalysisJob(
            filename=filename,
            abs_path=abs_path,
            rel_path=to_rel_path(abs_path),
            condition=condition,
            on_update=self._publish_label,
        )

    def _publish_label(self, update: LabelUpdate) -> None:
        self.bus.publish(EVENT_LABEL, update)

    async def _on_discovered(self, event: DiscoveryEvent) -> None:
        known = await self.store.get(event.filename) is not None
        label = await self.store.append_if_missing(event.filename, source="watcher")
        self.event_log.log_event("discovered", event.filename, "watcher", initial=event.initial)
        if event.initial:
            # Startup files are admitted by the reconciler once the watcher is ready
            return

        if not known:
            self.bus.publish(EVENT_ADDED, LabelUpdate(event.filename, event.rel_path, label))
        if is_in_flight(label):
            self.queue.enqueue(self.make_job(event.filename, self.conditions.current))

    async def _on_removed(self, filename: str) -> None:
        if await self.store.remove(filename, source="watcher"):
            self.bus.publish(EVENT_LABEL, LabelUpdate(filename, filename, None))

    async def _on_ready(self) -> None:
        self.bus.publish(EVENT_READY, {"watchDir": str(self.watch_dir)})
        self.last_reconcile = await self.reconciler.reconcile(self.conditions.current)

    # --- Operations ---

    @property
    def condition(self) -> str:
        return self.conditions.current

    def set_condition(self, condition: Optional[str], single: bool = False) -> ConditionSnapshot:
        """Replace the condition for future jobs. Raises ValueError when too long."""
        return self.conditions.set(condition, single=single)

    async def reconcile(self) -> ReconcileReport:
        self.last_reconcile = await self.reconciler.reconcile(self.conditions.current)
        return self.last_reconcile

    async def kick(self) -> List[str]:
        return await self.reconciler.kick(self.conditions.current)

    async def review(self, filename: str, comment: str) -> str:
        rel_path = to_rel_path(self.watch_dir / filename)
        return await review_file(self.store, filename, comment, self.bus, rel_path)

    async def clear_rejected(self) -> List[str]:
        cleared = await clear_rejected(self.store, self.watch_dir)
        for filename in cleared:
            self.watcher.forget(filename)
        return cleared

    async def entries(self, label: Optional[str] = None) -> Dict[str, str]:
        """Manifest snapshot, optionally filtered to one label."""
        labels = await self.store.read_all()
        if label is None:
            return labels
        return {name: value for name, value in labels.items() if value == label}

    def stream(self, events: Iterable[str]) -> AsyncIterator[StreamMessage]:
        """Event stream for one client, pinged every keepalive_seconds."""
        return self.bus.stream(events, keepalive_interval=self.settings.keepalive_seconds)

    async def status(self) -> dict:
        counts = await self.store.count_by_label()
        return {
            "queue": self.queue.status().to_dict(),
            "labels": dict(counts),
            "condition": self.conditions.snapshot().to_dict(),
            "watcherReady": self.watcher.is_ready,
        }
