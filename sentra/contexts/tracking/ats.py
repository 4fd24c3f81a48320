"""
ATS side effects for terminal screening decisions.

The ATS itself (Ashby) is an external collaborator; this module only needs
two capabilities from it, expressed as the ATSClient protocol. Side effects
never change manifest labels: failures are logged and recorded.

On a terminal decision:
- rejected: optionally archive the application, then record the rejection
- passed / exceeds / elite: move the application to the mapped stage, if any
"""

import asyncio
from typing import Dict, Optional, Protocol

from sentra.contexts.intake.identity import parse_identity
from sentra.contexts.screening.classifier import REASON_BAD_FIT, ClassificationDecision
from sentra.contexts.screening.queue import AnalysisJob
from sentra.contexts.tracking.logger import _log_error, _log_info, _log_warning
from sentra.contexts.tracking.rejected import (
    ARCHIVE_FAILED,
    ARCHIVE_SKIPPED,
    ARCHIVE_SUCCESS,
    RejectionTracker,
)
from sentra.utils.event_logging import PipelineEventLog
from sentra.utils.labels import PASSING_STATUSES, STATUS_REJECTED


class ATSClient(Protocol):
    """Capabilities consumed from the applicant tracking system."""

    def archive(self, application_id: str, reason_id: Optional[str] = None) -> bool: ...

    def move_stage(self, application_id: str, stage_id: str) -> bool: ...


class DecisionSideEffects:
    """
    Post-decision hook for the analysis queue.

    Args:
        tracker: Rejected candidate registry
        ats: Optional ATS client (None disables archival and stage moves)
        auto_archive: Archive rejected applications in the ATS
        archive_reason_id: Optional ATS archive reason id
        stage_mappings: Tier label -> ATS stage id for passing candidates
        event_log: Optional pipeline event log
    """

    def __init__(
        self,
        tracker: RejectionTracker,
        ats: Optional[ATSClient] = None,
        auto_archive: bool = False,
        archive_reason_id: Optional[str] = None,
        stage_mappings: Optional[Dict[str, str]] = None,
        event_log: Optional[PipelineEventLog] = None,
    ):
        self.tracker = tracker
        self.ats = ats
        self.auto_archive = auto_archive
        self.archive_reason_id = archive_reason_id
        self.stage_mappings = dict(stage_mappings or {})
        self.event_log = event_log

    async def __call__(self, job: AnalysisJob, decision: ClassificationDecision) -> None:
        if decision.label == STATUS_REJECTED:
            await self.handle_rejection(job.filename, decision)
        elif decision.label in PASSING_STATUSES:
            await self.sync_stage(job.filename, decision.label)

    async def archive(self, filename: str) -> bool:
        """Archive a file's application in the ATS. False if unavailable or failed."""
        identity = parse_identity(filename)
        if identity is None:
            _log_warning(f"No applicationId for {filename}")
            return False
        if self.ats is None:
            _log_warning("ATS client not configured")
            return False
        try:
            ok = await asyncio.to_thread(
                self.ats.archive, identity.application_id, self.archive_reason_id
            )
        except Exception as e:
            _log_error(f"Archive failed for {identity.application_id}: {e}")
            return False
        if ok:
            _log_info(f"Archived {identity.application_id}")
        else:
            _log_error(f"Failed to archive {identity.application_id}")
        return bool(ok)

    async def handle_rejection(self, filename: str, decision: ClassificationDecision) -> str:
        """
        Archive (if enabled) and record a rejected candidate.

        Returns:
            Archive status ("success", "failed" or "skipped")
        """
        reason = decision.reason_tag or REASON_BAD_FIT
        identity = parse_identity(filename)
        if identity is None:
            _log_warning(f"Could not extract IDs from: {filename}")
            return ARCHIVE_SKIPPED

        archive_status = ARCHIVE_SKIPPED
        if self.auto_archive:
            archive_status = ARCHIVE_SUCCESS if await self.archive(filename) else ARCHIVE_FAILED

        await self.tracker.add(
            identity.candidate_id,
            identity.application_id,
            reason,
            archive_status,
            candidate_name=identity.display_name or None,
        )
        if self.event_log is not None:
            self.event_log.log_event(
                "rejected", filename, "side_effects", reason=reason, archive_status=archive_status
            )
        return archive_status

    async def sync_stage(self, filename: str, label: str) -> bool:
        """Move a passing candidate to the stage mapped for its tier."""
        stage_id = self.stage_mappings.get(label)
        if not stage_id or self.ats is None:
            return False
        identity = parse_identity(filename)
        if identity is None:
            _log_warning(f"Cannot sync stage for {filename}: no identity")
            return False
        try:
            ok = await asyncio.to_thread(self.ats.move_stage, identity.application_id, stage_id)
        except Exception as e:
            _log_error(f"Stage move failed for {identity.application_id}: {e}")
            return False
        if ok:
            _log_info(f"Moved {identity.application_id} to stage {stage_id} ({label})")
        return bool(ok)
