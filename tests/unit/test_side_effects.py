"""Unit tests for rejection tracking and ATS side effects."""

import asyncio
import json

import pytest

from conftest import APPLICATION_ID, CANDIDATE_ID, IDENTIFIED_FILENAME
from sentra.contexts.screening.classifier import ClassificationDecision
from sentra.contexts.screening.queue import AnalysisJob
from sentra.contexts.tracking.ats import DecisionSideEffects
from sentra.contexts.tracking.rejected import RejectionTracker


class FakeATS:
    def __init__(self, archive_ok=True, move_ok=True):
        self.archive_ok = archive_ok
        self.move_ok = move_ok
        self.archived = []
        self.moved = []

    def archive(self, application_id, reason_id=None):
        self.archived.append((application_id, reason_id))
        if isinstance(self.archive_ok, Exception):
            raise self.archive_ok
        return self.archive_ok

    def move_stage(self, application_id, stage_id):
        self.moved.append((application_id, stage_id))
        return self.move_ok


def job_for(filename):
    return AnalysisJob(filename, f"/tmp/{filename}", filename, "condition")


REJECTED = ClassificationDecision("rejected", "Too junior.", "bad_fit")
SCAN_FAILED = ClassificationDecision("rejected", "No text.", "scan_failed")


@pytest.mark.unit
def test_tracker_add_and_stats(tmp_path):
    tracker = RejectionTracker(tmp_path / "rejected.json")

    async def scenario():
        await tracker.add("c1", "a1", "bad_fit", "success", candidate_name="Jane")
        await tracker.add("c2", "a2", "scan_failed", "failed")
        return await tracker.stats(), await tracker.is_rejected("c1"), await tracker.rejected_ids()

    stats, is_rejected, ids = asyncio.run(scenario())

    assert stats == {"total": 2, "bad_fit": 1, "scan_failed": 1, "archive_failed": 1}
    assert is_rejected
    assert ids == {"c1", "c2"}

    data = json.loads((tmp_path / "rejected.json").read_text())
    assert data["version"] == 1
    assert data["candidates"]["c1"]["application_id"] == "a1"
    assert data["candidates"]["c1"]["candidate_name"] == "Jane"


@pytest.mark.unit
def test_tracker_survives_corrupt_file(tmp_path):
    path = tmp_path / "rejected.json"
    path.write_text("{not json")
    tracker = RejectionTracker(path)

    assert asyncio.run(tracker.all()) == {}


@pytest.mark.unit
def test_corrupt_file_is_moved_aside_on_write(tmp_path):
    path = tmp_path / "rejected.json"
    path.write_text("{not json")
    tracker = RejectionTracker(path)

    asyncio.run(tracker.add("c1", "a1", "bad_fit"))

    backups = list(tmp_path.glob("rejected.json.corrupt-*"))
    assert len(backups) == 1
    assert backups[0].read_text() == "{not json"
    assert set(json.loads(path.read_text())["candidates"]) == {"c1"}


@pytest.mark.unit
def test_non_object_registry_reads_as_empty(tmp_path):
    path = tmp_path / "rejected.json"
    path.write_text("[1, 2, 3]")
    tracker = RejectionTracker(path)

    assert asyncio.run(tracker.all()) == {}
    assert path.read_text() == "[1, 2, 3]"


@pytest.mark.unit
def test_rejection_archived_when_enabled(tmp_path):
    tracker = RejectionTracker(tmp_path / "rejected.json")
    ats = FakeATS()
    effects = DecisionSideEffects(tracker, ats=ats, auto_archive=True, archive_reason_id="r-1")

    asyncio.run(effects(job_for(IDENTIFIED_FILENAME), REJECTED))

    assert ats.archived == [(APPLICATION_ID, "r-1")]
    record = asyncio.run(tracker.all())[CANDIDATE_ID]
    assert record["archive_status"] == "success"
    assert record["reason"] == "bad_fit"


@pytest.mark.unit
def test_archive_failure_is_recorded(tmp_path):
    tracker = RejectionTracker(tmp_path / "rejected.json")
    effects = DecisionSideEffects(
        tracker, ats=FakeATS(archive_ok=RuntimeError("502")), auto_archive=True
    )

    asyncio.run(effects(job_for(IDENTIFIED_FILENAME), SCAN_FAILED))

    record = asyncio.run(tracker.all())[CANDIDATE_ID]
    assert record["archive_status"] == "failed"
    assert record["reason"] == "scan_failed"


@pytest.mark.unit
def test_archive_skipped_when_disabled(tmp_path):
    tracker = RejectionTracker(tmp_path / "rejected.json")
    ats = FakeATS()
    effects = DecisionSideEffects(tracker, ats=ats, auto_archive=False)

    asyncio.run(effects(job_for(IDENTIFIED_FILENAME), REJECTED))

    assert ats.archived == []
    assert asyncio.run(tracker.all())[CANDIDATE_ID]["archive_status"] == "skipped"


@pytest.mark.unit
def test_file_without_identity_is_skipped(tmp_path):
    tracker = RejectionTracker(tmp_path / "rejected.json")
    ats = FakeATS()
    effects = DecisionSideEffects(tracker, ats=ats, auto_archive=True)

    status = asyncio.run(effects.handle_rejection("resume.pdf", REJECTED))

    assert status == "skipped"
    assert ats.archived == []
    assert asyncio.run(tracker.all()) == {}


@pytest.mark.unit
def test_passing_tier_moves_stage(tmp_path):
    ats = FakeATS()
    effects = DecisionSideEffects(
        RejectionTracker(tmp_path / "rejected.json"),
        ats=ats,
        stage_mappings={"elite": "stage-elite"},
    )

    asyncio.run(effects(job_for(IDENTIFIED_FILENAME), ClassificationDecision("elite", "wow")))
    asyncio.run(effects(job_for(IDENTIFIED_FILENAME), ClassificationDecision("passed", "ok")))

    assert ats.moved == [(APPLICATION_ID, "stage-elite")]
