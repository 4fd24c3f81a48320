"""Unit tests for the polling directory watcher (driven by a fake clock)."""

import asyncio

import pytest

from sentra.contexts.intake.watcher import DirectoryWatcher, is_watched_file, list_pdfs


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def build_watcher(directory, **handlers):
    clock = FakeClock()
    discovered, removed, ready = [], [], []

    async def on_discovered(event):
        discovered.append(event)

    async def on_removed(filename):
        removed.append(filename)

    async def on_ready():
        ready.append(True)

    watcher = DirectoryWatcher(
        directory,
        on_discovered=handlers.get("on_discovered", on_discovered),
        on_removed=on_removed,
        on_ready=on_ready,
        stability_seconds=0.75,
        clock=clock,
    )
    return watcher, clock, discovered, removed, ready


@pytest.mark.unit
@pytest.mark.parametrize(
    "filename, watched",
    [
        ("resume.pdf", True),
        ("RESUME.PDF", True),
        (".hidden.pdf", False),
        ("resume.pdf~", False),
        ("resume.pdf.crdownload", False),
        ("resume.pdf.part", False),
        ("notes.txt", False),
    ],
)
def test_is_watched_file(filename, watched):
    assert is_watched_file(filename) is watched


@pytest.mark.unit
def test_list_pdfs(tmp_path):
    for name in ("b.pdf", "a.PDF", ".x.pdf", "c.tmp"):
        (tmp_path / name).write_bytes(b"x")
    assert list_pdfs(tmp_path) == ["a.PDF", "b.pdf"]
    assert list_pdfs(tmp_path / "missing") == []


@pytest.mark.unit
def test_file_reported_only_after_stability_window(tmp_path):
    watcher, clock, discovered, _, _ = build_watcher(tmp_path)
    path = tmp_path / "new.pdf"

    async def scenario():
        await watcher.poll_once()
        path.write_bytes(b"%PDF-1.4 partial")
        await watcher.poll_once()
        clock.advance(0.5)
        assert await watcher.poll_once() == []

        # Still being written: the window restarts
        path.write_bytes(b"%PDF-1.4 partial, now longer")
        await watcher.poll_once()
        clock.advance(0.5)
        assert await watcher.poll_once() == []

        clock.advance(0.5)
        events = await watcher.poll_once()
        await watcher.poll_once()
        return events

    events = asyncio.run(scenario())

    assert [e.filename for e in events] == ["new.pdf"]
    assert events[0].initial is False
    assert len(discovered) == 1


@pytest.mark.unit
def test_startup_files_are_flagged_initial_and_ready_fires(tmp_path):
    (tmp_path / "old.pdf").write_bytes(b"%PDF")
    watcher, clock, discovered, _, ready = build_watcher(tmp_path)

    async def scenario():
        await watcher.poll_once()
        assert not watcher.is_ready
        clock.advance(1.0)
        await watcher.poll_once()

    asyncio.run(scenario())

    assert [(e.filename, e.initial) for e in discovered] == [("old.pdf", True)]
    assert watcher.is_ready
    assert ready == [True]


@pytest.mark.unit
def test_empty_directory_is_ready_immediately(tmp_path):
    watcher, _, _, _, ready = build_watcher(tmp_path)
    asyncio.run(watcher.poll_once())
    assert watcher.is_ready
    assert ready == [True]


@pytest.mark.unit
def test_vanished_file_is_dropped(tmp_path):
    watcher, clock, discovered, removed, _ = build_watcher(tmp_path)
    path = tmp_path / "temp.pdf"

    async def scenario():
        await watcher.poll_once()
        path.write_bytes(b"%PDF")
        await watcher.poll_once()
        path.unlink()
        clock.advance(1.0)
        await watcher.poll_once()

    asyncio.run(scenario())
    assert discovered == []
    assert removed == []


@pytest.mark.unit
def test_deleted_and_recreated_file_is_rediscovered(tmp_path):
    watcher, clock, discovered, removed, _ = build_watcher(tmp_path)
    path = tmp_path / "a.pdf"

    async def settle():
        await watcher.poll_once()
        clock.advance(1.0)
        await watcher.poll_once()

    async def scenario():
        await watcher.poll_once()
        path.write_bytes(b"%PDF one")
        await settle()
        path.unlink()
        await watcher.poll_once()
        path.write_bytes(b"%PDF two")
        await settle()

    asyncio.run(scenario())
    assert [e.filename for e in discovered] == ["a.pdf", "a.pdf"]
    assert removed == ["a.pdf"]


@pytest.mark.unit
def test_forget_reemits_discovery(tmp_path):
    (tmp_path / "a.pdf").write_bytes(b"%PDF")
    watcher, clock, discovered, _, _ = build_watcher(tmp_path)

    async def scenario():
        await watcher.poll_once()
        clock.advance(1.0)
        await watcher.poll_once()
        watcher.forget("a.pdf")
        await watcher.poll_once()
        clock.advance(1.0)
        await watcher.poll_once()

    asyncio.run(scenario())
    assert [e.initial for e in discovered] == [True, False]


@pytest.mark.unit
def test_handler_failure_does_not_stop_watcher(tmp_path):
    for name in ("a.pdf", "b.pdf"):
        (tmp_path / name).write_bytes(b"%PDF")
    seen = []

    async def flaky(event):
        seen.append(event.filename)
        if event.filename == "a.pdf":
            raise RuntimeError("manifest unavailable")

    watcher, clock, _, _, _ = build_watcher(tmp_path, on_discovered=flaky)

    async def scenario():
        await watcher.poll_once()
        clock.advance(1.0)
        await watcher.poll_once()

    asyncio.run(scenario())
    assert seen == ["a.pdf", "b.pdf"]
    assert watcher.is_ready


@pytest.mark.unit
def test_start_and_stop_background_task(tmp_path):
    (tmp_path / "a.pdf").write_bytes(b"%PDF")
    found = []

    async def on_discovered(event):
        found.append(event.filename)

    watcher = DirectoryWatcher(
        tmp_path / "watched", on_discovered, stability_seconds=0.0, poll_seconds=0.01
    )

    async def scenario():
        await watcher.start()
        (tmp_path / "watched" / "b.pdf").write_bytes(b"%PDF")
        await asyncio.sleep(0.1)
        await watcher.stop()

    asyncio.run(scenario())
    assert found == ["b.pdf"]
    assert watcher.is_ready
