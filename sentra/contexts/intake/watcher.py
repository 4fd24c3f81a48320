"""
Directory watcher for incoming resume PDFs.

Polls a directory and reports each new PDF once its size and mtime have been
unchanged for a quiescence window, so half-copied files are never read.
Files present at startup are reported too, flagged ``initial=True``; the
service records them in the manifest without announcing them as new.

Ignored: hidden files, editor backups and partial-download suffixes.
"""

import asyncio
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Set, Tuple

from sentra.contexts.intake.logger import (
    _log_error,
    _log_debug,
    _log_info,
    log_file_discovered,
    log_watcher_ready,
)

DEFAULT_STABILITY_SECONDS = 0.75
DEFAULT_POLL_SECONDS = 0.25

PDF_SUFFIX = ".pdf"
IGNORED_SUFFIXES = ("~", ".tmp", ".crdownload", ".part", ".partial", ".download")

# (size, mtime_ns)
FileSignature = Tuple[int, int]


@dataclass(frozen=True)
class DiscoveryEvent:
    """A stable PDF found in the watched directory."""

    abs_path: Path
    rel_path: str
    initial: bool

    @property
    def filename(self) -> str:
        return self.abs_path.name


DiscoveredHandler = Callable[[DiscoveryEvent], Awaitable[None]]
RemovedHandler = Callable[[str], Awaitable[None]]
ReadyHandler = Callable[[], Awaitable[None]]


def is_ignored(filename: str) -> bool:
    return filename.startswith(".") or filename.lower().endswith(IGNORED_SUFFIXES)


def is_watched_file(filename: str) -> bool:
    """True for non-ignored .pdf files (case-insensitive)."""
    return not is_ignored(filename) and filename.lower().endswith(PDF_SUFFIX)


def to_rel_path(path: Path, root: Optional[Path] = None) -> str:
    """POSIX path relative to root (default cwd), or the absolute path if outside it."""
    root = root or Path.cwd()
    try:
        return Path(path).resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return Path(path).resolve().as_posix()


def list_pdfs(directory: Path) -> list[str]:
    """Sorted names of watched PDF files directly inside directory."""
    if not directory.exists():
        return []
    return sorted(
        entry.name for entry in os.scandir(directory) if entry.is_file() and is_watched_file(entry.name)
    )


@dataclass
class _Candidate:
    signature: FileSignature
    stable_since: float
    initial: bool


class DirectoryWatcher:
    """
    Polling watcher with write-stability debouncing.

    Args:
        watch_dir: Directory to watch (created if missing)
        on_discovered: Async handler called once per stable new PDF
        on_removed: Optional async handler called with the filename of a deleted PDF
        on_ready: Optional async handler called once every startup file was reported
        stability_seconds: Quiescence window before a file counts as written
        poll_seconds: Directory scan interval
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        watch_dir: Path,
        on_discovered: DiscoveredHandler,
        on_removed: Optional[RemovedHandler] = None,
        on_ready: Optional[ReadyHandler] = None,
        stability_seconds: float = DEFAULT_STABILITY_SECONDS,
        poll_seconds: float = DEFAULT_POLL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.watch_dir = Path(watch_dir)
        self.on_discovered = on_discovered
        self.on_removed = on_removed
        self.on_ready = on_ready
        self.stability_seconds = stability_seconds
        self.poll_seconds = poll_seconds
        self.clock = clock

        self._known: Set[str] = set()
        self._candidates: Dict[str, _Candidate] = {}
        self._initial_remaining: Set[str] = set()
        self._started = False
        self._ready = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    # --- Lifecycle ---

    async def start(self) -> None:
        """Take the startup snapshot and begin polling in the background."""
        if self._started:
            return
        self.watch_dir.mkdir(parents=True, exist_ok=True)
        await self._prime()
        self._task = asyncio.create_task(self._run(), name=f"watch:{self.watch_dir}")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    async def wait_ready(self) -> None:
        await self._ready.wait()

    def forget(self, filename: str) -> None:
        """Drop a file from the known set so the next scan reports it again."""
        self._known.discard(filename)
        self._candidates.pop(filename, None)

    # --- Polling ---

    def _scan(self) -> Dict[str, FileSignature]:
        signatures = {}
        try:
            entries = list(os.scandir(self.watch_dir))
        except FileNotFoundError:
            return signatures
        for entry in entries:
            if not is_watched_file(entry.name):
                continue
            try:
                if not entry.is_file():
                    continue
                stat = entry.stat()
            except FileNotFoundError:
                continue
            signatures[entry.name] = (stat.st_size, stat.st_mtime_ns)
        return signatures

    async def _prime(self) -> None:
        snapshot = await asyncio.to_thread(self._scan)
        now = self.clock()
        for name, signature in snapshot.items():
            self._candidates[name] = _Candidate(signature, now, initial=True)
        self._initial_remaining = set(snapshot)
        self._started = True
        _log_debug(f"Startup snapshot: {len(snapshot)} PDFs in {self.watch_dir}")
        await self._check_ready(len(snapshot))

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                _log_error(f"Watcher error: {type(e).__name__}: {e}")
            await asyncio.sleep(self.poll_seconds)

    async def poll_once(self) -> list[DiscoveryEvent]:
        """
        Scan once and report files that became stable.

        Returns:
            Discovery events emitted during this poll
        """
        if not self._started:
            await self._prime()

        snapshot = await asyncio.to_thread(self._scan)
        now = self.clock()
        emitted = []

        for name in sorted(self._known - set(snapshot)):
            self._known.discard(name)
            _log_info(f"File removed: {name}")
            if self.on_removed is not None:
                await self._call_handler(self.on_removed, name)

        for name in list(self._candidates):
            if name not in snapshot:
                # Vanished before it settled
                self._candidates.pop(name)
                self._initial_remaining.discard(name)

        for name, signature in sorted(snapshot.items()):
            if name in self._known:
                continue
            candidate = self._candidates.get(name)
            if candidate is None or candidate.signature != signature:
                initial = candidate.initial if candidate else False
                self._candidates[name] = _Candidate(signature, now, initial)
                continue
            if now - candidate.stable_since < self.stability_seconds:
                continue

            self._candidates.pop(name)
            self._known.add(name)
            self._initial_remaining.discard(name)

            abs_path = (self.watch_dir / name).resolve()
            event = DiscoveryEvent(abs_path, to_rel_path(abs_path), initial=candidate.initial)
            log_file_discovered(event.rel_path, event.initial)
            emitted.append(event)
            await self._call_handler(self.on_discovered, event)

        await self._check_ready(len(self._known))
        return emitted

    async def _check_ready(self, count: int) -> None:
        if self._ready.is_set() or self._initial_remaining:
            return
        self._ready.set()
        log_watcher_ready(self.watch_dir, count)
        if self.on_ready is not None:
            await self._call_handler(self.on_ready)

    async def _call_handler(self, handler: Callable[..., Awaitable[None]], *args) -> None:
        try:
            await handler(*args)
        except Exception as e:
            _log_error(f"Handler {getattr(handler, '__name__', handler)} failed: {e}")
