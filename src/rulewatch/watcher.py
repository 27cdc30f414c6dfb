"""File watcher — watchdog events → debounced FileEvents on the asyncio loop.

watchdog delivers events on its observer thread. Each one is handed to the
event loop with ``call_soon_threadsafe``, coalesced per path for
``debounce_ms``, then pushed onto a queue that a single consumer task
drains, so listeners see one event at a time in arrival order.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .rules.models import EventType, FileEvent, now_ms

logger = logging.getLogger("rulewatch")

DEFAULT_IGNORED = ("node_modules", ".git", "dist", ".next")

EventListener = Callable[[FileEvent], Awaitable[None]]


@dataclass
class _PendingChange:
    timer: asyncio.TimerHandle | None = None
    kinds: set[EventType] = field(default_factory=set)

    def resolved_type(self) -> EventType:
        if EventType.DELETED in self.kinds:
            return EventType.DELETED
        if EventType.CREATED in self.kinds:
            return EventType.CREATED
        return EventType.MODIFIED


class _WatchdogHandler(FileSystemEventHandler):
    """Forwards file events from the observer thread to the watcher's loop."""

    def __init__(self, watcher: FileWatcher, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__()
        self._watcher = watcher
        self._loop = loop

    def _forward(self, kind: EventType, path: str | bytes) -> None:
        self._loop.call_soon_threadsafe(self._watcher.enqueue, kind, os.fsdecode(path))

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if isinstance(event, FileMovedEvent):
            self._forward(EventType.DELETED, event.src_path)
            self._forward(EventType.CREATED, event.dest_path)
        elif isinstance(event, FileCreatedEvent):
            self._forward(EventType.CREATED, event.src_path)
        elif isinstance(event, FileModifiedEvent):
            self._forward(EventType.MODIFIED, event.src_path)
        elif isinstance(event, FileDeletedEvent):
            self._forward(EventType.DELETED, event.src_path)


class FileWatcher:
    """Watch one directory tree and feed FileEvents to async listeners."""

    def __init__(
        self,
        watch_dir: str | Path,
        debounce_ms: int = 250,
        ignored: tuple[str, ...] | list[str] = DEFAULT_IGNORED,
        ignore_dotfiles: bool = True,
        log: logging.Logger | None = None,
    ) -> None:
        self.watch_dir = Path(watch_dir).expanduser().resolve()
        self.debounce_ms = debounce_ms
        self._ignored = set(ignored)
        self._ignore_dotfiles = ignore_dotfiles
        self._log = log or logger
        self._listeners: list[EventListener] = []
        self._pending: dict[str, _PendingChange] = {}
        self._queue: asyncio.Queue[FileEvent] = asyncio.Queue()
        self._consumer: asyncio.Task | None = None
        self._observer = None

    def on_event(self, listener: EventListener) -> None:
        self._listeners.append(listener)
        self._log.debug("Event listener registered (%d total)", len(self._listeners))

    # ── Path handling ────────────────────────────────────────

    def relative_path(self, file_path: str | Path) -> str | None:
        """Forward-slash path relative to the watch dir, or None if outside it."""
        candidate = Path(os.path.abspath(file_path))
        if not candidate.is_relative_to(self.watch_dir):
            candidate = candidate.parent.resolve() / candidate.name
        if not candidate.is_relative_to(self.watch_dir):
            return None
        relative = candidate.relative_to(self.watch_dir)
        if not relative.parts:
            return None
        return relative.as_posix()

    def is_ignored(self, relative_path: str) -> bool:
        for part in relative_path.split("/"):
            if part in self._ignored:
                return True
            if self._ignore_dotfiles and part.startswith("."):
                return True
        return False

    # ── Debounce ─────────────────────────────────────────────

    def enqueue(self, kind: EventType, file_path: str) -> None:
        """Record a raw change; must run on the event loop thread."""
        relative = self.relative_path(file_path)
        if relative is None:
            self._log.warning("Skipped path outside watch directory: %s", file_path)
            return
        if self.is_ignored(relative):
            return

        pending = self._pending.get(relative)
        if pending is None:
            pending = self._pending[relative] = _PendingChange()
        elif pending.timer is not None:
            pending.timer.cancel()
        pending.kinds.add(kind)

        loop = asyncio.get_running_loop()
        pending.timer = loop.call_later(
            self.debounce_ms / 1000, self._emit, relative
        )

    def _emit(self, relative: str) -> None:
        pending = self._pending.pop(relative, None)
        if pending is None:
            return
        event = FileEvent(type=pending.resolved_type(), path=relative, timestamp=now_ms())
        self._log.debug("File event detected: %s %s", event.type.value, event.path)
        self._queue.put_nowait(event)

    # ── Dispatch ─────────────────────────────────────────────

    async def dispatch(self, event: FileEvent) -> None:
        """Run every listener in order; a failing listener does not stop the rest."""
        for listener in self._listeners:
            try:
                await listener(event)
            except Exception:
                self._log.exception("Error in event listener for %s", event.path)

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.dispatch(event)
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been dispatched."""
        await self._queue.join()

    # ── Lifecycle ────────────────────────────────────────────

    async def start(self, observer=None) -> None:
        if not self.watch_dir.is_dir():
            raise FileNotFoundError(f"Watch directory does not exist: {self.watch_dir}")
        loop = asyncio.get_running_loop()
        self._consumer = asyncio.create_task(self._consume())
        self._observer = observer if observer is not None else Observer()
        self._observer.schedule(
            _WatchdogHandler(self, loop), str(self.watch_dir), recursive=True
        )
        self._observer.daemon = True
        self._observer.start()
        self._log.info(
            "File watcher started: %s (debounce %d ms)", self.watch_dir, self.debounce_ms
        )

    async def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            await asyncio.to_thread(self._observer.join, 5)
            self._observer = None
        for pending in self._pending.values():
            if pending.timer is not None:
                pending.timer.cancel()
        self._pending.clear()
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
        self._log.info("File watcher stopped")
