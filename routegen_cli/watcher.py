"""File-watch loop: watchdog events -> cache invalidation -> debounced regeneration."""

from __future__ import annotations

import logging
import os
import queue
import threading
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Set, Tuple

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from .cache import CacheManager, get_cache_manager
from .config import DEFAULT_DEBOUNCE_SECONDS, ROUTE_FILE_NAME, is_excluded
from .errors import RoutegenError, WatchError
from .models import ChangeEvent, ChangeKind

logger = logging.getLogger(__name__)

_RELEVANT_EVENTS = {EVENT_TYPE_CREATED, EVENT_TYPE_DELETED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED}
_POLL_SECONDS = 0.2


class _QueueingHandler(FileSystemEventHandler):
    """Hands raw watchdog events to the loop thread."""

    def __init__(self, events: "queue.Queue[FileSystemEvent]") -> None:
        super().__init__()
        self._events = events

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._events.put(event)


class FileWatchLoop:
    """Single consumer of file-system events for one project tree.

    Every relevant event resets one debounce timer; ``on_change`` runs once
    the tree has been quiet for ``debounce_seconds``. Route files and files
    the cache already tracks are also fed to the cache manager as they
    arrive, so the pass that eventually runs sees fresh invalidations.
    """

    def __init__(
        self,
        root: Path,
        on_change: Callable[[], None],
        manager: Optional[CacheManager] = None,
        exclude: Sequence[str] = (),
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        route_file_name: str = ROUTE_FILE_NAME,
        observer_factory: Callable[[], BaseObserver] = Observer,
    ) -> None:
        self.root = Path(root).resolve()
        self.on_change = on_change
        self.manager = manager if manager is not None else get_cache_manager()
        self.exclude = list(exclude)
        self.debounce_seconds = debounce_seconds
        self.route_file_name = route_file_name
        self._observer_factory = observer_factory

        self._events: "queue.Queue[FileSystemEvent]" = queue.Queue()
        self._handler = _QueueingHandler(self._events)
        self._observer: Optional[BaseObserver] = None
        self._watched: Set[str] = set()
        self._stop = threading.Event()
        self._timer: Optional[threading.Timer] = None
        self._timer_lock = threading.Lock()
        self._callback_lock = threading.Lock()
        self.passes = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._observer is not None:
            return
        if not self.root.is_dir():
            raise WatchError(f"cannot watch {self.root}: not a directory")

        self._stop.clear()
        try:
            self._observer = self._observer_factory()
            self.add_watch(self.root)
            self._observer.start()
        except OSError as exc:
            self._observer = None
            raise WatchError(f"failed to start watcher on {self.root}: {exc}") from exc

        logger.info("Watching %s (%d directories)", self.root, len(self._watched))

    def run(self) -> None:
        """Consume events until :meth:`stop` is called.

        Raises:
            WatchError: the observer thread died while the loop was running.
        """
        self.start()
        while not self._stop.is_set():
            try:
                event = self._events.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                if not self._stop.is_set() and not self._observer_alive():
                    raise WatchError("file system observer stopped unexpectedly")
                continue
            self.handle_event(event)

    def stop(self) -> None:
        self._stop.set()
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

        observer = self._observer
        self._observer = None
        if observer is not None:
            observer.stop()
            observer.join()
        logger.debug("Watcher stopped")

    # ------------------------------------------------------------------
    # Watches
    # ------------------------------------------------------------------

    def add_watch(self, directory: Path) -> int:
        """Schedule one non-recursive watch per directory under *directory*."""
        if self._observer is None:
            return 0

        added = 0
        for dirpath, dirnames, _ in os.walk(directory):
            dirnames[:] = sorted(
                name for name in dirnames
                if not self.should_exclude(os.path.join(dirpath, name))
            )
            if dirpath in self._watched:
                continue
            self._observer.schedule(self._handler, dirpath, recursive=False)
            self._watched.add(dirpath)
            added += 1

        if added:
            logger.debug("Added %d watch(es) under %s", added, directory)
        return added

    @property
    def watched(self) -> List[str]:
        return sorted(self._watched)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def should_exclude(self, path: str) -> bool:
        rel = os.path.relpath(path, self.root)
        if rel.startswith(".."):
            return True
        return is_excluded(rel.replace(os.sep, "/"), self.exclude)

    def handle_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in _RELEVANT_EVENTS:
            return
        # Directory modifications only mirror changes to their entries
        if event.is_directory and event.event_type == EVENT_TYPE_MODIFIED:
            return

        relevant = False
        for path, kind in self._classify(event):
            if self.should_exclude(path):
                continue
            relevant = True

            if event.is_directory:
                if kind is ChangeKind.CREATE:
                    self.add_watch(Path(path))
                continue

            if self._tracked(path):
                self._dispatch(ChangeEvent(path=path, kind=kind))

        if relevant:
            self._schedule()

    def _classify(self, event: FileSystemEvent) -> List[Tuple[str, ChangeKind]]:
        src = os.fsdecode(event.src_path)
        if event.event_type == EVENT_TYPE_MOVED:
            dest = os.fsdecode(event.dest_path)
            return [(src, ChangeKind.DELETE), (dest, ChangeKind.CREATE)]
        if event.event_type == EVENT_TYPE_CREATED:
            return [(src, ChangeKind.CREATE)]
        if event.event_type == EVENT_TYPE_DELETED:
            return [(src, ChangeKind.DELETE)]
        return [(src, ChangeKind.WRITE)]

    def _tracked(self, path: str) -> bool:
        return os.path.basename(path) == self.route_file_name or self.manager.tracks(path)

    def _dispatch(self, change: ChangeEvent) -> None:
        try:
            plan = self.manager.handle_file_change(change)
        except RoutegenError as exc:
            logger.error("Failed to process %s of %s: %s", change.kind.value, change.path, exc)
            return
        if plan.affected_files:
            logger.debug(
                "%s %s affects %d file(s)", change.kind.value, change.path, len(plan.affected_files)
            )

    # ------------------------------------------------------------------
    # Debounce
    # ------------------------------------------------------------------

    @property
    def pending(self) -> bool:
        with self._timer_lock:
            return self._timer is not None

    def _schedule(self) -> None:
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_seconds, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> bool:
        """Run a pending regeneration now instead of waiting for the timer."""
        with self._timer_lock:
            timer, self._timer = self._timer, None
        if timer is None:
            return False
        timer.cancel()
        self._run_callback()
        return True

    def _fire(self) -> None:
        with self._timer_lock:
            if self._timer is None or self._timer is not threading.current_thread():
                return
            self._timer = None
        self._run_callback()

    def _run_callback(self) -> None:
        with self._callback_lock:
            try:
                self.on_change()
            except Exception:
                logger.exception("Regeneration after file change failed")
            else:
                self.passes += 1

    def _observer_alive(self) -> bool:
        observer = self._observer
        return observer is not None and observer.is_alive()
