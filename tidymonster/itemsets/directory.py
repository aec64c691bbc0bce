"""
Directory watch — leaf item set over one directory.

Reports the files directly inside a directory (non-recursive) whose names
match a glob pattern. Backed by a watchdog observer.

Coalescing policy:
    Raw filesystem events are applied one by one, in order, against the set
    of present files. A delete followed by a recreate of the same path is
    therefore reported as Removed then Added. A file that is created and
    deleted again before its creation event is processed is not reported at
    all, because creation is only accepted if the file still exists.

Items are absolute Path objects built from the watched directory path, so
they compare equal across the snapshot and the event stream.
"""

import fnmatch
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Iterable, Set, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from .base import ObservableItemSet
from .errors import ItemSetStartError, SourceLostError

logger = logging.getLogger(__name__)


# Seconds to wait for the watchdog thread on dispose
OBSERVER_JOIN_TIMEOUT = 5.0


class DirectoryWatch(ObservableItemSet):
    """
    Files in a single directory matching `pattern`.

    Matching is case-insensitive on every platform. Symbolic links count as
    files, since on most desktops a link is a shortcut.
    """

    def __init__(
        self,
        directory,
        pattern: str = "*",
        observer_factory: Callable[[], BaseObserver] = Observer,
    ):
        self.directory = Path(os.path.abspath(directory))
        self.pattern = pattern
        super().__init__(name=f"{self.directory}{os.sep}{pattern}")

        self._observer_factory = observer_factory
        self._watcher: Optional[BaseObserver] = None
        self._present: Set[Path] = set()

    def matches(self, path: Path) -> bool:
        """True if `path` is directly inside the directory and matches the pattern."""
        if path.parent != self.directory:
            return False
        return fnmatch.fnmatchcase(path.name.lower(), self.pattern.lower())

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _on_start(self) -> None:
        if not self.directory.is_dir():
            raise ItemSetStartError(f"Watched directory does not exist: {self.directory}")

        # Watch before snapshotting so nothing created in between is missed.
        # Events wait on the delivery lock until the snapshot is in place.
        watcher = self._observer_factory()
        try:
            watcher.schedule(
                _DirectoryEventHandler(self), str(self.directory), recursive=False
            )
            watcher.start()
        except OSError as e:
            raise ItemSetStartError(
                f"Cannot watch directory {self.directory}: {e}"
            ) from e
        self._watcher = watcher

        present = set(self._scan())
        with self._state_lock:
            self._present = present

        logger.info(
            f"Watching {self.directory} for '{self.pattern}' ({len(present)} present)"
        )

    def _scan(self) -> Iterable[Path]:
        try:
            for entry in self.directory.iterdir():
                if self.matches(entry) and _is_file_like(entry):
                    yield entry
        except OSError as e:
            raise ItemSetStartError(f"Cannot list directory {self.directory}: {e}") from e

    def _snapshot(self) -> Iterable[Path]:
        with self._state_lock:
            return set(self._present)

    def _on_dispose(self) -> None:
        watcher, self._watcher = self._watcher, None
        if watcher is None:
            return

        watcher.stop()
        # dispose() may be called from a subscriber running on the watcher thread
        if watcher is not threading.current_thread():
            watcher.join(OBSERVER_JOIN_TIMEOUT)
            if watcher.is_alive():
                logger.warning(f"Watcher for {self.directory} did not stop in time")

    # -------------------------------------------------------------------------
    # Event handling (watcher thread)
    # -------------------------------------------------------------------------

    def _appeared(self, path: Path) -> None:
        with self._delivery_lock:
            if not self.is_running or not self.matches(path):
                return
            if not _is_file_like(path):
                return
            with self._state_lock:
                if path in self._present:
                    return
                self._present.add(path)
            self._emit_added(path)

    def _vanished(self, path: Path) -> None:
        with self._delivery_lock:
            if not self.is_running:
                return
            with self._state_lock:
                if path not in self._present:
                    return
                self._present.discard(path)
            self._emit_removed(path)

    def _lost(self, reason: str) -> None:
        with self._delivery_lock:
            if not self.is_running:
                return
            logger.error(f"Lost watched directory {self.directory}: {reason}")
            self._emit_error(SourceLostError(f"Watched directory {reason}: {self.directory}"))


class _DirectoryEventHandler(FileSystemEventHandler):
    """Translates watchdog events into DirectoryWatch updates."""

    def __init__(self, watch: DirectoryWatch):
        self._watch = watch

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._guarded(self._watch._appeared, _event_path(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        # Converges on files whose creation event was missed
        if not event.is_directory:
            self._guarded(self._watch._appeared, _event_path(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        path = _event_path(event.src_path)
        if path == self._watch.directory:
            self._guarded(self._watch._lost, "was deleted")
        elif not event.is_directory:
            self._guarded(self._watch._vanished, path)

    def on_moved(self, event: FileSystemEvent) -> None:
        src = _event_path(event.src_path)
        if src == self._watch.directory:
            self._guarded(self._watch._lost, "was moved")
            return
        if event.is_directory:
            return
        self._guarded(self._watch._vanished, src)
        self._guarded(self._watch._appeared, _event_path(event.dest_path))

    def _guarded(self, handler: Callable, *args) -> None:
        # An exception here would silently kill the watchdog dispatch thread
        try:
            handler(*args)
        except Exception:
            logger.exception(f"Failed to handle filesystem event for {self._watch.directory}")


def _event_path(raw) -> Path:
    return Path(os.fsdecode(raw))


def _is_file_like(path: Path) -> bool:
    try:
        return path.is_symlink() or path.is_file()
    except OSError:
        return False
