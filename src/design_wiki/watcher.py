"""Filesystem watcher that keeps the index in sync with WIKI_ROOT.

watchdog's observer thread translates OS notifications into FileEvents and
puts them on a queue. A daemon thread drains the queue, debounces events per
path, updates the index and broadcasts a file-changed message for every
event it accepts.

Debouncing keeps the time of the last accepted event per path and drops
anything that arrives for that path within the window. A burst of writes is
handled once, on its first event; if writes keep arriving faster than the
window the final content is not guaranteed to be re-indexed.
"""

import enum
import logging
import os
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from design_wiki.broadcast import file_changed_message
from design_wiki.indexer import Indexer
from design_wiki.indexer.walker import is_hidden, to_relative_path, walk_wiki_root

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 100


class EventFlag(enum.Flag):
    """Semantic flags carried by a filesystem event."""

    NONE = 0
    CREATE = enum.auto()
    WRITE = enum.auto()
    REMOVE = enum.auto()
    RENAME = enum.auto()
    CHMOD = enum.auto()


@dataclass(frozen=True)
class FileEvent:
    """A filesystem event for one path."""

    path: str  # Absolute path as reported by the observer
    flags: EventFlag


# Checked in order; the first flag present decides the action
DISPATCH_TABLE = (
    (EventFlag.CREATE, "create", "update"),
    (EventFlag.WRITE, "update", "update"),
    (EventFlag.REMOVE, "delete", "remove"),
    (EventFlag.RENAME, "delete", "remove"),
)


def classify(flags: EventFlag) -> tuple[str, str] | None:
    """
    Map event flags to (action, index operation).

    The operation is "update" (Indexer.update_file) or "remove"
    (Indexer.remove_file). Returns None for events that change nothing the
    index cares about, such as a chmod.
    """
    for flag, action, operation in DISPATCH_TABLE:
        if flag in flags:
            return action, operation
    return None


class Debouncer:
    """Drops events for a path that arrive within `delay` of the last one."""

    def __init__(self, delay: float, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            delay: Debounce window in seconds.
            clock: Monotonic time source, injectable for tests.
        """
        if delay < 0:
            raise ValueError(f"Debounce delay must be >= 0, got {delay}")
        self.delay = delay
        self._clock = clock
        self._last_accepted: dict[str, float] = {}

    def accept(self, key: str) -> bool:
        now = self._clock()
        last = self._last_accepted.get(key)
        if last is not None and now - last < self.delay:
            return False
        self._last_accepted[key] = now
        return True


def _content_stamp(path: str) -> tuple[int, int] | None:
    """(mtime_ns, size) of path, or None if it cannot be stat'ed."""
    try:
        stat = os.stat(path)
    except OSError:
        return None
    return stat.st_mtime_ns, stat.st_size


class _QueueingHandler(FileSystemEventHandler):
    """Translates watchdog callbacks into FileEvents on a queue.

    watchdog reports permission and other metadata changes as modify events.
    The handler keeps the last seen (mtime, size) of every document and
    reports a modify that changed neither as CHMOD.
    """

    def __init__(
        self,
        events: "queue.Queue[FileEvent | None]",
        wiki_root: Path,
        extension: str,
    ):
        self._events = events
        self._stamps: dict[str, tuple[int, int]] = {}
        for document in walk_wiki_root(wiki_root, extension):
            stamp = _content_stamp(str(document.path))
            if stamp is not None:
                self._stamps[str(document.path)] = stamp

    def _put(self, path: str, flags: EventFlag) -> None:
        self._events.put(FileEvent(path=path, flags=flags))

    def _record(self, path: str) -> bool:
        """Store the current stamp of path; True if it differs from the last one."""
        stamp = _content_stamp(path)
        if stamp is None:
            self._stamps.pop(path, None)
            return True
        changed = self._stamps.get(path) != stamp
        self._stamps[path] = stamp
        return changed

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            path = os.fsdecode(event.src_path)
            self._record(path)
            self._put(path, EventFlag.CREATE)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            path = os.fsdecode(event.src_path)
            self._put(path, EventFlag.WRITE if self._record(path) else EventFlag.CHMOD)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            path = os.fsdecode(event.src_path)
            self._stamps.pop(path, None)
            self._put(path, EventFlag.REMOVE)

    def on_moved(self, event: FileSystemEvent) -> None:
        # The old name goes away and the new one appears
        if not event.is_directory:
            src_path = os.fsdecode(event.src_path)
            dest_path = os.fsdecode(event.dest_path)
            self._stamps.pop(src_path, None)
            self._record(dest_path)
            self._put(src_path, EventFlag.RENAME)
            self._put(dest_path, EventFlag.CREATE)


class WikiWatcher:
    """Watches WIKI_ROOT and applies document changes to the index.

    The loop thread is a daemon, so it terminates with the main process.
    Closing the event channel (stop() or close()) ends the loop cleanly.
    """

    def __init__(
        self,
        wiki_root: Path,
        indexer: Indexer,
        broadcaster: Callable[[str], object],
        extension: str = ".md",
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the watcher.

        Args:
            wiki_root: Directory to watch.
            indexer: Index to update.
            broadcaster: Receives each serialized file-changed message.
            extension: Only paths with this suffix are handled.
            debounce_ms: Debounce window per path, in milliseconds.
            clock: Time source for the debouncer.
        """
        self.wiki_root = wiki_root
        self._indexer = indexer
        self._broadcaster = broadcaster
        self._extension = extension
        self._debouncer = Debouncer(debounce_ms / 1000, clock=clock)
        self._events: queue.Queue[FileEvent | None] = queue.Queue()
        self._observer: BaseObserver | None = None
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start observing the filesystem and the loop thread.

        Returns False if the watch could not be set up; the index keeps
        serving its last state in that case.
        """
        if self.is_running:
            logger.warning("Watcher already running")
            return True

        if not self.wiki_root.is_dir():
            logger.error("Cannot watch %s: not a directory", self.wiki_root)
            return False

        # Fresh channel; a previous stop() left a close marker in the old one
        self._events = queue.Queue()

        observer = Observer()
        try:
            # recursive=True also covers directories created later
            observer.schedule(
                _QueueingHandler(self._events, self.wiki_root, self._extension),
                str(self.wiki_root),
                recursive=True,
            )
            observer.start()
        except OSError:
            logger.exception("Failed to start watching %s", self.wiki_root)
            return False
        self._observer = observer

        self._thread = threading.Thread(
            target=self.run,
            name="wiki-watcher",
            daemon=True,
        )
        self._thread.start()
        logger.info("Watching %s", self.wiki_root)
        return True

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the observer and wait for the loop to drain."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=timeout)
            self._observer = None

        self.close()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Watcher thread did not stop cleanly")
            else:
                logger.info("Watcher stopped")
            self._thread = None

    def submit(self, event: FileEvent) -> None:
        """Queue an event for the loop."""
        self._events.put(event)

    def close(self) -> None:
        """Close the event channel; the loop exits once it reaches this."""
        self._events.put(None)

    def run(self) -> None:
        """Event loop. Returns when the channel is closed."""
        logger.debug("Watcher loop started")
        while True:
            event = self._events.get()
            if event is None:
                break
            try:
                self.handle_event(event)
            except Exception:
                logger.exception("Error handling event for %s", event.path)
        logger.debug("Watcher loop stopped")

    def _relative(self, path: str) -> str | None:
        relative = to_relative_path(self.wiki_root, path)
        if relative is None:
            # Observers on some platforms report fully resolved paths
            relative = to_relative_path(self.wiki_root.resolve(), path)
        return relative

    def handle_event(self, event: FileEvent) -> str | None:
        """
        Apply one event to the index and broadcast the change.

        Returns the action taken ("create", "update" or "delete"), or None if
        the event was filtered, debounced or carried no relevant flag.
        """
        if not event.path.endswith(self._extension):
            return None

        relative_path = self._relative(event.path)
        if relative_path is None or is_hidden(relative_path):
            logger.debug("Ignoring event outside the document tree: %s", event.path)
            return None

        if not self._debouncer.accept(relative_path):
            logger.debug("Debounced event for %s", relative_path)
            return None

        dispatch = classify(event.flags)
        if dispatch is None:
            return None
        action, operation = dispatch

        if operation == "update":
            self._indexer.update_file(relative_path)
        else:
            self._indexer.remove_file(relative_path)

        logger.info("%s: %s", action, relative_path)
        self._broadcaster(file_changed_message(relative_path, action))
        return action
