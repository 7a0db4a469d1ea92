"""
File Watch Manager

Keeps one watch per absolute file path and reports changes to a single
callback. watchdog observes directories, so each registration schedules a
per-file handler on the file's parent directory; the directory watch is
released once its last file registration goes away.

When a watched file is deleted or moved away, its registration is retired
before the callback runs. The rebuild that follows registers the path
again if it still matters, which picks up editors that save by replacing
the file.
"""

import os
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from webbake.logging import get_logger

log = get_logger('watch')

# 'opened' / 'closed' are ignored: the build itself reads every watched file
TRIGGER_EVENTS = (EVENT_TYPE_MODIFIED, EVENT_TYPE_CREATED, EVENT_TYPE_DELETED, EVENT_TYPE_MOVED)
RETIRE_EVENTS = (EVENT_TYPE_DELETED, EVENT_TYPE_MOVED)

ChangeCallback = Callable[[str, str], None]


@dataclass
class WatchRegistration:
    """One active watch on an absolute file path."""
    absolute_path: str
    watch: Optional[ObservedWatch]
    handler: FileSystemEventHandler


class _FileHandler(FileSystemEventHandler):
    """Forwards events that concern exactly one file."""

    def __init__(self, manager: 'WatchManager', path: str):
        self.manager = manager
        self.path = path

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in TRIGGER_EVENTS:
            return
        src = os.fsdecode(event.src_path)
        dest = os.fsdecode(getattr(event, 'dest_path', '') or '')
        if src == self.path:
            # Deleted or renamed away: the file left this location
            gone = event.event_type in RETIRE_EVENTS
            self.manager.dispatch(self.path, event.event_type, retire=gone)
        elif dest == self.path:
            self.manager.dispatch(self.path, event.event_type)


class WatchManager:
    """
    Deduplicated set of file watches.

    Args:
        on_change: Called as on_change(path, event_type) from the observer
            thread after any relevant event
        enabled: When False the manager is inert: watch() does nothing and
            no observer thread is ever started
        observer: watchdog observer to use (default: a new Observer,
            started on the first registration)
    """

    def __init__(
        self,
        on_change: ChangeCallback,
        enabled: bool = True,
        observer: Optional[Observer] = None,
    ):
        self.on_change = on_change
        self.enabled = enabled
        self._observer = observer
        self._started = False
        self._registrations: Dict[str, WatchRegistration] = {}
        self._lock = threading.Lock()

    def _ensure_observer(self):
        if self._observer is None:
            self._observer = Observer()
        if not self._started:
            self._observer.start()
            self._started = True
        return self._observer

    def watch(self, path: str) -> bool:
        """
        Register a watch on a file.

        Registering an already-watched path is a no-op.

        Returns:
            True if a new registration was created
        """
        if not self.enabled:
            return False

        path = os.path.abspath(path)
        directory = os.path.dirname(path)
        handler = _FileHandler(self, path)
        with self._lock:
            if path in self._registrations:
                return False
            if not os.path.isdir(directory):
                log.warning("not watching %s: directory does not exist", path)
                return False
            observer = self._ensure_observer()
            # Reserved until schedule() returns
            self._registrations[path] = WatchRegistration(path, None, handler)

        # Never call into the observer while holding self._lock: its thread
        # holds the observer lock while dispatching events into retire()
        watch = observer.schedule(handler, directory, recursive=False)

        with self._lock:
            registration = self._registrations.get(path)
            if registration is not None and registration.handler is handler:
                registration.watch = watch
                retired = False
            else:
                retired = True
                still_used = self._directory_in_use(directory)

        if retired:
            self._release(watch, handler, still_used)
            return False
        log.debug("[watch] filename=%s", path)
        return True

    def retire(self, path: str) -> bool:
        """
        Release the watch for a path.

        Returns:
            True if a registration was removed
        """
        with self._lock:
            registration = self._registrations.pop(path, None)
            if registration is None:
                return False
            still_used = self._directory_in_use(os.path.dirname(path))

        # Still being scheduled: watch() releases it once schedule() returns
        if registration.watch is not None:
            self._release(registration.watch, registration.handler, still_used)
        log.debug("[retire] filename=%s", path)
        return True

    def _directory_in_use(self, directory: str) -> bool:
        """Caller holds self._lock."""
        return any(os.path.dirname(p) == directory for p in self._registrations)

    def _release(self, watch: ObservedWatch, handler: FileSystemEventHandler, still_used: bool) -> None:
        try:
            if still_used:
                self._observer.remove_handler_for_watch(handler, watch)
            else:
                self._observer.unschedule(watch)
        except (KeyError, ValueError):
            # A concurrent retire already unscheduled the directory watch
            log.debug("watch on %s already released", watch.path)

    def dispatch(self, path: str, event_type: str, retire: bool = False) -> None:
        """Handle one event for a watched path."""
        log.debug("[%s] filename=%s", event_type, path)
        if retire:
            self.retire(path)
        try:
            self.on_change(path, event_type)
        except Exception:
            log.exception("change handler failed for %s", path)

    def stop(self) -> None:
        """Stop the observer thread and forget all registrations."""
        with self._lock:
            self._registrations.clear()
            running = self._observer is not None and self._started
            self._started = False
        if running:
            self._observer.stop()
            self._observer.join(timeout=2.0)

    def __contains__(self, path: str) -> bool:
        return os.path.abspath(path) in self._registrations

    def __len__(self) -> int:
        return len(self._registrations)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._registrations))
