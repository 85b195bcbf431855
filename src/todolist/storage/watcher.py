"""File system watcher for the synced-folder replica."""

import logging
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)

WATCHED_SUFFIXES = {".md", ".yaml"}


class ReplicaWatcher:
    """Watches the replica folder and reports changed replica files."""

    def __init__(self, root: Path):
        """Initialize watcher for a replica folder.

        Args:
            root: Folder holding the replica (tasks/ plus the YAML files)
        """
        self.root = root
        self._observer: BaseObserver | None = None
        self._callback: Callable[[str, str], None] | None = None

    def set_callback(self, callback: Callable[[str, str], None]) -> None:
        """Set callback for file system events.

        Args:
            callback: Function(event_type, file_name) called on events
        """
        self._callback = callback

    def start(self) -> None:
        """Start watching in watchdog's background thread."""
        self.root.mkdir(parents=True, exist_ok=True)
        handler = _ReplicaEventHandler(self._callback)
        self._observer = Observer()
        self._observer.daemon = True
        self._observer.schedule(handler, str(self.root), recursive=True)
        logger.info(f"[ReplicaWatcher] Watching {self.root}")
        self._observer.start()

    def stop(self) -> None:
        """Stop watching and clean up resources."""
        if self._observer:
            logger.info(f"[ReplicaWatcher] Stopping watcher for {self.root}")
            self._observer.stop()
            self._observer.join(timeout=2)
            self._observer = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()


class _ReplicaEventHandler(FileSystemEventHandler):
    """Internal handler for replica file system events."""

    def __init__(self, callback: Callable[[str, str], None] | None):
        self.callback = callback

    def _replica_file(self, file_path: str | bytes) -> str | None:
        """Name of a replica file, or None for temp files and other noise."""
        if isinstance(file_path, bytes):
            file_path = file_path.decode("utf-8")
        path = Path(file_path)
        if path.name.startswith(".") or path.suffix not in WATCHED_SUFFIXES:
            return None
        return path.name

    def _handle_event(self, event_type: str, event: FileSystemEvent) -> None:
        if event.is_directory:
            return

        file_name = self._replica_file(event.src_path)
        if not file_name:
            return

        logger.debug(f"[ReplicaEventHandler] {event_type}: {file_name}")

        if self.callback:
            try:
                self.callback(event_type, file_name)
            except Exception as e:
                logger.error(f"[ReplicaEventHandler] Callback error: {e}", exc_info=True)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle_event("modified", event)

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle_event("created", event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._handle_event("deleted", event)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._handle_event("moved", event)
