"""
Filesystem watching for attached volumes.

One watchdog Observer per device watches its mount path recursively. New
media files are handed to the monitor so it can start tracking them, new
directories are reported as candidate series folders, and renames are
forwarded so temp-file-then-rename copy tools are followed.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from . import constants

logger = logging.getLogger(__name__)

FileCallback = Callable[[str, str], None]
MoveCallback = Callable[[str, str, str], None]


class CopyEventHandler(FileSystemEventHandler):
    """Filters watchdog events for one device and forwards the relevant ones."""

    def __init__(
        self,
        device_id: str,
        root: str,
        on_file: FileCallback,
        on_folder: Optional[FileCallback] = None,
        on_moved: Optional[MoveCallback] = None,
        tracked_extensions: Iterable[str] = constants.VIDEO_EXTENSIONS,
        max_depth: int = 3,
    ):
        super().__init__()
        self.device_id = device_id
        self.root = os.path.abspath(root)
        self.on_file = on_file
        self.on_folder = on_folder
        self.on_moved_cb = on_moved
        self.tracked_extensions = {ext.lower() for ext in tracked_extensions}
        self.max_depth = max_depth
        self._closed = False

    def close(self) -> None:
        self._closed = True

    def depth_of(self, path: str) -> Optional[int]:
        """Directory levels between the root and path; None when outside the root."""
        rel = os.path.relpath(os.path.abspath(path), self.root)
        if rel == os.curdir or rel.startswith(os.pardir):
            return None
        return len(Path(rel).parts) - 1

    def within_depth(self, path: str) -> bool:
        depth = self.depth_of(path)
        return depth is not None and depth <= self.max_depth

    def is_tracked(self, path: str) -> bool:
        return Path(path).suffix.lower() in self.tracked_extensions

    def _dispatch(self, callback, *args) -> None:
        if self._closed or callback is None:
            return
        try:
            callback(self.device_id, *args)
        except OSError as exc:
            # The volume may be ejected mid-copy
            logger.debug("Filesystem error handling %s on %s: %s", args, self.device_id, exc)
        except Exception:
            logger.exception("Watch callback failed for %s", args)

    def on_created(self, event) -> None:
        path = os.fsdecode(event.src_path)
        if not self.within_depth(path):
            return
        if event.is_directory:
            logger.debug("Folder created on %s: %s", self.device_id, path)
            self._dispatch(self.on_folder, path)
        elif self.is_tracked(path):
            logger.debug("Media file created on %s: %s", self.device_id, path)
            self._dispatch(self.on_file, path)

    def on_moved(self, event) -> None:
        if event.is_directory:
            return
        src = os.fsdecode(event.src_path)
        dest = os.fsdecode(event.dest_path)
        if not self.within_depth(dest):
            return
        logger.debug("File moved on %s: %s -> %s", self.device_id, src, dest)
        self._dispatch(self.on_moved_cb, src, dest)


class WatchAdapter:
    """Owns one observer per attached device."""

    def __init__(
        self,
        on_file: FileCallback,
        on_folder: Optional[FileCallback] = None,
        on_moved: Optional[MoveCallback] = None,
        tracked_extensions: Iterable[str] = constants.VIDEO_EXTENSIONS,
        max_depth: int = 3,
        observer_factory: Callable[[], object] = Observer,
    ):
        self.on_file = on_file
        self.on_folder = on_folder
        self.on_moved = on_moved
        self.tracked_extensions = tuple(tracked_extensions)
        self.max_depth = max_depth
        self._observer_factory = observer_factory
        self._observers: Dict[str, object] = {}
        self._handlers: Dict[str, CopyEventHandler] = {}
        self._roots: Dict[str, str] = {}
        self._lock = threading.Lock()

    def attach(self, device_id: str, mount_path: str) -> bool:
        path = Path(mount_path)
        if not path.is_dir():
            logger.warning("Mount path does not exist, not watching %s: %s", device_id, mount_path)
            return False
        with self._lock:
            if device_id in self._observers:
                return True
            handler = CopyEventHandler(
                device_id,
                str(path),
                self.on_file,
                on_folder=self.on_folder,
                on_moved=self.on_moved,
                tracked_extensions=self.tracked_extensions,
                max_depth=self.max_depth,
            )
            observer = self._observer_factory()
            try:
                observer.schedule(handler, str(path), recursive=True)
                observer.start()
            except OSError as exc:
                logger.warning("Failed to watch %s at %s: %s", device_id, mount_path, exc)
                return False
            self._observers[device_id] = observer
            self._handlers[device_id] = handler
            self._roots[device_id] = str(path)
        logger.info("Watching %s at %s (depth %d)", device_id, path, self.max_depth)
        return True

    def detach(self, device_id: str, timeout: float = 5.0) -> bool:
        with self._lock:
            observer = self._observers.pop(device_id, None)
            handler = self._handlers.pop(device_id, None)
            root = self._roots.pop(device_id, None)
        if observer is None:
            return False
        if handler is not None:
            handler.close()
        try:
            observer.stop()
            if observer is not threading.current_thread():
                observer.join(timeout)
        except (OSError, RuntimeError) as exc:
            logger.debug("Error closing watcher for %s: %s", device_id, exc)
        logger.info("Stopped watching %s at %s", device_id, root)
        return True

    def detach_all(self, timeout: float = 5.0) -> None:
        for device_id in list(self.watched()):
            self.detach(device_id, timeout=timeout)

    def watched(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._roots)

    def is_watching(self, device_id: str) -> bool:
        with self._lock:
            return device_id in self._observers
