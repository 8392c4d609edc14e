"""
Device and copy monitoring.

CopyMonitor ties the pieces together: the device registry reports volumes
coming and going, each volume gets a filesystem watcher, every new media
file gets its own progress tracker, and finished copies are classified and
pushed to subscribers. All timers are independent; a device or operation
record is only ever mutated by its own callback thread.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from . import constants, logging_utils
from .config import Config
from .content import ContentClassifier
from .devices import Device, DeviceRegistry
from .eject import EjectResult, eject as eject_volume
from .tracker import ActiveOperations, CopyOperation, ProgressTracker, generate_operation_id
from .watcher import WatchAdapter

Listener = Callable[[str, Dict[str, object]], None]

MSG_NOT_EJECTABLE = "Configured watch paths cannot be ejected"


class CopyMonitor:
    def __init__(
        self,
        config: Optional[Config] = None,
        classifier: Optional[ContentClassifier] = None,
        registry: Optional[DeviceRegistry] = None,
        watch_adapter: Optional[WatchAdapter] = None,
        eject_func: Callable[..., EjectResult] = eject_volume,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or Config()
        self.logger = logger or logging.getLogger(__name__)
        self.classifier = classifier or ContentClassifier()
        self.registry = registry or DeviceRegistry(interval=self.config.scan_interval_seconds)
        self.registry.on_connect = self._on_device_connected
        self.registry.on_disconnect = self._on_device_disconnected
        self.registry.on_change = self._on_device_changed
        self.watchers = watch_adapter or WatchAdapter(
            on_file=self._on_file_created,
            on_folder=self._on_folder_created,
            on_moved=self._on_file_moved,
            tracked_extensions=self.config.tracked_extensions,
            max_depth=self.config.watch_depth,
        )
        self._eject = eject_func
        self.operations: Optional[ActiveOperations] = None
        self._path_devices: Dict[str, Device] = {}
        self._listeners: List[Listener] = []
        self._listeners_lock = threading.Lock()
        self._state_lock = threading.RLock()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # Lifecycle

    def start(self, paths: Optional[Iterable[str]] = None) -> None:
        """Start device polling and watch any explicitly configured paths."""
        with self._state_lock:
            if self._running:
                return
            self.operations = ActiveOperations()
            self._running = True
        self.logger.info("Copy monitor starting")
        for path in (list(paths) if paths is not None else list(self.config.monitored_paths)):
            self.watch_path(path)
        self.registry.start()

    def stop(self) -> None:
        """Cancel the scan timer, every watcher and every sampler before returning."""
        with self._state_lock:
            if not self._running:
                return
            self._running = False
            operations = self.operations
        self.registry.stop()
        self.watchers.detach_all()
        cancelled = 0
        if operations is not None:
            for tracker in operations.clear():
                tracker.cancel()
                cancelled += 1
        self._path_devices.clear()
        self.logger.info("Copy monitor stopped (%d in-flight copies cancelled)", cancelled)

    def watch_path(self, path: str) -> bool:
        """Watch a directory that is not a removable device, e.g. a staging folder."""
        abs_path = os.path.abspath(os.fspath(path))
        device = Device(
            id=constants.PATH_DEVICE_PREFIX + abs_path,
            name=Path(abs_path).name or abs_path,
            mountpoints=[abs_path],
        )
        if not self.watchers.attach(device.id, abs_path):
            return False
        self._path_devices[device.id] = device
        return True

    # Subscribers

    def subscribe(self, listener: Listener) -> None:
        with self._listeners_lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit(self, event: str, payload: Dict[str, object]) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, payload)
            except Exception:
                self.logger.exception("Listener failed for %s", event)

    # Queries

    def devices(self) -> List[Device]:
        return self.registry.devices() + list(self._path_devices.values())

    def get_device(self, device_id: str) -> Optional[Device]:
        return self.registry.get(device_id) or self._path_devices.get(device_id)

    def get_active_operations(self) -> List[Dict[str, object]]:
        operations = self.operations
        if operations is None:
            return []
        return operations.snapshot()

    def declare_expected_size(self, operation_id: str, size: int) -> bool:
        operations = self.operations
        tracker = operations.get(operation_id) if operations else None
        if tracker is None:
            return False
        tracker.declare_expected_size(size)
        return True

    # Eject

    def eject_device(self, device_id: str) -> EjectResult:
        if device_id in self._path_devices:
            return EjectResult(success=False, message=MSG_NOT_EJECTABLE, device_id=device_id)
        device = self.registry.get(device_id)
        result = self._eject(device, timeout=self.config.eject_timeout_seconds)
        logging_utils.log_structured(
            self.logger,
            f"eject {device_id}: {result.message}",
            {
                constants.LOG_KEY_EVENT: constants.EVENT_EJECT,
                constants.LOG_KEY_DEVICE: device_id,
                constants.LOG_KEY_RESULT: "ok" if result.success else "fail",
            },
        )
        return result

    def eject_device_async(self, device_id: str, callback: Optional[Callable[[EjectResult], None]] = None) -> threading.Thread:
        def do_eject():
            result = self.eject_device(device_id)
            if callback:
                try:
                    callback(result)
                except Exception:
                    self.logger.exception("Eject callback failed for %s", device_id)

        # Run in background so the caller is never blocked by a slow unmount
        thread = threading.Thread(target=do_eject, name=f"eject-{device_id}", daemon=True)
        thread.start()
        return thread

    # Registry callbacks

    def _on_device_connected(self, device: Device) -> None:
        if not self._running:
            return
        logging_utils.log_structured(
            self.logger,
            f"device connected: {device.name}",
            {
                constants.LOG_KEY_EVENT: constants.EVENT_DEVICE_CONNECTED,
                constants.LOG_KEY_DEVICE: device.id,
                constants.LOG_KEY_DEVICE_TYPE: device.type,
                constants.LOG_KEY_MOUNT: device.mount_path or "",
            },
        )
        self._emit(constants.EVENT_DEVICE_CONNECTED, device.to_dict())
        if device.mount_path:
            self.watchers.attach(device.id, device.mount_path)

    def _on_device_changed(self, device: Device) -> None:
        """A known device was mounted, unmounted or moved; point its watcher at the new mount."""
        if not self._running:
            return
        self.watchers.detach(device.id)
        # Paths under the old mount no longer exist
        aborted = self._abort_device_copies(device.id, "device remounted" if device.mount_path else "device unmounted")
        logging_utils.log_structured(
            self.logger,
            f"device mount changed: {device.name}",
            {
                constants.LOG_KEY_EVENT: constants.EVENT_DEVICE_CHANGED,
                constants.LOG_KEY_DEVICE: device.id,
                constants.LOG_KEY_MOUNT: device.mount_path or "",
                "ABORTED": aborted,
            },
        )
        self._emit(constants.EVENT_DEVICE_CHANGED, device.to_dict())
        if device.mount_path:
            self.watchers.attach(device.id, device.mount_path)

    def _on_device_disconnected(self, device: Device) -> None:
        if not self._running:
            return
        self.watchers.detach(device.id)
        aborted = self._abort_device_copies(device.id, "device disconnected")
        logging_utils.log_structured(
            self.logger,
            f"device disconnected: {device.name}",
            {
                constants.LOG_KEY_EVENT: constants.EVENT_DEVICE_DISCONNECTED,
                constants.LOG_KEY_DEVICE: device.id,
                "ABORTED": aborted,
            },
        )
        self._emit(constants.EVENT_DEVICE_DISCONNECTED, device.to_dict())

    def _abort_device_copies(self, device_id: str, reason: str) -> int:
        aborted = 0
        operations = self.operations
        if operations is not None:
            for tracker in operations.for_device(device_id):
                if tracker.abort(reason):
                    aborted += 1
        return aborted

    # Watcher callbacks

    def _is_tracked(self, path: str) -> bool:
        return Path(path).suffix.lower() in self.config.tracked_extensions

    def _on_file_created(self, device_id: str, path: str) -> Optional[ProgressTracker]:
        operations = self.operations
        if not self._running or operations is None:
            return None
        if operations.find_by_path(path) is not None:
            return None
        size = os.stat(path).st_size
        operation = CopyOperation(
            id=generate_operation_id(),
            device_id=device_id,
            path=str(path),
            name=Path(path).name,
            start_time=time.time(),
            current_size=size,
        )
        tracker = ProgressTracker(
            operation,
            self.classifier,
            on_event=self._on_operation_event,
            on_finished=self._on_tracker_finished,
            interval=self.config.sample_interval_seconds,
            stability_threshold=self.config.stability_threshold,
        )
        operations.add(tracker)
        logging_utils.log_structured(
            self.logger,
            f"copy started: {operation.name}",
            {
                constants.LOG_KEY_EVENT: constants.EVENT_COPY_START,
                constants.LOG_KEY_DEVICE: device_id,
                constants.LOG_KEY_OPERATION: operation.id,
                constants.LOG_KEY_PATH: operation.path,
            },
        )
        self._emit(constants.EVENT_COPY_START, operation.snapshot())
        tracker.start()
        return tracker

    def _on_folder_created(self, device_id: str, path: str) -> None:
        if not self._running:
            return
        self._emit(
            constants.EVENT_FOLDER_COPY,
            {
                "device_id": device_id,
                "path": str(path),
                "name": Path(path).name,
                "content_type": self.classifier.classify(path),
            },
        )

    def _on_file_moved(self, device_id: str, src: str, dest: str) -> None:
        operations = self.operations
        if not self._running or operations is None:
            return
        tracker = operations.find_by_path(src)
        if tracker is not None:
            if self._is_tracked(dest):
                tracker.rename(dest)
            else:
                tracker.abort("renamed to an untracked file")
            return
        if self._is_tracked(dest):
            # Temp file renamed to its final media name
            self._on_file_created(device_id, dest)

    # Tracker callbacks

    def _on_operation_event(self, event: str, snapshot: Dict[str, object]) -> None:
        if event in (constants.EVENT_COPY_COMPLETE, constants.EVENT_COPY_ABORTED):
            logging_utils.log_structured(
                self.logger,
                f"copy {snapshot['status']}: {snapshot['name']}",
                {
                    constants.LOG_KEY_EVENT: event,
                    constants.LOG_KEY_DEVICE: snapshot["device_id"],
                    constants.LOG_KEY_OPERATION: snapshot["id"],
                    constants.LOG_KEY_STATUS: snapshot["status"],
                    constants.LOG_KEY_SIZE: snapshot["current_size"],
                    constants.LOG_KEY_CONTENT_TYPE: snapshot.get("content_type") or "",
                },
            )
        self._emit(event, snapshot)

    def _on_tracker_finished(self, tracker: ProgressTracker) -> None:
        operations = self.operations
        if operations is not None:
            operations.remove(tracker.id)
