"""
Copy progress tracking.

Nothing outside the copying process can observe when a copy finishes, so
each tracked file is sampled on a fixed interval and declared complete once
its size has stayed unchanged for ``stability_threshold`` consecutive
samples. A link that stalls for that long completes early, and a tool that
pre-allocates the full size shows 100% immediately but still waits out the
window. Both are accepted trade-offs of the heuristic.
"""

from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from . import constants
from .content import ContentClassifier
from .formatting import format_size, format_speed

logger = logging.getLogger(__name__)

TERMINAL_STATES = (constants.STATUS_COMPLETE, constants.STATUS_ABORTED)


def generate_operation_id() -> str:
    return f"copy_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class CopyOperation:
    id: str
    device_id: str
    path: str
    name: str
    start_time: float
    current_size: int = 0
    expected_size: Optional[int] = None
    status: str = constants.STATUS_COPYING
    speed: float = 0.0
    progress: Optional[float] = None
    remaining: Optional[float] = None
    content_type: Optional[str] = None
    end_time: Optional[float] = None
    duration: Optional[float] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def snapshot(self) -> Dict[str, object]:
        return asdict(self)


# Callback signatures: (event_name, operation snapshot)
OperationCallback = Callable[[str, Dict[str, object]], None]


class ProgressTracker:
    """
    Samples one file until its size settles or it disappears.

    All mutation of the operation happens inside ``sample()``, serialized by
    ``_sample_lock``; ``cancel()`` takes the same lock, so a sample already
    running finishes before cancellation takes effect and no callback fires
    afterward.
    """

    def __init__(
        self,
        operation: CopyOperation,
        classifier: ContentClassifier,
        on_event: Optional[OperationCallback] = None,
        on_finished: Optional[Callable[["ProgressTracker"], None]] = None,
        interval: float = 1.0,
        stability_threshold: int = 3,
    ):
        self.operation = operation
        self.classifier = classifier
        self.on_event = on_event
        self.on_finished = on_finished
        self.interval = interval
        self.stability_threshold = max(1, int(stability_threshold))
        self.stable_count = 0
        self._last_size = operation.current_size
        self._sample_lock = threading.RLock()
        self._stop_event = threading.Event()
        self._cancelled = False
        self._thread: Optional[threading.Thread] = None

    @property
    def id(self) -> str:
        return self.operation.id

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=f"tracker-{self.operation.id}", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            if not self.sample():
                break

    def declare_expected_size(self, size: int) -> None:
        with self._sample_lock:
            if self.operation.is_terminal or self._cancelled:
                return
            self.operation.expected_size = int(size) if size and size > 0 else None

    def rename(self, new_path: str) -> None:
        """Follow a temp file that was renamed to its final name."""
        with self._sample_lock:
            if self.operation.is_terminal or self._cancelled:
                return
            logger.info("Copy %s renamed: %s -> %s", self.operation.id, self.operation.path, new_path)
            self.operation.path = str(new_path)
            self.operation.name = Path(new_path).name
            self.stable_count = 0

    def sample(self) -> bool:
        """Take one size sample. Returns False once no more samples are needed."""
        with self._sample_lock:
            if self._cancelled or self.operation.is_terminal:
                return False
            op = self.operation
            try:
                current = os.stat(op.path).st_size
            except FileNotFoundError:
                self._finish(constants.STATUS_ABORTED, "source file vanished")
                return False
            except OSError as exc:
                self._finish(constants.STATUS_ABORTED, f"{exc.__class__.__name__}: {exc.strerror or exc}")
                return False

            op.speed = (current - self._last_size) / self.interval if self.interval > 0 else 0.0
            op.current_size = current
            if op.expected_size:
                fraction = min(current / op.expected_size, 1.0)
                op.progress = max(op.progress or 0.0, fraction)
                if op.speed > 0 and op.expected_size > current:
                    op.remaining = (op.expected_size - current) / op.speed
                elif op.expected_size <= current:
                    op.remaining = 0.0

            if current == self._last_size:
                self.stable_count += 1
            else:
                self.stable_count = 0
            self._last_size = current

            if self.stable_count >= self.stability_threshold:
                self._finish(constants.STATUS_COMPLETE)
                return False

            logger.debug(
                "Copy %s: %s at %s (stable %d/%d)",
                op.id, format_size(current), format_speed(op.speed), self.stable_count, self.stability_threshold,
            )
            self._emit(constants.EVENT_COPY_PROGRESS)
            return True

    def _finish(self, status: str, error: Optional[str] = None) -> None:
        op = self.operation
        op.status = status
        op.end_time = time.time()
        op.duration = op.end_time - op.start_time
        op.speed = 0.0
        if status == constants.STATUS_COMPLETE:
            op.content_type = self.classifier.classify(op.path)
            op.remaining = 0.0
            if op.expected_size:
                op.progress = 1.0
            logger.info("Copy complete: %s (%s, %s)", op.path, format_size(op.current_size), op.content_type)
            self._emit(constants.EVENT_COPY_COMPLETE)
        else:
            op.error = error
            logger.warning("Copy aborted: %s (%s)", op.path, error)
            self._emit(constants.EVENT_COPY_ABORTED)
        self._stop_event.set()
        if self.on_finished:
            try:
                self.on_finished(self)
            except Exception:
                logger.exception("Finish callback failed for %s", op.id)

    def abort(self, reason: str) -> bool:
        """Abort from outside (device gone). Returns False if already terminal."""
        with self._sample_lock:
            if self._cancelled or self.operation.is_terminal:
                return False
            self._finish(constants.STATUS_ABORTED, reason)
            return True

    def _emit(self, event: str) -> None:
        if self.on_event is None:
            return
        try:
            self.on_event(event, self.operation.snapshot())
        except Exception:
            logger.exception("Copy event listener failed for %s", event)

    def cancel(self, timeout: float = 5.0) -> None:
        """Stop sampling without emitting anything further."""
        self._stop_event.set()
        with self._sample_lock:
            self._cancelled = True
        thread = self._thread
        if thread and thread is not threading.current_thread():
            thread.join(timeout)


class ActiveOperations:
    """
    The set of in-flight copy trackers, keyed by operation id.

    Created when the monitor starts and cleared when it stops; collaborators
    receive it by reference instead of reaching into shared globals.
    """

    def __init__(self):
        self._trackers: Dict[str, ProgressTracker] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._trackers)

    def add(self, tracker: ProgressTracker) -> None:
        with self._lock:
            self._trackers[tracker.id] = tracker

    def remove(self, operation_id: str) -> Optional[ProgressTracker]:
        with self._lock:
            return self._trackers.pop(operation_id, None)

    def get(self, operation_id: str) -> Optional[ProgressTracker]:
        with self._lock:
            return self._trackers.get(operation_id)

    def find_by_path(self, path: str) -> Optional[ProgressTracker]:
        path = str(path)
        with self._lock:
            for tracker in self._trackers.values():
                if tracker.operation.path == path:
                    return tracker
        return None

    def for_device(self, device_id: str) -> List[ProgressTracker]:
        with self._lock:
            return [t for t in self._trackers.values() if t.operation.device_id == device_id]

    def trackers(self) -> List[ProgressTracker]:
        with self._lock:
            return list(self._trackers.values())

    def snapshot(self) -> List[Dict[str, object]]:
        return [t.operation.snapshot() for t in self.trackers()]

    def clear(self) -> List[ProgressTracker]:
        with self._lock:
            trackers = list(self._trackers.values())
            self._trackers.clear()
        return trackers
