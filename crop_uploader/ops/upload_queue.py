"""Sequential crop-then-upload queue.

Files go through crop → upload strictly one at a time, in selection order.
The first upload failure abandons whatever is still pending; a crop/decode
failure only fails its own task and the queue moves on.

Commands come in as method calls; state leaves as signals and snapshots.
The UI never mutates tasks directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from PySide6.QtCore import QObject, Signal, Slot

from crop_uploader.crop.crop import RasterCropper
from crop_uploader.crop.specs import CropSpecification
from crop_uploader.crop.transform import CropGesture, PreviewContainer
from crop_uploader.errors import CropError, QueueStateError, UploadError
from crop_uploader.logger import get_logger
from crop_uploader.upload.dispatcher import UploadJob
from crop_uploader.upload.uploader import UploadResult
from crop_uploader.validation import SelectedFile

_logger = get_logger("upload_queue")


class TaskState(str, Enum):
    PENDING = "pending"
    CROPPING = "cropping"
    UPLOADING = "uploading"
    DONE = "done"
    FAILED = "failed"


class QueueState(str, Enum):
    IDLE = "idle"
    STAGED = "staged"
    ACTIVE = "active"
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partiallyFailed"


# Monotonic: no task ever moves back.
_TRANSITIONS: dict[TaskState, frozenset[TaskState]] = {
    TaskState.PENDING: frozenset({TaskState.CROPPING}),
    TaskState.CROPPING: frozenset({TaskState.UPLOADING, TaskState.FAILED}),
    TaskState.UPLOADING: frozenset({TaskState.DONE, TaskState.FAILED}),
    TaskState.DONE: frozenset(),
    TaskState.FAILED: frozenset(),
}

_IN_FLIGHT = (TaskState.CROPPING, TaskState.UPLOADING)


@dataclass
class UploadTask:
    file: SelectedFile
    state: TaskState = TaskState.PENDING
    result_url: str | None = None
    result_key: str | None = None
    error: str | None = None

    def advance(self, new_state: TaskState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise QueueStateError(f"Task {self.file.name!r} cannot go from {self.state.value} to {new_state.value}")
        self.state = new_state


@dataclass(frozen=True)
class TaskSnapshot:
    index: int
    name: str
    state: TaskState
    result_url: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class QueueSnapshot:
    state: QueueState
    current_index: int
    tasks: tuple[TaskSnapshot, ...]

    @property
    def total(self) -> int:
        return len(self.tasks)

    @property
    def completed(self) -> int:
        return sum(1 for t in self.tasks if t.state is TaskState.DONE)

    @property
    def percent(self) -> int:
        return int(self.completed * 100 / self.total) if self.total else 0

    @property
    def urls(self) -> list[str]:
        return [t.result_url for t in self.tasks if t.state is TaskState.DONE and t.result_url]

    @property
    def states(self) -> list[TaskState]:
        return [t.state for t in self.tasks]

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "currentIndex": self.current_index,
            "completed": self.completed,
            "total": self.total,
            "percent": self.percent,
            "tasks": [
                {"index": t.index, "name": t.name, "state": t.state.value, "url": t.result_url, "error": t.error}
                for t in self.tasks
            ],
        }


class UploadQueueController(QObject):
    """State machine: Idle → Staged → Active(index) → … → Completed | PartiallyFailed."""

    stateChanged = Signal(str)
    taskChanged = Signal(int, str)  # index, TaskState value
    progress = Signal(int, int)  # completed, total
    cropRequested = Signal(int, object)  # index, SelectedFile
    finished = Signal(object)  # QueueSnapshot
    error = Signal(str)

    def __init__(
        self,
        spec: CropSpecification,
        cropper: RasterCropper,
        dispatcher: Any,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._spec = spec
        self._cropper = cropper
        self._dispatcher = dispatcher
        self._tasks: list[UploadTask] = []
        self._current_index = -1
        self._state = QueueState.IDLE
        self._next_ticket = 0
        self._active_ticket: int | None = None
        dispatcher.upload_finished.connect(self._on_upload_finished)

    # ---- read-only views ----
    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def spec(self) -> CropSpecification:
        return self._spec

    def set_spec(self, spec: CropSpecification) -> None:
        if self._in_flight_index() is not None:
            raise QueueStateError("Cannot change crop target while a file is being processed")
        self._spec = spec

    def snapshot(self) -> QueueSnapshot:
        return QueueSnapshot(
            state=self._state,
            current_index=self._current_index,
            tasks=tuple(
                TaskSnapshot(i, t.file.name, t.state, t.result_url, t.error) for i, t in enumerate(self._tasks)
            ),
        )

    # ---- commands ----
    def stage(self, files: list[SelectedFile]) -> None:
        if self._state not in (QueueState.IDLE, QueueState.COMPLETED):
            raise QueueStateError(f"Cannot stage files while queue is {self._state.value}")
        if not files:
            raise QueueStateError("No files to stage")

        self._tasks = [UploadTask(f) for f in files]
        self._current_index = -1
        self._active_ticket = None
        _logger.debug("staged %d file(s): %s", len(self._tasks), [t.file.name for t in self._tasks])
        self._set_state(QueueState.STAGED)
        self._emit_progress()

    def begin_next(self) -> int | None:
        """Move the first pending task to cropping and ask the UI for a gesture.

        Returns the task index, or None when nothing was pending (the queue
        finishes instead).
        """
        if self._state not in (QueueState.STAGED, QueueState.ACTIVE):
            raise QueueStateError(f"Cannot begin next file while queue is {self._state.value}")
        busy = self._in_flight_index()
        if busy is not None:
            raise QueueStateError(f"File #{busy} is still {self._tasks[busy].state.value}")

        idx = self._first_pending()
        if idx is None:
            self._finish()
            return None

        task = self._tasks[idx]
        task.advance(TaskState.CROPPING)
        self._current_index = idx
        self._set_state(QueueState.ACTIVE)
        self.taskChanged.emit(idx, task.state.value)
        _logger.debug("crop requested: index=%d name=%s", idx, task.file.name)
        self.cropRequested.emit(idx, task.file)
        return idx

    def apply_crop(self, gesture: CropGesture, container: PreviewContainer) -> None:
        idx, task = self._require_active(TaskState.CROPPING)
        try:
            cropped = self._cropper.crop(task.file.data, task.file.mime_type, container, gesture, self._spec)
        except CropError as e:
            self.fail_crop(str(e))
            return

        task.advance(TaskState.UPLOADING)
        self.taskChanged.emit(idx, task.state.value)

        self._next_ticket += 1
        ticket = self._next_ticket
        self._active_ticket = ticket
        upload_file = SelectedFile(task.file.name, cropped.mime_type, cropped.data)
        _logger.debug(
            "upload submit: index=%d ticket=%d name=%s bytes=%d folder=%s/%s",
            idx,
            ticket,
            upload_file.name,
            upload_file.size,
            self._spec.folder,
            self._spec.subfolder,
        )
        self._dispatcher.submit(UploadJob(ticket, upload_file, self._spec.folder, self._spec.subfolder))

    def fail_crop(self, reason: str) -> None:
        """Fail the file waiting for a crop and move on to the next one.

        Used for crop errors and for crop input the UI could not turn into a
        gesture. A bad image only costs its own slot.
        """
        idx, task = self._require_active(TaskState.CROPPING)
        _logger.error("crop failed: index=%d name=%s: %s", idx, task.file.name, reason)
        self._fail(idx, f"{task.file.name}: {reason}")
        if self._first_pending() is not None:
            self.begin_next()
        else:
            self._finish()

    def on_upload_success(self, result: UploadResult) -> bool:
        """Record the upload and move on. Returns False if no upload was active."""
        active = self._uploading()
        if active is None:
            _logger.debug("upload success ignored: no active upload (url=%s)", result.url)
            return False
        idx, task = active
        self._active_ticket = None

        task.advance(TaskState.DONE)
        task.result_url = result.url
        task.result_key = result.key
        _logger.info("uploaded %s -> %s", task.file.name, result.url)
        self.taskChanged.emit(idx, task.state.value)
        self._emit_progress()

        if self._first_pending() is not None:
            self.begin_next()
        else:
            self._finish()
        return True

    def on_upload_failure(self, error: UploadError | str) -> bool:
        """Fail the active task and abandon the rest of the queue."""
        active = self._uploading()
        if active is None:
            _logger.debug("upload failure ignored: no active upload (%s)", error)
            return False
        idx, task = active
        self._active_ticket = None

        message = error.message if isinstance(error, UploadError) else str(error)
        abandoned = sum(1 for t in self._tasks if t.state is TaskState.PENDING)
        _logger.error("upload failed: index=%d name=%s: %s (abandoning %d)", idx, task.file.name, message, abandoned)
        self._fail(idx, message)
        self._current_index = -1
        self._set_state(QueueState.PARTIALLY_FAILED)
        self.finished.emit(self.snapshot())
        return True

    def cancel(self) -> None:
        """Drop every unfinished task and return to Idle; uploaded files stay uploaded."""
        dropped = sum(1 for t in self._tasks if t.state is not TaskState.DONE)
        self._tasks = [t for t in self._tasks if t.state is TaskState.DONE]
        self._current_index = -1
        # Any upload still running belongs to the cancelled queue.
        self._active_ticket = None
        _logger.debug("cancel: dropped=%d kept=%d", dropped, len(self._tasks))
        self._set_state(QueueState.IDLE)
        self._emit_progress()

    # ---- dispatcher callback ----
    @Slot(int, object, object)  # type: ignore[arg-type]
    def _on_upload_finished(self, ticket: int, result: object, error: object) -> None:
        if self._active_ticket is None or ticket != self._active_ticket:
            _logger.debug("stale upload result dropped: ticket=%s active=%s", ticket, self._active_ticket)
            return
        if error is not None:
            self.on_upload_failure(error if isinstance(error, UploadError) else str(error))
        elif isinstance(result, UploadResult):
            self.on_upload_success(result)
        else:
            self.on_upload_failure(f"Upload returned no result for ticket {ticket}")

    # ---- internals ----
    def _set_state(self, state: QueueState) -> None:
        if state is self._state:
            return
        _logger.debug("queue state: %s -> %s", self._state.value, state.value)
        self._state = state
        self.stateChanged.emit(state.value)

    def _emit_progress(self) -> None:
        done = sum(1 for t in self._tasks if t.state is TaskState.DONE)
        self.progress.emit(done, len(self._tasks))

    def _first_pending(self) -> int | None:
        for i, t in enumerate(self._tasks):
            if t.state is TaskState.PENDING:
                return i
        return None

    def _in_flight_index(self) -> int | None:
        for i, t in enumerate(self._tasks):
            if t.state in _IN_FLIGHT:
                return i
        return None

    def _require_active(self, expected: TaskState) -> tuple[int, UploadTask]:
        idx = self._current_index
        if self._state is not QueueState.ACTIVE or not (0 <= idx < len(self._tasks)):
            raise QueueStateError(f"No active file (queue is {self._state.value})")
        task = self._tasks[idx]
        if task.state is not expected:
            raise QueueStateError(f"File #{idx} is {task.state.value}, expected {expected.value}")
        return idx, task

    def _uploading(self) -> tuple[int, UploadTask] | None:
        idx = self._current_index
        if self._state is not QueueState.ACTIVE or not (0 <= idx < len(self._tasks)):
            return None
        task = self._tasks[idx]
        return (idx, task) if task.state is TaskState.UPLOADING else None

    def _fail(self, idx: int, message: str) -> None:
        task = self._tasks[idx]
        task.advance(TaskState.FAILED)
        task.error = message
        self.taskChanged.emit(idx, task.state.value)
        self.error.emit(message)

    def _finish(self) -> None:
        self._current_index = -1
        failed = any(t.state is TaskState.FAILED for t in self._tasks)
        self._set_state(QueueState.PARTIALLY_FAILED if failed else QueueState.COMPLETED)
        _logger.info("queue finished: %s", self.snapshot().to_dict())
        self.finished.emit(self.snapshot())
