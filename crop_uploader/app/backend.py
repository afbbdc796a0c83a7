from __future__ import annotations

import contextlib
import logging
import math
import sys
from pathlib import Path
from typing import Any

from PySide6.QtCore import Property, QObject, QUrl, Signal, Slot

from crop_uploader.app.state.upload_state import UploadState
from crop_uploader.crop.crop import PyvipsRasterizer, RasterCropper, Rasterizer
from crop_uploader.crop.specs import LISTING_IMAGE, get_spec
from crop_uploader.crop.transform import CropGesture, PreviewContainer, clamp_ui_scale, normalize_gesture
from crop_uploader.errors import CropError, InvalidDimensionsError, QueueStateError
from crop_uploader.logger import get_logger
from crop_uploader.ops.upload_queue import QueueSnapshot, QueueState, UploadQueueController
from crop_uploader.settings_manager import SettingsManager
from crop_uploader.upload.dispatcher import UploadDispatcher
from crop_uploader.upload.uploader import HttpUploader, Uploader
from crop_uploader.validation import (
    FileValidator,
    SelectedFile,
    ValidationOptions,
    partition_messages,
    preview_data_url,
)

_logger = get_logger("backend")
_BASE_DIR = Path(getattr(sys, "_MEIPASS", Path(__file__).resolve().parents[1]))

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _make_rasterizer(name: str) -> Rasterizer:
    if name == "pillow":
        from crop_uploader.crop.pillow_backend import PillowRasterizer

        return PillowRasterizer()
    return PyvipsRasterizer()


def _to_local_path(raw: object) -> str:
    p = str(raw or "")
    if p.startswith("file:"):
        url = QUrl(p)
        if url.isLocalFile():
            p = url.toLocalFile()
    return p


def _coerce_files(payload: object | None) -> tuple[list[SelectedFile], list[str]]:
    """Turn a selectFiles payload into SelectedFile objects.

    Accepts ``files`` (SelectedFile instances, from Python callers) or
    ``paths`` (strings or file: URLs, from QML). Returns (files, read_errors).
    """
    files: list[SelectedFile] = []
    errors: list[str] = []

    given = _get_payload_value(payload, "files", default=None)
    if isinstance(given, (list, tuple)):
        files.extend(f for f in given if isinstance(f, SelectedFile))

    raw_paths = _get_payload_value(payload, "paths", default=None)
    if isinstance(raw_paths, str):
        raw_paths = [raw_paths]
    if isinstance(raw_paths, (list, tuple)):
        for raw in raw_paths:
            path = _to_local_path(raw)
            if not path:
                continue
            try:
                files.append(SelectedFile.from_path(path))
            except OSError as e:
                _logger.warning("cannot read selected file %s: %s", path, e)
                errors.append(f"Failed to read file: {Path(path).name}")
    return files, errors


class UploadBackend(QObject):
    """Single upload backend object exposed to QML.

    QML → Python: backend.dispatch(cmd, payload)
    Python → QML: backend.event(dict), backend.taskEvent(dict)
    QML bindings: backend.upload
    """

    # QObject already has an .event() handler method, so we must not shadow it.
    # Expose the QML signal name as "event" while keeping a safe Python attribute.
    event_ = Signal(object, name="event")
    taskEvent = Signal(object, name="taskEvent")

    def __init__(
        self,
        settings: SettingsManager | None = None,
        uploader: Uploader | None = None,
        dispatcher: Any | None = None,
        rasterizer: Rasterizer | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)

        self._settings_mgr = settings or SettingsManager(str(_BASE_DIR / "settings.json"))
        self._upload = UploadState(self)

        self._uploader = uploader or HttpUploader(
            self._settings_mgr.upload_endpoint,
            timeout=self._settings_mgr.upload_timeout_s,
        )
        self._dispatcher = dispatcher or UploadDispatcher(self._uploader, self._settings_mgr.upload_retries, self)
        self._cropper = RasterCropper(
            rasterizer or _make_rasterizer(self._settings_mgr.raster_backend),
            quality=self._settings_mgr.jpeg_quality,
        )
        self._validator = FileValidator(
            ValidationOptions(
                max_size_mb=self._settings_mgr.max_size_mb,
                accepted_mime_types=self._settings_mgr.accepted_mime_types,
                max_count=self._settings_mgr.max_files,
            )
        )
        self._queue = UploadQueueController(LISTING_IMAGE, self._cropper, self._dispatcher, self)
        self._set_target("listing")
        self._setup_queue_signals()

    # ---- expose state objects to QML ----
    def _get_upload(self) -> QObject:
        return self._upload

    uploadState = Property(QObject, _get_upload, constant=True)  # type: ignore[arg-type]
    upload = Property(QObject, _get_upload, constant=True)  # type: ignore[arg-type]

    @property
    def queue(self) -> UploadQueueController:
        return self._queue

    # ---- init wiring ----
    def _setup_queue_signals(self) -> None:
        self._queue.stateChanged.connect(self._on_queue_state_changed)
        self._queue.progress.connect(self._on_queue_progress)
        self._queue.cropRequested.connect(self._on_crop_requested)
        self._queue.finished.connect(self._on_queue_finished)
        self._queue.error.connect(self._on_queue_error)

    # ---- QML command entry ----
    # NOTE: The second argument must be a Qt-friendly variant type.
    # Using `object` here causes runtime failures when QML passes a JS object.
    @Slot(str, "QVariant")  # type: ignore[call-overload]
    def dispatch(self, cmd: str, payload: object | None = None) -> None:
        command = str(cmd or "").strip()
        if not command:
            self._emit_message("error", "Empty cmd")
            return

        if command == "log":
            self._handle_log_cmd(payload)
            return

        if command == "selectFiles":
            self._cmd_select_files(payload)
            return

        if command == "applyCrop":
            self._cmd_apply_crop(payload)
            return

        if command == "cancelUpload":
            self._cmd_cancel_upload()
            return

        self._emit_message("warning", f"Unknown cmd: {command}")

    def shutdown(self) -> None:
        with contextlib.suppress(RuntimeError):
            self._dispatcher.shutdown()

    # ---- cmd handlers ----
    def _handle_log_cmd(self, payload: object | None) -> None:
        level = str(_get_payload_value(payload, "level", default="debug")).lower()
        msg = str(_get_payload_value(payload, "message", default=""))
        if not msg:
            return
        _logger.getChild("qml").log(_LOG_LEVELS.get(level, logging.DEBUG), "%s", msg)

    def _cmd_select_files(self, payload: object | None) -> None:
        state = self._queue.state
        if state in (QueueState.STAGED, QueueState.ACTIVE):
            self._emit_message("warning", "An upload is already in progress.")
            return
        if state is QueueState.PARTIALLY_FAILED:
            self._queue.cancel()

        target = str(_get_payload_value(payload, "target", default=self._upload._get_target()))
        try:
            spec = get_spec(target)
        except KeyError as e:
            self._emit_message("error", str(e.args[0]))
            return

        files, read_errors = _coerce_files(payload)
        for msg in read_errors:
            self._emit_message("error", msg)
        if not files:
            if not read_errors:
                self._emit_message("warning", "No files selected.")
            return

        options = ValidationOptions(
            max_size_mb=self._validator.options.max_size_mb,
            accepted_mime_types=self._validator.options.accepted_mime_types,
            max_count=min(spec.max_files, self._validator.options.max_count),
        )
        result = self._validator.validate(files, options)
        warnings, errors = partition_messages(result)
        for msg in warnings:
            self._emit_message("warning", msg)
        for msg in errors:
            self._emit_message("error", msg)
        if not result.valid_files:
            return

        self._queue.set_spec(spec)
        self._set_target(target)
        self._upload._set_uploaded_urls([])
        self.taskEvent.emit(
            {
                "type": "task",
                "name": "upload",
                "state": "started",
                "target": target,
                "total": len(result.valid_files),
            }
        )
        self._queue.stage(result.valid_files)
        self._queue.begin_next()

    def _cmd_apply_crop(self, payload: object | None) -> None:
        try:
            try:
                gesture, container = self._crop_input(payload)
            except (CropError, TypeError, ValueError) as e:
                _logger.warning("applyCrop: unusable crop input %r: %s", payload, e)
                self._queue.fail_crop(f"Invalid crop: {e}")
                return
            self._queue.apply_crop(gesture, container)
        except QueueStateError as e:
            _logger.warning("applyCrop rejected: %s", e)
            self._emit_message("warning", str(e))

    def _crop_input(self, payload: object | None) -> tuple[CropGesture, PreviewContainer]:
        """Build the gesture and preview box from an applyCrop payload.

        Raises CropError for non-finite or non-positive values and
        TypeError/ValueError for values that are not numbers.
        """
        x = float(_get_payload_value(payload, "x", default=0.0))
        y = float(_get_payload_value(payload, "y", default=0.0))
        scale = clamp_ui_scale(float(_get_payload_value(payload, "scale", default=1.0)))
        gesture = CropGesture(x, y, scale)

        spec = self._queue.spec
        live_width = _get_payload_value(payload, "containerWidth", default=None)
        if live_width is not None:
            return normalize_gesture(gesture, float(live_width), self._settings_mgr.preview_reference_size)

        # Without preview dimensions the preview is assumed to match the output.
        width = _get_payload_value(payload, "previewWidth", default=None)
        height = _get_payload_value(payload, "previewHeight", default=None)
        container = PreviewContainer(
            float(spec.output_width if width is None else width),
            float(spec.output_height if height is None else height),
        )
        if not (math.isfinite(container.width) and math.isfinite(container.height)) or min(
            container.width, container.height
        ) <= 0:
            raise InvalidDimensionsError(f"preview dimensions must be positive, got {width}x{height}")
        return gesture, container

    def _cmd_cancel_upload(self) -> None:
        self._queue.cancel()
        self._upload._set_current(-1, "", "")
        self.taskEvent.emit({"type": "task", "name": "upload", "state": "canceled"})

    # ---- queue signals -> state/taskEvent ----
    def _on_queue_state_changed(self, state: str) -> None:
        self._upload._set_queue_state(state)
        self._upload._set_active(state in (QueueState.STAGED.value, QueueState.ACTIVE.value))

    def _on_queue_progress(self, completed: int, total: int) -> None:
        self._upload._set_progress(completed, total)
        self.taskEvent.emit(
            {
                "type": "task",
                "name": "upload",
                "state": "progress",
                "completed": int(completed),
                "total": int(total),
                "percent": self._upload._get_percent(),
            }
        )

    def _on_crop_requested(self, index: int, file: SelectedFile) -> None:
        # Suspension point: the preview is read before the dialog can show it.
        self._upload._set_current(index, file.name, preview_data_url(file))
        self.taskEvent.emit(
            {
                "type": "task",
                "name": "upload",
                "state": "cropRequested",
                "index": int(index),
                "fileName": file.name,
                "total": self._upload._get_total(),
            }
        )

    def _on_queue_error(self, message: str) -> None:
        self._emit_message("error", message)

    def _on_queue_finished(self, snapshot: QueueSnapshot) -> None:
        self._upload._set_current(-1, "", "")
        self._upload._set_uploaded_urls(snapshot.urls)
        self.taskEvent.emit(
            {
                "type": "task",
                "name": "upload",
                "state": "finished" if snapshot.state is QueueState.COMPLETED else "error",
                "snapshot": snapshot.to_dict(),
            }
        )
        if snapshot.state is QueueState.COMPLETED:
            count = snapshot.completed
            what = "Image" if count == 1 else f"{count} images"
            self._emit_message("info", f"{what} uploaded successfully!")

    # ---- helpers ----
    def _set_target(self, target: str) -> None:
        spec = get_spec(target)
        self._upload._set_target(
            target, spec.output_width, spec.output_height, spec.circular, spec.fit_mode.value
        )

    def _emit_message(self, level: str, message: str) -> None:
        name = "error" if level == "error" else ("warning" if level == "warning" else "info")
        self.event_.emit({"type": "event", "name": name, "level": level, "message": message})


def _get_payload_value(payload: object | None, key: str, *, default: Any) -> Any:
    """Extract a value from a QML payload.

    Supports:
    - dict-like payloads (Python dict)
    - None
    - otherwise returns default

    We intentionally keep schema small and explicit.
    """

    if payload is None:
        return default

    # QML often passes a JS object which arrives as QJSValue/QVariant.
    # Convert to a Python mapping when possible.
    if payload.__class__.__name__ == "QJSValue" and hasattr(payload, "toVariant"):
        with contextlib.suppress(Exception):
            payload = payload.toVariant()  # type: ignore[assignment, attr-defined]

    if isinstance(payload, dict):
        return payload.get(key, default)

    return default
