from __future__ import annotations

from PySide6.QtCore import Property, QObject, Signal


class UploadState(QObject):
    """State bound by the QML crop/upload dialog.

    Design:
    - Python is authoritative; QML only reads these and sends commands.
    - Output geometry mirrors the active CropSpecification so the preview box
      can use the same aspect ratio and clip shape.
    """

    activeChanged = Signal(bool)
    targetChanged = Signal(str)
    queueStateChanged = Signal(str)
    currentIndexChanged = Signal(int)
    currentNameChanged = Signal(str)
    previewUrlChanged = Signal(str)
    totalChanged = Signal(int)
    completedChanged = Signal(int)
    percentChanged = Signal(int)
    outputSizeChanged = Signal()
    circularChanged = Signal(bool)
    fitModeChanged = Signal(str)
    uploadedUrlsChanged = Signal(list)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._active = False
        self._target = "listing"
        self._queue_state = "idle"
        self._current_index = -1
        self._current_name = ""
        self._preview_url = ""
        self._total = 0
        self._completed = 0
        self._percent = 0
        self._output_w = 0
        self._output_h = 0
        self._circular = False
        self._fit_mode = "contain"
        self._uploaded_urls: list[str] = []

    # ---- read-only properties (mutate via backend) ----
    def _get_active(self) -> bool:
        return bool(self._active)

    active = Property(bool, _get_active, notify=activeChanged)  # type: ignore[arg-type]

    def _get_target(self) -> str:
        return str(self._target)

    target = Property(str, _get_target, notify=targetChanged)  # type: ignore[arg-type]

    def _get_queue_state(self) -> str:
        return str(self._queue_state)

    queueState = Property(str, _get_queue_state, notify=queueStateChanged)  # type: ignore[arg-type]

    def _get_current_index(self) -> int:
        return int(self._current_index)

    currentIndex = Property(int, _get_current_index, notify=currentIndexChanged)  # type: ignore[arg-type]

    def _get_current_name(self) -> str:
        return str(self._current_name)

    currentName = Property(str, _get_current_name, notify=currentNameChanged)  # type: ignore[arg-type]

    def _get_preview_url(self) -> str:
        return str(self._preview_url)

    previewUrl = Property(str, _get_preview_url, notify=previewUrlChanged)  # type: ignore[arg-type]

    def _get_total(self) -> int:
        return int(self._total)

    total = Property(int, _get_total, notify=totalChanged)  # type: ignore[arg-type]

    def _get_completed(self) -> int:
        return int(self._completed)

    completed = Property(int, _get_completed, notify=completedChanged)  # type: ignore[arg-type]

    def _get_percent(self) -> int:
        return int(self._percent)

    percent = Property(int, _get_percent, notify=percentChanged)  # type: ignore[arg-type]

    def _get_output_width(self) -> int:
        return int(self._output_w)

    outputWidth = Property(int, _get_output_width, notify=outputSizeChanged)  # type: ignore[arg-type]

    def _get_output_height(self) -> int:
        return int(self._output_h)

    outputHeight = Property(int, _get_output_height, notify=outputSizeChanged)  # type: ignore[arg-type]

    def _get_circular(self) -> bool:
        return bool(self._circular)

    circular = Property(bool, _get_circular, notify=circularChanged)  # type: ignore[arg-type]

    def _get_fit_mode(self) -> str:
        return str(self._fit_mode)

    fitMode = Property(str, _get_fit_mode, notify=fitModeChanged)  # type: ignore[arg-type]

    def _get_uploaded_urls(self) -> list:
        return list(self._uploaded_urls)

    uploadedUrls = Property(list, _get_uploaded_urls, notify=uploadedUrlsChanged)  # type: ignore[arg-type]

    # ---- internal mutation helpers (called by backend) ----
    def _set_active(self, value: bool) -> None:
        v = bool(value)
        if v == self._active:
            return
        self._active = v
        self.activeChanged.emit(v)

    def _set_target(self, target: str, output_w: int, output_h: int, circular: bool, fit_mode: str) -> None:
        t = str(target)
        if t != self._target:
            self._target = t
            self.targetChanged.emit(t)
        ow, oh = int(output_w), int(output_h)
        if (ow, oh) != (self._output_w, self._output_h):
            self._output_w, self._output_h = ow, oh
            self.outputSizeChanged.emit()
        c = bool(circular)
        if c != self._circular:
            self._circular = c
            self.circularChanged.emit(c)
        f = str(fit_mode)
        if f != self._fit_mode:
            self._fit_mode = f
            self.fitModeChanged.emit(f)

    def _set_queue_state(self, value: str) -> None:
        v = str(value)
        if v == self._queue_state:
            return
        self._queue_state = v
        self.queueStateChanged.emit(v)

    def _set_current(self, index: int, name: str, preview_url: str) -> None:
        i = int(index)
        if i != self._current_index:
            self._current_index = i
            self.currentIndexChanged.emit(i)
        n = str(name)
        if n != self._current_name:
            self._current_name = n
            self.currentNameChanged.emit(n)
        u = str(preview_url)
        if u != self._preview_url:
            self._preview_url = u
            self.previewUrlChanged.emit(u)

    def _set_progress(self, completed: int, total: int) -> None:
        c = int(completed)
        t = int(total)
        if t != self._total:
            self._total = t
            self.totalChanged.emit(t)
        if c != self._completed:
            self._completed = c
            self.completedChanged.emit(c)
        p = int(max(0, min(100, (c * 100) // t if t > 0 else 0)))
        if p != self._percent:
            self._percent = p
            self.percentChanged.emit(p)

    def _set_uploaded_urls(self, urls: list[str]) -> None:
        new = [str(u) for u in urls]
        if new == self._uploaded_urls:
            return
        self._uploaded_urls = new
        self.uploadedUrlsChanged.emit(list(new))
