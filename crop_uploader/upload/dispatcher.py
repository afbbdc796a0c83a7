"""Upload dispatch.

Runs Uploader calls off the GUI thread and reports back through a Qt signal.
One worker only: uploads never overlap. Each call is retried once when it
times out.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass

from PySide6.QtCore import QObject, Signal

from crop_uploader.errors import UploadError, UploadTimeoutError
from crop_uploader.logger import get_logger
from crop_uploader.validation import SelectedFile

from .uploader import MSG_FAILED, Uploader, UploadResult

_logger = get_logger("dispatcher")


@dataclass(frozen=True)
class UploadJob:
    """One upload request; ``ticket`` lets the controller drop stale results."""

    ticket: int
    file: SelectedFile
    folder: str
    subfolder: str = ""


def run_upload(uploader: Uploader, job: UploadJob, retries: int = 1) -> UploadResult:
    """Call the uploader, retrying timeouts up to ``retries`` extra times."""
    attempts = 1 + max(0, int(retries))
    for attempt in range(1, attempts + 1):
        try:
            return uploader.upload(job.file, job.folder, job.subfolder)
        except UploadTimeoutError as e:
            if attempt >= attempts:
                _logger.error("upload timed out: ticket=%s name=%s attempts=%d", job.ticket, job.file.name, attempt)
                raise
            _logger.warning(
                "upload timed out, retrying: ticket=%s name=%s attempt=%d/%d (%s)",
                job.ticket,
                job.file.name,
                attempt,
                attempts,
                e,
            )
    raise AssertionError("unreachable")


def _as_upload_error(exc: BaseException) -> UploadError:
    if isinstance(exc, UploadError):
        return exc
    return UploadError(f"{MSG_FAILED}: {exc}")


class UploadDispatcher(QObject):
    """Single-worker thread pool; results arrive via `upload_finished`."""

    upload_finished = Signal(int, object, object)  # ticket, UploadResult|None, UploadError|None

    def __init__(self, uploader: Uploader, retries: int = 1, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._uploader = uploader
        self._retries = int(retries)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="upload")
        _logger.debug("UploadDispatcher init: retries=%d", self._retries)

    def submit(self, job: UploadJob) -> None:
        _logger.debug("submit upload: ticket=%s name=%s", job.ticket, job.file.name)
        future = self._executor.submit(run_upload, self._uploader, job, self._retries)
        future.add_done_callback(lambda f, ticket=job.ticket: self._on_done(ticket, f))

    def _on_done(self, ticket: int, future: Future) -> None:
        if future.cancelled():
            _logger.debug("upload future cancelled: ticket=%s", ticket)
            return
        exc = future.exception()
        if exc is not None:
            if not isinstance(exc, UploadError):
                _logger.error("uploader raised unexpected error: ticket=%s", ticket, exc_info=exc)
            self.upload_finished.emit(ticket, None, _as_upload_error(exc))
            return
        self.upload_finished.emit(ticket, future.result(), None)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


class InlineUploadDispatcher(QObject):
    """Runs the upload synchronously inside `submit` (scripts and tests)."""

    upload_finished = Signal(int, object, object)

    def __init__(self, uploader: Uploader, retries: int = 1, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._uploader = uploader
        self._retries = int(retries)

    def submit(self, job: UploadJob) -> None:
        try:
            result = run_upload(self._uploader, job, self._retries)
        except UploadError as e:
            self.upload_finished.emit(job.ticket, None, e)
            return
        except Exception as e:
            _logger.error("uploader raised unexpected error: ticket=%s", job.ticket, exc_info=True)
            self.upload_finished.emit(job.ticket, None, _as_upload_error(e))
            return
        self.upload_finished.emit(job.ticket, result, None)

    def shutdown(self) -> None:
        return None
