"""Exception hierarchy for the crop/upload pipeline."""

from __future__ import annotations


class CropUploaderError(Exception):
    """Base class for all errors raised by crop_uploader."""


# --- validation ---


class ValidationError(CropUploaderError):
    """Raised when a selected file is rejected before it enters the queue."""

    def __init__(self, message: str, file_name: str | None = None) -> None:
        super().__init__(message)
        self.file_name = file_name


# --- crop ---


class CropError(CropUploaderError):
    """Base class for errors raised while computing or rendering a crop."""


class InvalidDimensionsError(CropError):
    """Raised when a source, container or output size is zero, negative or not finite."""


class InvalidScaleError(CropError):
    """Raised when the zoom factor is outside the range the engine accepts."""


class ImageDecodeError(CropError):
    """Raised when the source bytes cannot be decoded into an image."""


class RenderError(CropError):
    """Raised when the output surface cannot be created, drawn or encoded."""


# --- upload ---


class UploadError(CropUploaderError):
    """Raised when the remote upload fails.

    ``status_code`` carries the HTTP status when one was received.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class UploadTimeoutError(UploadError):
    """Raised when the upload did not complete within the configured timeout."""


# --- queue ---


class QueueStateError(CropUploaderError):
    """Raised when a queue command is not valid in the controller's current state."""
