"""Uploader collaborator and the dispatchers that run it."""

from .dispatcher import InlineUploadDispatcher, UploadDispatcher, UploadJob, run_upload
from .uploader import HttpUploader, Uploader, UploadResult

__all__ = [
    "HttpUploader",
    "InlineUploadDispatcher",
    "UploadDispatcher",
    "UploadJob",
    "UploadResult",
    "Uploader",
    "run_upload",
]
