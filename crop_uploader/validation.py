"""Selected-file validation (type, size, count) and preview helpers.

Keep this module free of Qt dependencies.
"""

from __future__ import annotations

import base64
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ValidationError
from .logger import get_logger

_logger = get_logger("validation")

DEFAULT_MAX_SIZE_MB = 5.0
DEFAULT_ACCEPTED_MIME_TYPES = ("image/jpeg", "image/png", "image/webp")
DEFAULT_MAX_COUNT = 10
MAX_DISPLAYED_ERRORS = 3

_EXT_LABELS = {
    "image/jpeg": "JPG",
    "image/jpg": "JPG",
    "image/png": "PNG",
    "image/webp": "WEBP",
    "image/gif": "GIF",
}


@dataclass(frozen=True)
class SelectedFile:
    """A file picked by the user, held in memory."""

    name: str
    mime_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: str | Path, mime_type: str | None = None) -> SelectedFile:
        p = Path(path)
        mime = mime_type or mimetypes.guess_type(p.name)[0] or "application/octet-stream"
        return cls(p.name, mime, p.read_bytes())


@dataclass(frozen=True)
class ValidationOptions:
    max_size_mb: float = DEFAULT_MAX_SIZE_MB
    accepted_mime_types: tuple[str, ...] = DEFAULT_ACCEPTED_MIME_TYPES
    max_count: int = DEFAULT_MAX_COUNT


@dataclass(frozen=True)
class ValidationResult:
    valid_files: list[SelectedFile]
    errors: list[str]
    count_errors: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors and bool(self.valid_files)


def bytes_to_mb(size: int) -> float:
    return size / 1024 / 1024


def mime_label(mime_type: str) -> str:
    m = (mime_type or "").lower()
    if m in _EXT_LABELS:
        return _EXT_LABELS[m]
    _, _, sub = m.partition("/")
    return sub.upper() if sub else "Unknown"


def format_accepted_types(types: tuple[str, ...] | list[str]) -> str:
    return ", ".join(mime_label(t) for t in types)


def check_file(file: SelectedFile, options: ValidationOptions | None = None) -> list[ValidationError]:
    """Return every problem with ``file`` (type and size); empty when valid."""
    opts = options or ValidationOptions()
    problems: list[ValidationError] = []

    accepted = {t.lower() for t in opts.accepted_mime_types}
    if (file.mime_type or "").lower() not in accepted:
        problems.append(
            ValidationError(
                f"Invalid file type: {file.name}. Accepted: {format_accepted_types(opts.accepted_mime_types)}",
                file.name,
            )
        )

    size_mb = bytes_to_mb(file.size)
    if size_mb > opts.max_size_mb:
        problems.append(
            ValidationError(
                f"File too large: {file.name}. Size: {size_mb:.2f}MB. Max: {opts.max_size_mb:g}MB",
                file.name,
            )
        )
    return problems


class FileValidator:
    """Filters a selection down to the files that may enter the upload queue."""

    def __init__(self, options: ValidationOptions | None = None) -> None:
        self.options = options or ValidationOptions()

    def validate(self, files: list[SelectedFile], options: ValidationOptions | None = None) -> ValidationResult:
        opts = options or self.options
        selected = list(files)
        errors: list[str] = []
        count_errors: list[str] = []

        if len(selected) > opts.max_count:
            msg = (
                f"Maximum {opts.max_count} file{'s' if opts.max_count > 1 else ''} allowed. "
                f"You selected {len(selected)}."
            )
            count_errors.append(msg)
            errors.append(msg)
            selected = selected[: opts.max_count]

        valid_files: list[SelectedFile] = []
        for f in selected:
            problems = check_file(f, opts)
            if problems:
                errors.extend(str(p) for p in problems)
            else:
                valid_files.append(f)

        _logger.debug(
            "validate: selected=%d valid=%d errors=%d", len(files), len(valid_files), len(errors)
        )
        return ValidationResult(valid_files, errors, count_errors)


def partition_messages(
    result: ValidationResult, limit: int = MAX_DISPLAYED_ERRORS
) -> tuple[list[str], list[str]]:
    """Split validation output into (warnings, errors) for display.

    Count overflow is a warning. Per-file errors are capped at ``limit`` plus a
    summary line, and a final error is added when nothing survived.
    """
    warnings = list(result.count_errors)
    file_errors = [e for e in result.errors if e not in result.count_errors]

    shown = file_errors[:limit]
    if len(file_errors) > limit:
        shown.append(f"And {len(file_errors) - limit} more file(s) have issues.")

    if not result.valid_files and result.errors:
        shown.append("None of the selected files are valid. Please check file types and sizes.")
    return warnings, shown


def preview_data_url(file: SelectedFile) -> str:
    """Encode a file as a data: URL the crop preview can display."""
    payload = base64.b64encode(file.data).decode("ascii")
    return f"data:{file.mime_type};base64,{payload}"
