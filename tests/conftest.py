"""Pytest configuration.

The upload queue, dispatcher and backend are QObjects that talk through Qt
signals. Cross-thread signal delivery needs a Qt application object, so one
`QCoreApplication` is created for the whole session as early as possible and
shut down cleanly at the end.
"""

from __future__ import annotations

import io
from typing import Any

import pytest

_APP: Any | None = None


def pytest_configure(config) -> None:  # noqa: ARG001
    """Ensure a QCoreApplication exists before collecting/running tests."""

    # Import lazily so non-Qt environments can still import this conftest.
    try:
        from PySide6.QtCore import QCoreApplication
    except ImportError:
        return

    global _APP

    app = QCoreApplication.instance()
    # Keep a strong ref so it isn't GC'd mid-session.
    _APP = app if app is not None else QCoreApplication([])


def pytest_sessionfinish(session, exitstatus) -> None:  # noqa: ARG001
    """Attempt a clean Qt shutdown to avoid lingering threads at interpreter exit."""

    try:
        from PySide6.QtCore import QCoreApplication
    except ImportError:
        return

    app = QCoreApplication.instance()
    if app is None:
        return

    app.quit()
    app.processEvents()


@pytest.fixture
def make_image_bytes():
    """Build small encoded test images with Pillow: make_image_bytes(w, h, fmt, color)."""
    from PIL import Image

    def _make(width: int, height: int, fmt: str = "PNG", color=(200, 40, 40, 255)) -> bytes:
        mode = "RGB" if fmt.upper() == "JPEG" else "RGBA"
        fill = color[:3] if mode == "RGB" else color
        img = Image.new(mode, (width, height), fill)
        buf = io.BytesIO()
        img.save(buf, format=fmt)
        return buf.getvalue()

    return _make
