from __future__ import annotations

import io

import pytest
from PIL import Image

from crop_uploader.app.backend import UploadBackend
from crop_uploader.crop.pillow_backend import PillowRasterizer
from crop_uploader.errors import UploadError
from crop_uploader.settings_manager import SettingsManager
from crop_uploader.upload.dispatcher import InlineUploadDispatcher
from crop_uploader.upload.uploader import UploadResult


class RecordingUploader:
    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.uploads = []

    def upload(self, file, folder, subfolder=""):
        self.uploads.append((file.name, file.mime_type, folder, subfolder))
        if file.name in self.fail_on:
            raise UploadError("Failed to upload image", 500)
        return UploadResult(f"https://cdn/{folder}/{file.name}", f"{folder}/{file.name}")


def _write_png(path, size=(60, 40)) -> str:
    buf = io.BytesIO()
    Image.new("RGB", size, (90, 90, 200)).save(buf, format="PNG")
    path.write_bytes(buf.getvalue())
    return str(path)


@pytest.fixture
def make_backend(tmp_path):
    def _make(uploader=None):
        uploader = uploader or RecordingUploader()
        backend = UploadBackend(
            settings=SettingsManager(str(tmp_path / "settings.json")),
            uploader=uploader,
            dispatcher=InlineUploadDispatcher(uploader),
            rasterizer=PillowRasterizer(),
        )
        events, tasks = [], []
        backend.event_.connect(events.append)
        backend.taskEvent.connect(tasks.append)
        return backend, uploader, events, tasks

    return _make


def test_listing_flow_uploads_every_file(tmp_path, make_backend):
    backend, uploader, events, tasks = make_backend()
    paths = [_write_png(tmp_path / "a.png"), _write_png(tmp_path / "b.png")]

    backend.dispatch("selectFiles", {"target": "listing", "paths": paths})
    state = backend.upload
    assert state.active is True
    assert state.currentName == "a.png"
    assert state.previewUrl.startswith("data:image/png;base64,")

    backend.dispatch("applyCrop", {"x": 0, "y": 0, "scale": 1, "containerWidth": 250})
    assert state.currentName == "b.png"
    backend.dispatch("applyCrop", {"x": 10, "y": -5, "scale": 1.5, "containerWidth": 250})

    assert [u[0] for u in uploader.uploads] == ["a.png", "b.png"]
    assert all(u[1] == "image/png" and u[2] == "listings" for u in uploader.uploads)
    assert state.uploadedUrls == ["https://cdn/listings/a.png", "https://cdn/listings/b.png"]
    assert state.queueState == "completed"
    assert state.active is False
    assert state.percent == 100
    assert events[-1]["message"] == "2 images uploaded successfully!"
    assert tasks[0]["state"] == "started"
    assert tasks[-1]["state"] == "finished"
    assert tasks[-1]["snapshot"]["completed"] == 2


def test_target_switches_output_geometry(tmp_path, make_backend):
    backend, uploader, events, _ = make_backend()

    backend.dispatch("selectFiles", {"target": "logo", "paths": [_write_png(tmp_path / "logo.png")]})
    state = backend.upload
    assert (state.outputWidth, state.outputHeight, state.circular, state.fitMode) == (500, 500, True, "cover")

    backend.dispatch("applyCrop", {"x": 0, "y": 0, "scale": 1, "previewWidth": 300, "previewHeight": 300})

    assert uploader.uploads == [("logo.png", "image/png", "shops", "logos")]
    assert events[-1]["message"] == "Image uploaded successfully!"


def test_invalid_files_are_reported_and_skipped(tmp_path, make_backend):
    backend, uploader, events, _ = make_backend()
    gif = tmp_path / "anim.gif"
    gif.write_bytes(b"GIF89a")
    good = _write_png(tmp_path / "ok.png")

    backend.dispatch("selectFiles", {"target": "listing", "paths": [str(gif), good]})

    errors = [e["message"] for e in events if e["level"] == "error"]
    assert errors == ["Invalid file type: anim.gif. Accepted: JPG, PNG, WEBP"]
    assert backend.upload.total == 1
    assert backend.upload.currentName == "ok.png"


def test_single_file_target_truncates_selection(tmp_path, make_backend):
    backend, _, events, _ = make_backend()
    paths = [_write_png(tmp_path / "1.png"), _write_png(tmp_path / "2.png")]

    backend.dispatch("selectFiles", {"target": "avatar", "paths": paths})

    warnings = [e["message"] for e in events if e["level"] == "warning"]
    assert warnings == ["Maximum 1 file allowed. You selected 2."]
    assert backend.upload.total == 1


def test_select_while_busy_is_rejected(tmp_path, make_backend):
    backend, _, events, _ = make_backend()
    backend.dispatch("selectFiles", {"target": "listing", "paths": [_write_png(tmp_path / "a.png")]})

    backend.dispatch("selectFiles", {"target": "listing", "paths": [_write_png(tmp_path / "b.png")]})

    assert events[-1] == {
        "type": "event",
        "name": "warning",
        "level": "warning",
        "message": "An upload is already in progress.",
    }
    assert backend.upload.currentName == "a.png"


def test_upload_failure_abandons_and_next_selection_recovers(tmp_path, make_backend):
    backend, uploader, events, tasks = make_backend(RecordingUploader(fail_on={"b.png"}))
    paths = [_write_png(tmp_path / n) for n in ("a.png", "b.png", "c.png")]

    backend.dispatch("selectFiles", {"target": "listing", "paths": paths})
    backend.dispatch("applyCrop", {"containerWidth": 500})
    backend.dispatch("applyCrop", {"containerWidth": 500})

    assert [u[0] for u in uploader.uploads] == ["a.png", "b.png"]
    assert backend.upload.queueState == "partiallyFailed"
    assert backend.upload.uploadedUrls == ["https://cdn/listings/a.png"]
    assert tasks[-1]["state"] == "error"
    assert [t["state"] for t in tasks[-1]["snapshot"]["tasks"]] == ["done", "failed", "pending"]
    assert any(e["level"] == "error" and e["message"] == "Failed to upload image" for e in events)

    backend.dispatch("selectFiles", {"target": "listing", "paths": [paths[2]]})
    assert backend.upload.queueState == "active"
    assert backend.upload.currentName == "c.png"


def test_cancel_returns_to_idle(tmp_path, make_backend):
    backend, uploader, _, tasks = make_backend()
    backend.dispatch("selectFiles", {"target": "listing", "paths": [_write_png(tmp_path / "a.png")]})

    backend.dispatch("cancelUpload", None)

    assert backend.upload.queueState == "idle"
    assert backend.upload.currentIndex == -1
    assert tasks[-1]["state"] == "canceled"
    assert uploader.uploads == []


def test_apply_crop_without_active_file_warns(make_backend):
    backend, _, events, _ = make_backend()

    backend.dispatch("applyCrop", {"x": 1})

    assert events[-1]["level"] == "warning"


def test_unreadable_path_is_reported(tmp_path, make_backend):
    backend, _, events, _ = make_backend()

    backend.dispatch("selectFiles", {"target": "listing", "paths": [str(tmp_path / "missing.png")]})

    assert events[-1] == {
        "type": "event",
        "name": "error",
        "level": "error",
        "message": "Failed to read file: missing.png",
    }


def test_unknown_and_empty_commands(make_backend):
    backend, _, events, _ = make_backend()

    backend.dispatch("frobnicate", {})
    backend.dispatch("", None)

    assert events[0]["message"] == "Unknown cmd: frobnicate"
    assert events[1]["level"] == "error"


def test_unknown_target(tmp_path, make_backend):
    backend, _, events, _ = make_backend()

    backend.dispatch("selectFiles", {"target": "poster", "paths": [_write_png(tmp_path / "a.png")]})

    assert "Unknown crop target" in events[-1]["message"]
    assert backend.upload.queueState == "idle"


@pytest.mark.parametrize(
    "payload",
    [
        {"containerWidth": -300},
        {"x": "left", "previewWidth": 500, "previewHeight": 500},
        {"x": None, "previewWidth": 500, "previewHeight": 500},
        {"scale": float("nan"), "previewWidth": 500, "previewHeight": 500},
        {"y": float("inf"), "previewWidth": 500, "previewHeight": 500},
        {"previewWidth": 0, "previewHeight": 500},
    ],
)
def test_unusable_crop_input_fails_the_file(tmp_path, make_backend, payload):
    backend, uploader, events, tasks = make_backend()
    backend.dispatch("selectFiles", {"target": "listing", "paths": [_write_png(tmp_path / "a.png")]})

    backend.dispatch("applyCrop", payload)

    assert uploader.uploads == []
    assert backend.upload.queueState == "partiallyFailed"
    assert [t["state"] for t in tasks[-1]["snapshot"]["tasks"]] == ["failed"]
    errors = [e["message"] for e in events if e["level"] == "error"]
    assert len(errors) == 1
    assert errors[0].startswith("a.png: ")


def test_unusable_crop_input_continues_with_next_file(tmp_path, make_backend):
    backend, uploader, _, _ = make_backend()
    paths = [_write_png(tmp_path / "a.png"), _write_png(tmp_path / "b.png")]
    backend.dispatch("selectFiles", {"target": "listing", "paths": paths})

    backend.dispatch("applyCrop", {"containerWidth": -300})
    assert backend.upload.currentName == "b.png"
    backend.dispatch("applyCrop", {"containerWidth": 300})

    assert [u[0] for u in uploader.uploads] == ["b.png"]
    assert backend.upload.uploadedUrls == ["https://cdn/listings/b.png"]
