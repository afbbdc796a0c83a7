from __future__ import annotations

import json

import pytest
import requests

from crop_uploader.errors import UploadError, UploadTimeoutError
from crop_uploader.upload.uploader import MSG_BAD_REQUEST, MSG_FAILED, MSG_TOO_LARGE, HttpUploader, UploadResult
from crop_uploader.validation import SelectedFile

FILE = SelectedFile("shop.png", "image/png", b"\x89PNG-bytes")


def _response(status: int, body=None, raw: bytes | None = None) -> requests.Response:
    r = requests.Response()
    r.status_code = status
    r._content = raw if raw is not None else json.dumps(body).encode()
    r.headers["Content-Type"] = "application/json"
    return r


class FakeSession:
    def __init__(self, outcome) -> None:
        self.outcome = outcome
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


def _uploader(outcome) -> tuple[HttpUploader, FakeSession]:
    session = FakeSession(outcome)
    return HttpUploader("http://upload.test/api/upload/single", timeout=12, session=session), session


def test_success_returns_url_and_key():
    up, session = _uploader(_response(200, {"success": True, "data": {"url": "https://cdn/x.png", "key": "shops/x"}}))

    result = up.upload(FILE, "shops", "logos")

    assert result == UploadResult("https://cdn/x.png", "shops/x")
    url, kwargs = session.calls[0]
    assert url == "http://upload.test/api/upload/single"
    assert kwargs["files"] == {"image": ("shop.png", b"\x89PNG-bytes", "image/png")}
    assert kwargs["data"] == {"folder": "shops", "subfolder": "logos"}
    assert kwargs["timeout"] == 12


def test_subfolder_is_omitted_when_empty():
    up, session = _uploader(_response(200, {"data": {"url": "https://cdn/a"}}))

    up.upload(FILE, "listings")

    assert session.calls[0][1]["data"] == {"folder": "listings"}


def test_413_maps_to_size_message():
    up, _ = _uploader(_response(413, {"message": "request entity too large"}))

    with pytest.raises(UploadError) as ei:
        up.upload(FILE, "listings")
    assert ei.value.message == MSG_TOO_LARGE
    assert ei.value.status_code == 413


def test_400_prefers_server_message():
    up, _ = _uploader(_response(400, {"success": False, "message": "Only images are allowed"}))

    with pytest.raises(UploadError, match="Only images are allowed"):
        up.upload(FILE, "listings")


def test_400_without_message():
    up, _ = _uploader(_response(400, raw=b"<html>bad</html>"))

    with pytest.raises(UploadError) as ei:
        up.upload(FILE, "listings")
    assert ei.value.message == MSG_BAD_REQUEST


def test_500_falls_back_to_generic_message():
    up, _ = _uploader(_response(500, {}))

    with pytest.raises(UploadError) as ei:
        up.upload(FILE, "listings")
    assert ei.value.message == MSG_FAILED
    assert ei.value.status_code == 500


def test_timeout_raises_timeout_error():
    up, _ = _uploader(requests.Timeout("read timed out"))

    with pytest.raises(UploadTimeoutError, match="12s"):
        up.upload(FILE, "listings")


def test_connection_error_is_upload_error_not_timeout():
    up, _ = _uploader(requests.ConnectionError("refused"))

    with pytest.raises(UploadError) as ei:
        up.upload(FILE, "listings")
    assert not isinstance(ei.value, UploadTimeoutError)
    assert ei.value.status_code is None


def test_ok_response_without_url_is_an_error():
    up, _ = _uploader(_response(200, {"success": False, "message": "Storage unavailable"}))

    with pytest.raises(UploadError, match="Storage unavailable"):
        up.upload(FILE, "listings")
