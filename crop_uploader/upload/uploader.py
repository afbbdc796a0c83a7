"""Uploader collaborator: protocol plus an HTTP implementation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import requests

from crop_uploader.errors import UploadError, UploadTimeoutError
from crop_uploader.logger import get_logger
from crop_uploader.validation import SelectedFile

_logger = get_logger("uploader")

HTTP_BAD_REQUEST = 400
HTTP_PAYLOAD_TOO_LARGE = 413

MSG_TOO_LARGE = (
    "File is too large. Maximum file size is 5MB per image. Please compress your image and try again."
)
MSG_BAD_REQUEST = "Invalid file. Please check the file type and size."
MSG_FAILED = "Failed to upload image"


@dataclass(frozen=True)
class UploadResult:
    url: str
    key: str = ""


class Uploader(Protocol):
    def upload(self, file: SelectedFile, folder: str, subfolder: str = "") -> UploadResult:
        """Store ``file`` remotely. Raises UploadError on failure."""
        ...


def _server_message(response: requests.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        msg = body.get("message")
        if isinstance(msg, str) and msg:
            return msg
    return None


def error_for_response(response: requests.Response) -> UploadError:
    """Map an HTTP error response to a user-facing UploadError."""
    status = int(response.status_code)
    server_msg = _server_message(response)
    if status == HTTP_PAYLOAD_TOO_LARGE:
        message = MSG_TOO_LARGE
    elif status == HTTP_BAD_REQUEST:
        message = server_msg or MSG_BAD_REQUEST
    else:
        message = server_msg or MSG_FAILED
    return UploadError(message, status)


class HttpUploader:
    """Multipart POST to the upload endpoint.

    Expects ``{"success": true, "data": {"url": ..., "key": ...}}`` back.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 30.0,
        session: requests.Session | None = None,
        field_name: str = "image",
    ) -> None:
        self.endpoint = endpoint
        self.timeout = float(timeout)
        self.field_name = field_name
        self._session = session or requests.Session()

    def upload(self, file: SelectedFile, folder: str, subfolder: str = "") -> UploadResult:
        files = {self.field_name: (file.name, file.data, file.mime_type)}
        form = {"folder": folder}
        if subfolder:
            form["subfolder"] = subfolder

        _logger.debug("POST %s name=%s size=%d folder=%s/%s", self.endpoint, file.name, file.size, folder, subfolder)
        try:
            response = self._session.post(self.endpoint, files=files, data=form, timeout=self.timeout)
        except requests.Timeout as e:
            raise UploadTimeoutError(f"Upload timed out after {self.timeout:g}s") from e
        except requests.ConnectionError as e:
            raise UploadError(f"Could not reach upload server: {e}") from e
        except requests.RequestException as e:
            raise UploadError(f"{MSG_FAILED}: {e}") from e

        if not response.ok:
            err = error_for_response(response)
            _logger.warning("upload rejected: status=%s message=%s", err.status_code, err.message)
            raise err

        return self._parse_result(response)

    def _parse_result(self, response: requests.Response) -> UploadResult:
        try:
            body: Any = response.json()
        except ValueError as e:
            raise UploadError("Upload server returned an invalid response", response.status_code) from e

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict) or not data.get("url"):
            raise UploadError(_server_message(response) or "Upload server returned no URL", response.status_code)
        return UploadResult(str(data["url"]), str(data.get("key") or ""))
