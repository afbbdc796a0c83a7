from __future__ import annotations

import json
import os
from typing import Any

from .logger import get_logger

_logger = get_logger("settings")

_RASTER_BACKENDS = ("pyvips", "pillow")


class SettingsManager:
    def __init__(self, settings_path: str):
        self.settings_path = settings_path
        self._settings: dict[str, Any] = {}
        self.load()

    DEFAULTS: dict[str, Any] = {
        "upload_endpoint": "http://localhost:5000/api/upload/single",
        "upload_timeout_s": 30.0,
        "upload_retries": 1,
        "max_size_mb": 5,
        "max_files": 10,
        "accepted_mime_types": ["image/jpeg", "image/png", "image/webp"],
        "jpeg_quality": 95,
        "preview_reference_size": 500,
        "raster_backend": "pyvips",
    }

    def load(self) -> None:
        try:
            if os.path.exists(self.settings_path):
                with open(self.settings_path, encoding="utf-8") as f:
                    data = json.load(f)
                    if isinstance(data, dict):
                        self._settings = data
                        _logger.debug("settings loaded: %s", self.settings_path)
                        return
        except (OSError, ValueError) as e:
            _logger.warning("settings load failed: %s", e)
        self._settings = {}

    def save(self) -> None:
        try:
            parent = os.path.dirname(self.settings_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(self.settings_path, "w", encoding="utf-8") as f:
                json.dump(self._settings, f, ensure_ascii=False, indent=2)
            _logger.debug("settings saved: %s", self.settings_path)
        except OSError as e:
            _logger.error("settings save failed: %s", e)

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._settings:
            return self._settings[key]
        if default is not None:
            return default
        return self.DEFAULTS.get(key)

    def has(self, key: str) -> bool:
        return key in self._settings

    def set(self, key: str, value: Any) -> None:
        self._settings[key] = value
        self.save()

    @property
    def data(self) -> dict[str, Any]:
        return self._settings

    @property
    def upload_endpoint(self) -> str:
        return str(self.get("upload_endpoint"))

    @property
    def upload_timeout_s(self) -> float:
        try:
            val = float(self.get("upload_timeout_s"))
        except (TypeError, ValueError):
            _logger.warning("invalid upload_timeout_s: %r", self.get("upload_timeout_s"))
            return float(self.DEFAULTS["upload_timeout_s"])
        return val if val > 0 else float(self.DEFAULTS["upload_timeout_s"])

    @property
    def upload_retries(self) -> int:
        try:
            return max(0, int(self.get("upload_retries")))
        except (TypeError, ValueError):
            return int(self.DEFAULTS["upload_retries"])

    @property
    def max_size_mb(self) -> float:
        try:
            return float(self.get("max_size_mb"))
        except (TypeError, ValueError):
            return float(self.DEFAULTS["max_size_mb"])

    @property
    def max_files(self) -> int:
        try:
            return max(1, int(self.get("max_files")))
        except (TypeError, ValueError):
            return int(self.DEFAULTS["max_files"])

    @property
    def accepted_mime_types(self) -> tuple[str, ...]:
        val = self.get("accepted_mime_types")
        if isinstance(val, (list, tuple)) and val:
            return tuple(str(v).lower() for v in val)
        return tuple(self.DEFAULTS["accepted_mime_types"])

    @property
    def jpeg_quality(self) -> int:
        try:
            q = int(self.get("jpeg_quality"))
        except (TypeError, ValueError):
            return int(self.DEFAULTS["jpeg_quality"])
        return max(1, min(100, q))

    @property
    def preview_reference_size(self) -> int:
        try:
            return max(1, int(self.get("preview_reference_size")))
        except (TypeError, ValueError):
            return int(self.DEFAULTS["preview_reference_size"])

    @property
    def raster_backend(self) -> str:
        val = str(self.get("raster_backend") or "").lower()
        if val not in _RASTER_BACKENDS:
            _logger.warning("unknown raster_backend %r, using pyvips", val)
            return "pyvips"
        return val
