"""Raster crop backend.

Executes a DrawRect from the transform engine against real pixel data: the
whole source image is resampled into the rect on an output canvas of the
target size, optionally clipped to a circle, then encoded.

Drawing goes through the `Rasterizer` interface; `PyvipsRasterizer` is the
default backend. No Qt dependencies.
"""

from __future__ import annotations

import abc
import contextlib
from dataclasses import dataclass
from typing import Any

from crop_uploader.errors import ImageDecodeError, RenderError
from crop_uploader.logger import get_logger

from .specs import CropSpecification
from .transform import CropGesture, PreviewContainer, compute_geometry, source_crop_box

_logger = get_logger("crop")

try:
    import pyvips  # type: ignore
except Exception:
    pyvips = None  # type: ignore
    _logger.warning("pyvips is not available; PyvipsRasterizer will raise ImportError when used")

DEFAULT_MIME = "image/jpeg"
DEFAULT_QUALITY = 95
ENCODABLE_MIME_TYPES = ("image/jpeg", "image/png", "image/webp")
_MIME_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}
RGBA_BANDS = 4


def _get_pyvips_module() -> Any:
    """Return the pyvips module or raise ImportError if unavailable."""
    if pyvips is None:
        _logger.error("pyvips requested but not available")
        raise ImportError("pyvips is not available")
    return pyvips


def resolve_output_mime(mime_type: str | None) -> str:
    """Keep the source mime type when it can be encoded, else fall back to JPEG."""
    m = (mime_type or "").strip().lower()
    m = _MIME_ALIASES.get(m, m)
    return m if m in ENCODABLE_MIME_TYPES else DEFAULT_MIME


@dataclass(frozen=True)
class SourceImage:
    """Decoded source image; ``data`` is the backend's pixel handle."""

    width: int
    height: int
    data: Any
    mime_type: str = ""


@dataclass(frozen=True)
class CroppedImage:
    data: bytes
    mime_type: str
    width: int
    height: int


class Rasterizer(abc.ABC):
    """2D drawing backend used by RasterCropper."""

    @abc.abstractmethod
    def decode(self, data: bytes, mime_type: str = "") -> SourceImage:
        """Decode encoded bytes. Raises ImageDecodeError."""

    @abc.abstractmethod
    def render(self, source: SourceImage, rect: Any, width: int, height: int, circular: bool = False) -> Any:
        """Draw the full source into ``rect`` on a width x height RGBA surface.

        With ``circular`` only pixels inside the centred circle of radius
        min(width, height) / 2 survive; everything else is transparent.
        Raises RenderError.
        """

    @abc.abstractmethod
    def encode(self, surface: Any, mime_type: str, quality: int = DEFAULT_QUALITY) -> bytes:
        """Encode a rendered surface. Raises RenderError."""


def _check_surface_size(width: int, height: int) -> None:
    if int(width) <= 0 or int(height) <= 0:
        raise RenderError(f"Output surface must be non-empty, got {width}x{height}")


class PyvipsRasterizer(Rasterizer):
    """libvips backend: affine resample into the output area plus a distance mask."""

    def __init__(self) -> None:
        self._pyvips = _get_pyvips_module()
        # Configure pyvips caches to avoid memory growth
        with contextlib.suppress(Exception):
            self._pyvips.cache_set_max(0)
            self._pyvips.cache_set_max_mem(0)
            self._pyvips.cache_set_max_files(0)

    def decode(self, data: bytes, mime_type: str = "") -> SourceImage:
        if not data:
            raise ImageDecodeError("Image data is empty")
        pv = self._pyvips
        try:
            image = pv.Image.new_from_buffer(data, "")
            # Force the decode now so corrupt data fails here, not mid-render.
            image = image.copy_memory()
            # Browsers draw JPEGs upright, so honour the EXIF orientation too.
            image = image.autorot()
        except pv.Error as e:
            _logger.error("Failed to decode image (%s): %s", mime_type or "unknown", e)
            raise ImageDecodeError(f"Failed to load image: {e}") from e

        try:
            image = self._to_rgba(image)
        except pv.Error as e:
            raise ImageDecodeError(f"Unsupported image format: {e}") from e
        return SourceImage(image.width, image.height, image, mime_type or "")

    def _to_rgba(self, image: Any) -> Any:
        with contextlib.suppress(self._pyvips.Error):
            image = image.colourspace("srgb")
        if image.format != "uchar":
            image = image.cast("uchar")
        if not image.hasalpha():
            image = image.bandjoin(255)
        if image.bands > RGBA_BANDS:
            image = image.extract_band(0, n=RGBA_BANDS)
        return image

    def render(self, source: SourceImage, rect: Any, width: int, height: int, circular: bool = False) -> Any:
        _check_surface_size(width, height)
        if rect.dw <= 0 or rect.dh <= 0:
            raise RenderError(f"Draw rect has no area: {rect}")
        pv = self._pyvips
        w, h = int(width), int(height)
        sx = float(rect.dw) / float(source.width)
        sy = float(rect.dh) / float(source.height)
        try:
            image = source.data.premultiply()
            out = image.affine(
                [sx, 0, 0, sy],
                oarea=[0, 0, w, h],
                # libvips maps pixel indices, not pixel areas; shift so pixel
                # centres land where a canvas drawImage would put them.
                odx=float(rect.dx) + (sx - 1) / 2,
                ody=float(rect.dy) + (sy - 1) / 2,
                interpolate=pv.Interpolate.new("bicubic"),
                extend="background",
                background=[0, 0, 0, 0],
            )
            out = out.unpremultiply().cast("uchar")
            if circular:
                out = self._clip_circle(out, w, h)
        except pv.Error as e:
            _logger.error("Render failed for %dx%d rect=%s: %s", w, h, rect, e)
            raise RenderError(f"Failed to render crop: {e}") from e
        return out

    def _clip_circle(self, image: Any, width: int, height: int) -> Any:
        radius = min(width, height) / 2
        xyz = self._pyvips.Image.xyz(width, height)
        # Sample at pixel centres.
        ddx = xyz[0] + (0.5 - width / 2)
        ddy = xyz[1] + (0.5 - height / 2)
        inside = (ddx * ddx + ddy * ddy) <= radius * radius
        return inside.ifthenelse(image, [0, 0, 0, 0])

    def encode(self, surface: Any, mime_type: str, quality: int = DEFAULT_QUALITY) -> bytes:
        mime = resolve_output_mime(mime_type)
        try:
            if mime == "image/png":
                return surface.write_to_buffer(".png")
            if mime == "image/webp":
                return surface.write_to_buffer(".webp", Q=int(quality))
            # JPEG has no alpha channel; transparent margins export as black.
            flat = surface.flatten(background=[0, 0, 0]).cast("uchar")
            return flat.write_to_buffer(".jpg", Q=int(quality))
        except self._pyvips.Error as e:
            _logger.error("Encode to %s failed: %s", mime, e)
            raise RenderError(f"Failed to encode {mime}: {e}") from e


class RasterCropper:
    """Decode → transform → render → encode for one file."""

    def __init__(self, rasterizer: Rasterizer | None = None, quality: int = DEFAULT_QUALITY) -> None:
        self._rasterizer = rasterizer if rasterizer is not None else PyvipsRasterizer()
        self._quality = int(quality)

    @property
    def rasterizer(self) -> Rasterizer:
        return self._rasterizer

    def crop(
        self,
        data: bytes,
        mime_type: str,
        container: PreviewContainer,
        gesture: CropGesture,
        spec: CropSpecification,
    ) -> CroppedImage:
        """Crop encoded image bytes according to the user's gesture.

        Raises:
            ImageDecodeError: source unreadable.
            InvalidDimensionsError / InvalidScaleError: bad geometry input.
            RenderError: surface could not be drawn or encoded.
        """
        source = self._rasterizer.decode(data, mime_type)
        geometry = compute_geometry(
            source.width,
            source.height,
            container,
            spec.fit_mode,
            gesture,
            spec.output_width,
            spec.output_height,
        )
        rect = geometry.rect
        _logger.debug(
            "crop: source=%dx%d container=%sx%s fit=%s gesture=%s contained=%.2fx%.2f "
            "scaled=%.2fx%.2f k=%.4f rect=(%.2f, %.2f, %.2f, %.2f) visible=%s",
            source.width,
            source.height,
            container.width,
            container.height,
            spec.fit_mode.value,
            gesture,
            geometry.contained.width,
            geometry.contained.height,
            geometry.scaled.width,
            geometry.scaled.height,
            geometry.preview_to_output_scale,
            rect.dx,
            rect.dy,
            rect.dw,
            rect.dh,
            source_crop_box(source.width, source.height, rect, spec.output_width, spec.output_height),
        )

        surface = self._rasterizer.render(source, rect, spec.output_width, spec.output_height, spec.circular)
        mime = resolve_output_mime(mime_type)
        encoded = self._rasterizer.encode(surface, mime, self._quality)
        return CroppedImage(encoded, mime, spec.output_width, spec.output_height)
