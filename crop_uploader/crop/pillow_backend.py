"""Pillow implementation of the Rasterizer interface."""

from __future__ import annotations

import io
from typing import Any

import numpy as np
from PIL import Image, ImageChops, ImageOps, UnidentifiedImageError

from crop_uploader.errors import ImageDecodeError, RenderError
from crop_uploader.logger import get_logger

from .crop import DEFAULT_QUALITY, Rasterizer, SourceImage, _check_surface_size, resolve_output_mime

_logger = get_logger("pillow_backend")

_PIL_FORMATS = {"image/jpeg": "JPEG", "image/png": "PNG", "image/webp": "WEBP"}


def _circle_mask(width: int, height: int) -> Image.Image:
    """L mask, 255 where the pixel centre lies inside the centred circle."""
    radius = min(width, height) / 2
    ys, xs = np.ogrid[0:height, 0:width]
    ddx = xs + (0.5 - width / 2)
    ddy = ys + (0.5 - height / 2)
    inside = (ddx * ddx + ddy * ddy) <= radius * radius
    return Image.fromarray(np.where(inside, 255, 0).astype(np.uint8))


class PillowRasterizer(Rasterizer):
    """Draws with Image.transform(AFFINE) and clips through an ellipse mask."""

    def decode(self, data: bytes, mime_type: str = "") -> SourceImage:
        if not data:
            raise ImageDecodeError("Image data is empty")
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
            image = ImageOps.exif_transpose(image)
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            _logger.error("Failed to decode image (%s): %s", mime_type or "unknown", e)
            raise ImageDecodeError(f"Failed to load image: {e}") from e

        image = image.convert("RGBA")
        return SourceImage(image.width, image.height, image, mime_type or "")

    def render(self, source: SourceImage, rect: Any, width: int, height: int, circular: bool = False) -> Any:
        _check_surface_size(width, height)
        if rect.dw <= 0 or rect.dh <= 0:
            raise RenderError(f"Draw rect has no area: {rect}")
        w, h = int(width), int(height)

        sx = float(rect.dw) / float(source.width)
        sy = float(rect.dh) / float(source.height)
        # AFFINE data maps output pixels back to input pixels.
        inverse = (1.0 / sx, 0.0, -float(rect.dx) / sx, 0.0, 1.0 / sy, -float(rect.dy) / sy)

        canvas = Image.new("RGBA", (w, h), (0, 0, 0, 0))
        clip = _circle_mask(w, h) if circular else Image.new("L", (w, h), 255)

        try:
            drawn = source.data.transform(
                (w, h),
                Image.Transform.AFFINE,
                inverse,
                resample=Image.Resampling.BICUBIC,
                fillcolor=(0, 0, 0, 0),
            )
        except (ValueError, MemoryError) as e:
            _logger.error("Render failed for %dx%d rect=%s: %s", w, h, rect, e)
            raise RenderError(f"Failed to render crop: {e}") from e

        # Keep the drawn alpha but only where the clip allows it.
        alpha = ImageChops.multiply(drawn.getchannel("A"), clip)
        drawn.putalpha(alpha)
        canvas.alpha_composite(drawn)
        return canvas

    def encode(self, surface: Any, mime_type: str, quality: int = DEFAULT_QUALITY) -> bytes:
        mime = resolve_output_mime(mime_type)
        fmt = _PIL_FORMATS[mime]
        buf = io.BytesIO()
        try:
            if fmt == "JPEG":
                # JPEG has no alpha channel; transparent margins export as black.
                flat = Image.new("RGB", surface.size, (0, 0, 0))
                flat.paste(surface, mask=surface.getchannel("A"))
                flat.save(buf, format=fmt, quality=int(quality))
            elif fmt == "WEBP":
                surface.save(buf, format=fmt, quality=int(quality))
            else:
                surface.save(buf, format=fmt)
        except (OSError, ValueError) as e:
            _logger.error("Encode to %s failed: %s", mime, e)
            raise RenderError(f"Failed to encode {mime}: {e}") from e
        return buf.getvalue()
