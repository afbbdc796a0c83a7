"""Crop transform engine.

Pure functions that turn a pan/zoom gesture made on a preview box into the
rectangle the whole source image must be drawn into on the output canvas.
The canvas clips anything outside its bounds, which produces the crop.

No I/O and no mutable state: identical inputs always give identical rects.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from crop_uploader.errors import InvalidDimensionsError, InvalidScaleError

MIN_SCALE = 0.1
MAX_SCALE = 10.0

# Range offered by the zoom slider; the engine itself accepts MIN_SCALE..MAX_SCALE.
UI_MIN_SCALE = 0.5
UI_MAX_SCALE = 3.0

DEFAULT_REFERENCE_SIZE = 500


class FitMode(str, Enum):
    """CSS object-fit rule the preview uses before the user's zoom."""

    CONTAIN = "contain"
    COVER = "cover"


@dataclass(frozen=True, slots=True)
class Size:
    width: float
    height: float


@dataclass(frozen=True, slots=True)
class PreviewContainer:
    """On-screen crop box, in preview pixels."""

    width: float
    height: float


@dataclass(frozen=True, slots=True)
class CropGesture:
    """User pan offset (preview pixels) and zoom factor."""

    x: float = 0.0
    y: float = 0.0
    scale: float = 1.0


@dataclass(frozen=True, slots=True)
class DrawRect:
    """Destination rect for the full source image on the output canvas."""

    dx: float
    dy: float
    dw: float
    dh: float

    @property
    def x2(self) -> float:
        return self.dx + self.dw

    @property
    def y2(self) -> float:
        return self.dy + self.dh


@dataclass(frozen=True, slots=True)
class CropGeometry:
    """All intermediate values of one transform, mostly for logging."""

    contained: Size
    scaled: Size
    center_x: float
    center_y: float
    final_x: float
    final_y: float
    preview_to_output_scale: float
    rect: DrawRect


def _check_dims(what: str, width: float, height: float) -> None:
    w, h = float(width), float(height)
    if not (math.isfinite(w) and math.isfinite(h)) or w <= 0 or h <= 0:
        raise InvalidDimensionsError(f"{what} dimensions must be positive, got {width}x{height}")


def _check_scale(scale: float) -> float:
    s = float(scale)
    if not math.isfinite(s) or s < MIN_SCALE or s > MAX_SCALE:
        raise InvalidScaleError(f"scale {scale} outside [{MIN_SCALE}, {MAX_SCALE}]")
    return s


def _check_pan(x: float, y: float) -> tuple[float, float]:
    px, py = float(x), float(y)
    if not (math.isfinite(px) and math.isfinite(py)):
        raise InvalidDimensionsError(f"pan offset must be finite, got ({x}, {y})")
    return px, py


def clamp_ui_scale(scale: float) -> float:
    """Clamp a slider value to the zoom range offered by the UI.

    NaN and infinities are rejected rather than clamped.
    """
    s = float(scale)
    if not math.isfinite(s):
        raise InvalidScaleError(f"scale must be finite, got {scale}")
    return max(UI_MIN_SCALE, min(UI_MAX_SCALE, s))


def contained_size(
    source_width: float,
    source_height: float,
    container: PreviewContainer,
    fit_mode: FitMode,
) -> Size:
    """Size the image takes inside the preview box under ``fit_mode``.

    contain: the whole image is inscribed, no overflow.
    cover: the box is filled, the overflowing dimension is clipped later.
    """
    _check_dims("source", source_width, source_height)
    _check_dims("container", container.width, container.height)

    cw, ch = float(container.width), float(container.height)
    image_aspect = float(source_width) / float(source_height)
    container_aspect = cw / ch
    wider = image_aspect > container_aspect

    if FitMode(fit_mode) is FitMode.COVER:
        if wider:
            return Size(ch * image_aspect, ch)
        return Size(cw, cw / image_aspect)

    if wider:
        return Size(cw, cw / image_aspect)
    return Size(ch * image_aspect, ch)


def preview_to_output_scale(container: PreviewContainer, output_width: float, output_height: float) -> float:
    _check_dims("container", container.width, container.height)
    _check_dims("output", output_width, output_height)
    return min(float(output_width) / float(container.width), float(output_height) / float(container.height))


def compute_geometry(
    source_width: float,
    source_height: float,
    container: PreviewContainer,
    fit_mode: FitMode,
    gesture: CropGesture,
    output_width: float,
    output_height: float,
) -> CropGeometry:
    """Run the full transform and keep every intermediate value."""
    scale = _check_scale(gesture.scale)
    pan_x, pan_y = _check_pan(gesture.x, gesture.y)
    contained = contained_size(source_width, source_height, container, fit_mode)
    k = preview_to_output_scale(container, output_width, output_height)

    scaled = Size(contained.width * scale, contained.height * scale)
    center_x = (float(container.width) - scaled.width) / 2
    center_y = (float(container.height) - scaled.height) / 2
    final_x = center_x + pan_x
    final_y = center_y + pan_y

    rect = DrawRect(final_x * k, final_y * k, scaled.width * k, scaled.height * k)
    return CropGeometry(
        contained=contained,
        scaled=scaled,
        center_x=center_x,
        center_y=center_y,
        final_x=final_x,
        final_y=final_y,
        preview_to_output_scale=k,
        rect=rect,
    )


def compute_draw_rect(
    source_width: float,
    source_height: float,
    container: PreviewContainer,
    fit_mode: FitMode,
    gesture: CropGesture,
    output_width: float,
    output_height: float,
) -> DrawRect:
    """Map a preview gesture to the output-canvas draw rect.

    The pan offset is not clamped: a large pan leaves empty margins on the
    canvas instead of being pulled back over the image.
    """
    return compute_geometry(
        source_width, source_height, container, fit_mode, gesture, output_width, output_height
    ).rect


def normalize_gesture(
    gesture: CropGesture,
    container_width: float,
    reference_size: int = DEFAULT_REFERENCE_SIZE,
) -> tuple[CropGesture, PreviewContainer]:
    """Rescale a gesture measured on a live square box to the reference preview.

    The crop dialog renders at whatever width the window allows; offsets are
    expressed against a fixed ``reference_size`` square so the same drag gives
    the same crop on every screen.
    """
    _check_dims("container", container_width, container_width)
    factor = float(reference_size) / float(container_width)
    normalized = CropGesture(
        x=float(gesture.x) * factor,
        y=float(gesture.y) * factor,
        scale=float(gesture.scale),
    )
    return normalized, PreviewContainer(float(reference_size), float(reference_size))


def source_crop_box(
    source_width: int,
    source_height: int,
    rect: DrawRect,
    output_width: int,
    output_height: int,
) -> tuple[int, int, int, int] | None:
    """Return the (left, top, width, height) source region visible on the canvas.

    Coordinates are in source pixels and clamped to the image. Returns None
    when the image was panned entirely off the canvas.
    """
    _check_dims("source", source_width, source_height)
    _check_dims("output", output_width, output_height)
    if rect.dw <= 0 or rect.dh <= 0:
        return None

    sx = float(source_width) / rect.dw
    sy = float(source_height) / rect.dh

    left = max(0.0, (0.0 - rect.dx) * sx)
    top = max(0.0, (0.0 - rect.dy) * sy)
    right = min(float(source_width), (float(output_width) - rect.dx) * sx)
    bottom = min(float(source_height), (float(output_height) - rect.dy) * sy)

    if right <= left or bottom <= top:
        return None

    lft = math.floor(left)
    tp = math.floor(top)
    return lft, tp, max(1, math.ceil(right) - lft), max(1, math.ceil(bottom) - tp)
