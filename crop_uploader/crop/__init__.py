"""Crop package public API.

Expose the pure transform engine, the target presets and the raster cropper
as `crop_uploader.crop`.

Important: keep this module lightweight.
Do NOT import Qt modules here. The Pillow backend is imported on demand:
    - `from crop_uploader.crop.pillow_backend import PillowRasterizer`
"""

from .crop import (
    CroppedImage,
    PyvipsRasterizer,
    RasterCropper,
    Rasterizer,
    SourceImage,
    resolve_output_mime,
)
from .specs import AVATAR, LISTING_IMAGE, SHOP_BANNER, SHOP_LOGO, CropSpecification, get_spec
from .transform import (
    CropGeometry,
    CropGesture,
    DrawRect,
    FitMode,
    PreviewContainer,
    compute_draw_rect,
    compute_geometry,
    contained_size,
    normalize_gesture,
    source_crop_box,
)

__all__ = [
    "AVATAR",
    "LISTING_IMAGE",
    "SHOP_BANNER",
    "SHOP_LOGO",
    "CropGeometry",
    "CropGesture",
    "CropSpecification",
    "CroppedImage",
    "DrawRect",
    "FitMode",
    "PreviewContainer",
    "PyvipsRasterizer",
    "RasterCropper",
    "Rasterizer",
    "SourceImage",
    "compute_draw_rect",
    "compute_geometry",
    "contained_size",
    "get_spec",
    "normalize_gesture",
    "resolve_output_mime",
    "source_crop_box",
]
