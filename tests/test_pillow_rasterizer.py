from __future__ import annotations

import io

import numpy as np
import pytest
from PIL import Image

from crop_uploader.crop.crop import RasterCropper
from crop_uploader.crop.pillow_backend import PillowRasterizer
from crop_uploader.crop.specs import AVATAR, LISTING_IMAGE, SHOP_BANNER
from crop_uploader.crop.transform import CropGesture, DrawRect, PreviewContainer
from crop_uploader.errors import ImageDecodeError, InvalidScaleError, RenderError


def _pixels(data: bytes) -> np.ndarray:
    return np.asarray(Image.open(io.BytesIO(data)))


def test_circular_png_has_transparent_corners(make_image_bytes):
    cropper = RasterCropper(PillowRasterizer())
    src = make_image_bytes(100, 100, "PNG")

    out = cropper.crop(src, "image/png", PreviewContainer(240, 240), CropGesture(), AVATAR)

    assert out.mime_type == "image/png"
    assert (out.width, out.height) == (240, 240)
    px = _pixels(out.data)
    assert px.shape == (240, 240, 4)
    for y, x in ((0, 0), (0, 239), (239, 0), (239, 239), (20, 20)):
        assert px[y, x, 3] == 0
    assert px[120, 120, 3] == 255
    assert abs(int(px[120, 120, 0]) - 200) <= 2


def test_circular_clip_ignores_pan_and_zoom(make_image_bytes):
    cropper = RasterCropper(PillowRasterizer())
    src = make_image_bytes(300, 200, "PNG")

    out = cropper.crop(src, "image/png", PreviewContainer(240, 240), CropGesture(x=30, y=-15, scale=2.5), AVATAR)

    px = _pixels(out.data)
    assert px[0, 0, 3] == 0
    assert px[239, 239, 3] == 0
    assert px[120, 120, 3] == 255


def test_contain_margins_become_black_in_jpeg(make_image_bytes):
    cropper = RasterCropper(PillowRasterizer())
    src = make_image_bytes(100, 200, "JPEG")

    out = cropper.crop(src, "image/jpeg", PreviewContainer(500, 500), CropGesture(), LISTING_IMAGE)

    assert out.mime_type == "image/jpeg"
    px = _pixels(out.data)
    assert px.shape == (1200, 1200, 3)
    # Draw rect is x=300..900; outside it nothing was drawn.
    assert px[600, 50].max() <= 8
    assert px[600, 1150].max() <= 8
    assert abs(int(px[600, 600, 0]) - 200) <= 8


def test_unencodable_source_type_falls_back_to_jpeg(make_image_bytes):
    cropper = RasterCropper(PillowRasterizer())
    src = make_image_bytes(64, 16, "GIF")

    out = cropper.crop(src, "image/gif", PreviewContainer(400, 100), CropGesture(), SHOP_BANNER)

    assert out.mime_type == "image/jpeg"
    assert Image.open(io.BytesIO(out.data)).format == "JPEG"
    assert Image.open(io.BytesIO(out.data)).size == (1200, 300)


def test_webp_keeps_type(make_image_bytes):
    cropper = RasterCropper(PillowRasterizer())
    src = make_image_bytes(50, 50, "WEBP")

    out = cropper.crop(src, "image/webp", PreviewContainer(240, 240), CropGesture(), AVATAR)

    assert out.mime_type == "image/webp"
    assert Image.open(io.BytesIO(out.data)).format == "WEBP"


@pytest.mark.parametrize("data", [b"", b"not an image at all"])
def test_garbage_bytes_raise_decode_error(data):
    with pytest.raises(ImageDecodeError):
        PillowRasterizer().decode(data, "image/png")


def test_bad_scale_surfaces_before_render(make_image_bytes):
    cropper = RasterCropper(PillowRasterizer())

    with pytest.raises(InvalidScaleError):
        cropper.crop(make_image_bytes(10, 10), "image/png", PreviewContainer(100, 100), CropGesture(scale=0), AVATAR)


def test_render_rejects_empty_surface(make_image_bytes):
    r = PillowRasterizer()
    source = r.decode(make_image_bytes(10, 10))

    with pytest.raises(RenderError):
        r.render(source, DrawRect(0, 0, 10, 10), 0, 10)


def test_decode_applies_exif_orientation():
    img = Image.new("RGB", (40, 20), (10, 20, 30))
    exif = Image.Exif()
    exif[0x0112] = 6  # rotate 90 CW on display
    buf = io.BytesIO()
    img.save(buf, format="JPEG", exif=exif)

    source = PillowRasterizer().decode(buf.getvalue(), "image/jpeg")

    assert (source.width, source.height) == (20, 40)
