"""Render one crop from the command line and print the geometry.

Usage:
  python scripts/debug_crop.py photo.jpg out.jpg --target logo --x 20 --y -10 --scale 1.5
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from crop_uploader.crop import CropGesture, PreviewContainer, RasterCropper, compute_geometry, get_spec
from crop_uploader.logger import setup_logger
from crop_uploader.validation import SelectedFile


def main() -> int:
    p = argparse.ArgumentParser(description="Apply a pan/zoom crop to an image file")
    p.add_argument("source", type=Path)
    p.add_argument("output", type=Path)
    p.add_argument("--target", default="listing", help="avatar | listing | logo | banner")
    p.add_argument("--x", type=float, default=0.0, help="Pan offset in preview pixels")
    p.add_argument("--y", type=float, default=0.0)
    p.add_argument("--scale", type=float, default=1.0)
    p.add_argument("--preview", type=float, default=500.0, help="Square preview box size")
    p.add_argument("--backend", choices=("pyvips", "pillow"), default="pyvips")
    args = p.parse_args()

    setup_logger(level=logging.DEBUG)

    spec = get_spec(args.target)
    file = SelectedFile.from_path(args.source)
    container = PreviewContainer(args.preview, args.preview)
    gesture = CropGesture(args.x, args.y, args.scale)

    if args.backend == "pillow":
        from crop_uploader.crop.pillow_backend import PillowRasterizer

        cropper = RasterCropper(PillowRasterizer())
    else:
        cropper = RasterCropper()

    source = cropper.rasterizer.decode(file.data, file.mime_type)
    geo = compute_geometry(
        source.width, source.height, container, spec.fit_mode, gesture, spec.output_width, spec.output_height
    )
    print(f"source:    {source.width}x{source.height} ({file.mime_type})")
    print(f"contained: {geo.contained.width:.2f}x{geo.contained.height:.2f}")
    print(f"scaled:    {geo.scaled.width:.2f}x{geo.scaled.height:.2f}")
    print(f"final:     ({geo.final_x:.2f}, {geo.final_y:.2f})  k={geo.preview_to_output_scale:.4f}")
    print(f"rect:      {geo.rect}")

    result = cropper.crop(file.data, file.mime_type, container, gesture, spec)
    args.output.write_bytes(result.data)
    print(f"wrote {args.output} ({result.mime_type}, {len(result.data)} bytes)", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
