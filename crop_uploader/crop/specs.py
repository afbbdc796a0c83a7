"""Output crop specifications per upload target."""

from __future__ import annotations

from dataclasses import dataclass

from .transform import FitMode


@dataclass(frozen=True, slots=True)
class CropSpecification:
    """Fixed output geometry for one kind of upload.

    ``folder``/``subfolder`` are where the uploader stores the result;
    ``max_files`` is how many files one selection may queue.
    """

    fit_mode: FitMode
    output_width: int
    output_height: int
    circular: bool = False
    folder: str = "listings"
    subfolder: str = ""
    max_files: int = 1

    @property
    def aspect_ratio(self) -> float:
        return self.output_width / self.output_height


AVATAR = CropSpecification(FitMode.COVER, 240, 240, circular=True, folder="avatars")
LISTING_IMAGE = CropSpecification(FitMode.CONTAIN, 1200, 1200, folder="listings", max_files=10)
SHOP_LOGO = CropSpecification(FitMode.COVER, 500, 500, circular=True, folder="shops", subfolder="logos")
SHOP_BANNER = CropSpecification(FitMode.CONTAIN, 1200, 300, folder="shops", subfolder="banners")

SPECS: dict[str, CropSpecification] = {
    "avatar": AVATAR,
    "listing": LISTING_IMAGE,
    "logo": SHOP_LOGO,
    "banner": SHOP_BANNER,
}


def get_spec(target: str) -> CropSpecification:
    """Look up a preset by target name ("avatar", "listing", "logo", "banner")."""
    key = (target or "").strip().lower()
    try:
        return SPECS[key]
    except KeyError:
        raise KeyError(f"Unknown crop target: {target!r}") from None
