"""Edge-inset cropping for cropbatch.

A CropSpec removes a number of pixels from each edge of the image. Insets are
expressed in the space of the image they are applied to: in the pipeline that
is the already rotated/flipped image, so ``top`` always means the visually top
edge of what the user sees.

The rectangle math lives in ``cropbatch.geometry.crop_space``; this module
only validates the result and cuts pixels.
"""

from __future__ import annotations

from PIL import Image
from pydantic import BaseModel, Field

from cropbatch.geometry.crop_space import crop_region
from cropbatch.geometry.primitives import Size


class CropSpec(BaseModel, frozen=True):
    """Pixels to remove from each edge.

    Attributes:
        top: Rows removed from the visually top edge.
        bottom: Rows removed from the visually bottom edge.
        left: Columns removed from the left edge.
        right: Columns removed from the right edge.
    """

    top: int = Field(default=0, ge=0)
    bottom: int = Field(default=0, ge=0)
    left: int = Field(default=0, ge=0)
    right: int = Field(default=0, ge=0)

    @property
    def has_any_crop(self) -> bool:
        return self.top > 0 or self.bottom > 0 or self.left > 0 or self.right > 0

    def cropped_size(self, size: Size) -> tuple[int, int]:
        """Return (width, height) left after cropping; may be non-positive."""
        return (
            size.width - self.left - self.right,
            size.height - self.top - self.bottom,
        )

    def with_vertical(self, value: int) -> CropSpec:
        """Return a copy with top and bottom both set to ``value``."""
        return CropSpec(top=value, bottom=value, left=self.left, right=self.right)

    def with_horizontal(self, value: int) -> CropSpec:
        """Return a copy with left and right both set to ``value``."""
        return CropSpec(top=self.top, bottom=self.bottom, left=value, right=value)

    def with_all_edges(self, value: int) -> CropSpec:
        return CropSpec(top=value, bottom=value, left=value, right=value)


def crop(image: Image.Image, spec: CropSpec, *, path: str | None = None) -> Image.Image:
    """Cut ``spec`` insets from ``image``.

    Args:
        image: Image to crop.
        spec: Edge insets in the image's own space.
        path: Source path used for error context only.

    Returns:
        A new image. A spec with no insets returns a copy.

    Raises:
        InvalidCropRegionError: If the insets leave a non-positive width or
            height.
    """
    if not spec.has_any_crop:
        return image.copy()

    region = crop_region(spec, Size(width=image.width, height=image.height), path=path)
    return image.crop(region.to_box())
