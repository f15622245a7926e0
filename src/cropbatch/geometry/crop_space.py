"""Vertical-axis conventions for crop rectangles.

Pillow and numpy address pixels from the top-left corner with y growing
downward. Some callers (and most plotting code) use a bottom-left origin with
y growing upward. This module is the only place that converts between the
two; everything else in cropbatch is top-left.

Crop insets are always named after the visually top and bottom edges of the
upright image, independent of the representation:

    TOP_LEFT origin:     y = top
    BOTTOM_LEFT origin:  y = bottom

In both cases width = W - left - right and height = H - top - bottom.
Edge scans (such as UI bar detection) ask ``edge_row`` which row lies a
given number of rows inward from the visual top or bottom.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from cropbatch.exceptions import InvalidCropRegionError
from cropbatch.geometry.primitives import PixelRect, Region, Size

if TYPE_CHECKING:
    from cropbatch.core.crop_engine import CropSpec


class PixelOrigin(str, Enum):
    """Where y = 0 sits in a pixel representation."""

    TOP_LEFT = "top_left"
    BOTTOM_LEFT = "bottom_left"


def flip_rect_vertical(rect: PixelRect, image_height: float) -> PixelRect:
    """Convert a rect between top-left and bottom-left origin.

    The conversion is its own inverse.
    """
    return PixelRect(
        x=rect.x,
        y=image_height - rect.y - rect.height,
        width=rect.width,
        height=rect.height,
    )


def crop_rect(
    crop: CropSpec,
    image_size: Size,
    origin: PixelOrigin = PixelOrigin.TOP_LEFT,
) -> PixelRect:
    """Return the area kept by ``crop`` in the requested pixel convention.

    Args:
        crop: Edge insets, named after the visual edges of the upright image.
        image_size: Size of the image being cropped.
        origin: Vertical convention of the returned rectangle.

    Returns:
        The kept rectangle. Width or height may be zero or negative when the
        insets leave nothing; use ``crop_region`` to get a checked Region.
    """
    width = image_size.width - crop.left - crop.right
    height = image_size.height - crop.top - crop.bottom
    y = crop.top if origin is PixelOrigin.TOP_LEFT else crop.bottom
    return PixelRect.model_construct(x=crop.left, y=y, width=width, height=height)


def crop_region(
    crop: CropSpec,
    image_size: Size,
    *,
    path: str | None = None,
) -> Region:
    """Return the kept area as a top-left-origin Region for Pillow.

    Raises:
        InvalidCropRegionError: If the insets leave a non-positive width or
            height.
    """
    rect = crop_rect(crop, image_size, PixelOrigin.TOP_LEFT)
    if rect.width <= 0 or rect.height <= 0:
        raise InvalidCropRegionError(
            "Crop leaves no pixels",
            path,
            image_size=image_size,
            crop=crop,
        )
    return Region(
        x=int(rect.x),
        y=int(rect.y),
        width=int(rect.width),
        height=int(rect.height),
    )


class VerticalEdge(str, Enum):
    """A visual horizontal edge of the upright image."""

    TOP = "top"
    BOTTOM = "bottom"


def edge_row(
    edge: VerticalEdge,
    inset: int,
    image_height: int,
    origin: PixelOrigin = PixelOrigin.TOP_LEFT,
) -> int:
    """Return the row index lying ``inset`` rows inward from a visual edge.

    ``inset`` 0 is the outermost row. The returned index is expressed in the
    requested pixel convention, so scanning code never flips y itself.

    Raises:
        ValueError: If ``inset`` is outside the image.
    """
    if not 0 <= inset < image_height:
        raise ValueError(f"inset {inset} outside image of height {image_height}")
    from_top = inset if edge is VerticalEdge.TOP else image_height - 1 - inset
    return from_top if origin is PixelOrigin.TOP_LEFT else image_height - 1 - from_top
