"""Geometry primitives for cropbatch.

This module provides immutable Pydantic models for sizes, pixel rectangles
and resolution-independent normalized rectangles. Unless a name says
otherwise, every coordinate follows the display convention where (0, 0) is
the top-left corner and y increases downward. Conversions to the
bottom-left-origin convention go through ``cropbatch.geometry.crop_space``.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Self

from pydantic import BaseModel, Field, model_validator

if TYPE_CHECKING:
    from cropbatch.core.crop_engine import CropSpec
    from cropbatch.geometry.transforms import GeometricTransform


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


class Size(BaseModel, frozen=True):
    """A 2D size representing width and height.

    Both dimensions must be strictly positive (> 0).

    Attributes:
        width: Horizontal extent in pixels.
        height: Vertical extent in pixels.
    """

    width: int = Field(..., gt=0, description="Width in pixels")
    height: int = Field(..., gt=0, description="Height in pixels")

    @property
    def aspect_ratio(self) -> float:
        """Return width/height aspect ratio."""
        return self.width / self.height

    def swapped(self) -> Size:
        """Return the size with width and height exchanged."""
        return Size(width=self.height, height=self.width)

    def to_tuple(self) -> tuple[int, int]:
        """Convert to (width, height) tuple."""
        return (self.width, self.height)


class Region(BaseModel, frozen=True):
    """An integer pixel rectangle with positive area.

    This is the rasterization unit: crop rectangles and effect areas are
    turned into a Region before pixels are touched.

    The region is defined as:
    - Top-left: (x, y)
    - Bottom-right: (x + width, y + height) [exclusive]

    Attributes:
        x: Left edge X coordinate (>= 0).
        y: Top edge Y coordinate (>= 0).
        width: Horizontal extent in pixels (> 0).
        height: Vertical extent in pixels (> 0).
    """

    x: int = Field(..., ge=0, description="Left edge X coordinate")
    y: int = Field(..., ge=0, description="Top edge Y coordinate")
    width: int = Field(..., gt=0, description="Width in pixels")
    height: int = Field(..., gt=0, description="Height in pixels")

    @property
    def area(self) -> int:
        """Calculate the area in square pixels."""
        return self.width * self.height

    @property
    def right(self) -> int:
        """Return the X coordinate of the right edge (exclusive)."""
        return self.x + self.width

    @property
    def bottom(self) -> int:
        """Return the Y coordinate of the bottom edge (exclusive)."""
        return self.y + self.height

    def to_tuple(self) -> tuple[int, int, int, int]:
        """Convert to (x, y, width, height) tuple."""
        return (self.x, self.y, self.width, self.height)

    def to_box(self) -> tuple[int, int, int, int]:
        """Convert to a Pillow box (left, upper, right, lower)."""
        return (self.x, self.y, self.right, self.bottom)

    def intersects(self, other: Region) -> bool:
        """Check if this region overlaps with another."""
        return not (
            other.x >= self.right
            or other.right <= self.x
            or other.y >= self.bottom
            or other.bottom <= self.y
        )

    def intersection(self, other: Region) -> Region | None:
        """Compute the intersection of two regions, or None if disjoint."""
        if not self.intersects(other):
            return None

        new_x = max(self.x, other.x)
        new_y = max(self.y, other.y)
        new_right = min(self.right, other.right)
        new_bottom = min(self.bottom, other.bottom)

        return Region(
            x=new_x,
            y=new_y,
            width=new_right - new_x,
            height=new_bottom - new_y,
        )

    def expanded(self, amount: int, bounds: Size) -> Region:
        """Grow the region by ``amount`` pixels on every side, clipped to bounds."""
        left = max(0, self.x - amount)
        top = max(0, self.y - amount)
        right = min(bounds.width, self.right + amount)
        bottom = min(bounds.height, self.bottom + amount)
        return Region(x=left, y=top, width=right - left, height=bottom - top)


class PixelRect(BaseModel, frozen=True):
    """A rectangle in (possibly fractional) pixel units.

    Produced by converting a NormalizedRect to a concrete image size. The
    vertical origin depends on how it was produced: ``to_pixels`` yields
    top-left origin, ``to_bottom_left_origin_rect`` yields bottom-left.
    """

    x: float
    y: float
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def to_tuple(self) -> tuple[float, float, float, float]:
        """Convert to (x, y, width, height) tuple."""
        return (self.x, self.y, self.width, self.height)

    def to_region(self, bounds: Size) -> Region | None:
        """Snap to the pixel grid and clip to ``bounds``.

        Edges are rounded half-up independently so adjacent rectangles
        tile without gaps. Returns None if nothing remains.
        """
        left = max(0, _round_half_up(self.x))
        top = max(0, _round_half_up(self.y))
        right = min(bounds.width, _round_half_up(self.right))
        bottom = min(bounds.height, _round_half_up(self.bottom))
        if right <= left or bottom <= top:
            return None
        return Region(x=left, y=top, width=right - left, height=bottom - top)


class NormalizedRect(BaseModel, frozen=True):
    """A rectangle expressed as fractions of an image's unit square.

    Origin is top-left, y increases downward. A rect authored on a
    1000px-wide image covers the same relative area on a 2000px-wide
    image of the same content.

    Attributes:
        x: Left edge as a fraction of image width.
        y: Top edge as a fraction of image height.
        width: Horizontal extent as a fraction of image width.
        height: Vertical extent as a fraction of image height.
    """

    x: float
    y: float
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def content_key(self) -> tuple[float, float, float, float]:
        """Return the (x, y, width, height) tuple used for hashing."""
        return (self.x, self.y, self.width, self.height)

    @classmethod
    def from_pixels(cls, rect: PixelRect | Region, image_size: Size) -> Self:
        """Create from a top-left-origin pixel rectangle on ``image_size``."""
        return cls(
            x=rect.x / image_size.width,
            y=rect.y / image_size.height,
            width=rect.width / image_size.width,
            height=rect.height / image_size.height,
        )

    def to_pixels(self, image_size: Size) -> PixelRect:
        """Convert to a top-left-origin pixel rectangle."""
        return PixelRect(
            x=self.x * image_size.width,
            y=self.y * image_size.height,
            width=self.width * image_size.width,
            height=self.height * image_size.height,
        )

    def to_region(self, image_size: Size) -> Region | None:
        """Convert to an integer pixel Region on ``image_size`` (None if empty)."""
        return self.to_pixels(image_size).to_region(image_size)

    def to_bottom_left_origin_rect(self, image_size: Size) -> PixelRect:
        """Convert to a pixel rectangle whose y axis starts at the bottom edge."""
        from cropbatch.geometry.crop_space import flip_rect_vertical  # noqa: PLC0415

        return flip_rect_vertical(self.to_pixels(image_size), image_size.height)

    @classmethod
    def from_bottom_left_origin_rect(cls, rect: PixelRect, image_size: Size) -> Self:
        """Inverse of ``to_bottom_left_origin_rect``."""
        from cropbatch.geometry.crop_space import flip_rect_vertical  # noqa: PLC0415

        return cls.from_pixels(flip_rect_vertical(rect, image_size.height), image_size)

    @classmethod
    def crop_area(cls, crop: CropSpec, image_size: Size) -> Self:
        """Return the area kept by ``crop`` as a normalized rectangle."""
        from cropbatch.geometry.crop_space import crop_rect  # noqa: PLC0415

        rect = crop_rect(crop, image_size)
        kept = PixelRect(
            x=rect.x,
            y=rect.y,
            width=max(0.0, rect.width),
            height=max(0.0, rect.height),
        )
        return cls.from_pixels(kept, image_size)

    def clamped(self) -> NormalizedRect:
        """Clamp all values to the unit square."""
        clamped_x = max(0.0, min(1.0, self.x))
        clamped_y = max(0.0, min(1.0, self.y))
        # Keep the far edge where it was when the origin moves inward.
        right = min(1.0, self.x + self.width)
        bottom = min(1.0, self.y + self.height)
        return NormalizedRect(
            x=clamped_x,
            y=clamped_y,
            width=max(0.0, right - clamped_x),
            height=max(0.0, bottom - clamped_y),
        )

    def intersects(self, other: NormalizedRect) -> bool:
        """Check if the two rects share a region of positive area."""
        return self.intersection(other) is not None

    def intersection(self, other: NormalizedRect) -> NormalizedRect | None:
        """Get the overlap with another rect, or None if it has no area."""
        left = max(self.x, other.x)
        top = max(self.y, other.y)
        right = min(self.max_x, other.max_x)
        bottom = min(self.max_y, other.max_y)
        if right <= left or bottom <= top:
            return None
        return NormalizedRect(x=left, y=top, width=right - left, height=bottom - top)

    def contains(self, other: NormalizedRect) -> bool:
        """Check if this rect fully contains another."""
        return (
            self.x <= other.x
            and self.y <= other.y
            and other.max_x <= self.max_x
            and other.max_y <= self.max_y
        )

    def contains_point(self, x: float, y: float) -> bool:
        """Check if a normalized point lies inside (left/top inclusive)."""
        return self.x <= x < self.max_x and self.y <= y < self.max_y

    def offset_by(self, dx: float, dy: float) -> NormalizedRect:
        """Translate the rect without clamping."""
        return NormalizedRect(x=self.x + dx, y=self.y + dy, width=self.width, height=self.height)

    def applying_transform(self, transform: GeometricTransform) -> NormalizedRect:
        """Map from untransformed source space to transformed (display) space."""
        x1, y1 = transform.map_point(self.x, self.y)
        x2, y2 = transform.map_point(self.max_x, self.max_y)
        return _rect_from_corners(x1, y1, x2, y2)

    def applying_inverse_transform(self, transform: GeometricTransform) -> NormalizedRect:
        """Map from transformed (display) space back to source space."""
        x1, y1 = transform.inverse_map_point(self.x, self.y)
        x2, y2 = transform.inverse_map_point(self.max_x, self.max_y)
        return _rect_from_corners(x1, y1, x2, y2)

    def relative_to_crop(self, crop_area: NormalizedRect) -> NormalizedRect | None:
        """Re-express this rect in the coordinate space of a cropped sub-area.

        Returns None when the rect has no overlap with ``crop_area`` (or the
        crop area is degenerate); the caller decides whether that means
        dropping the rect.
        """
        if crop_area.is_empty:
            return None
        clipped = self.intersection(crop_area)
        if clipped is None:
            return None
        return NormalizedRect(
            x=(clipped.x - crop_area.x) / crop_area.width,
            y=(clipped.y - crop_area.y) / crop_area.height,
            width=clipped.width / crop_area.width,
            height=clipped.height / crop_area.height,
        )

    @model_validator(mode="after")
    def _validate_finite(self) -> Self:
        if not all(math.isfinite(v) for v in self.content_key()):
            raise ValueError("NormalizedRect values must be finite")
        return self


def _rect_from_corners(x1: float, y1: float, x2: float, y2: float) -> NormalizedRect:
    # Rotation and flips can swap which corner is the minimum.
    left, right = min(x1, x2), max(x1, x2)
    top, bottom = min(y1, y2), max(y1, y2)
    return NormalizedRect(x=left, y=top, width=right - left, height=bottom - top)
