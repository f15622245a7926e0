"""Lossless 90-degree rotation and flip transforms.

A GeometricTransform is applied as rotation first, then horizontal flip,
then vertical flip. The same order drives both the pixel remapping
(``apply_transform``) and the normalized point mapping used to carry
rectangles between source space and display space, so a rect drawn on the
transformed preview lands on the same pixels after ``applying_inverse_transform``.

Normalized coordinates live in the unit square with a top-left origin.
Rotation is clockwise as seen on screen.
"""

from __future__ import annotations

from enum import IntEnum
from typing import ClassVar

from PIL import Image
from pydantic import BaseModel

from cropbatch.geometry.primitives import Size

__all__ = [
    "GeometricTransform",
    "Rotation",
    "apply_transform",
]


class Rotation(IntEnum):
    """Clockwise rotation in degrees."""

    NONE = 0
    CW_90 = 90
    CW_180 = 180
    CW_270 = 270

    def rotated_cw(self) -> Rotation:
        return Rotation((self.value + 90) % 360)

    def rotated_ccw(self) -> Rotation:
        return Rotation((self.value + 270) % 360)

    @property
    def swaps_width_and_height(self) -> bool:
        return self in (Rotation.CW_90, Rotation.CW_270)


_TRANSPOSE_FOR_ROTATION = {
    # Pillow's ROTATE_* constants are counter-clockwise.
    Rotation.CW_90: Image.Transpose.ROTATE_270,
    Rotation.CW_180: Image.Transpose.ROTATE_180,
    Rotation.CW_270: Image.Transpose.ROTATE_90,
}


def _rotate_point(x: float, y: float, rotation: Rotation) -> tuple[float, float]:
    if rotation is Rotation.CW_90:
        return 1.0 - y, x
    if rotation is Rotation.CW_180:
        return 1.0 - x, 1.0 - y
    if rotation is Rotation.CW_270:
        return y, 1.0 - x
    return x, y


def _unrotate_point(x: float, y: float, rotation: Rotation) -> tuple[float, float]:
    if rotation is Rotation.CW_90:
        return y, 1.0 - x
    if rotation is Rotation.CW_180:
        return 1.0 - x, 1.0 - y
    if rotation is Rotation.CW_270:
        return 1.0 - y, x
    return x, y


class GeometricTransform(BaseModel, frozen=True):
    """Rotation plus optional flips.

    Attributes:
        rotation: Clockwise rotation, applied first.
        flip_horizontal: Mirror left/right after rotating.
        flip_vertical: Mirror top/bottom after the horizontal flip.
    """

    IDENTITY: ClassVar[GeometricTransform]

    rotation: Rotation = Rotation.NONE
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @property
    def is_identity(self) -> bool:
        return (
            self.rotation is Rotation.NONE
            and not self.flip_horizontal
            and not self.flip_vertical
        )

    @property
    def swaps_width_and_height(self) -> bool:
        return self.rotation.swaps_width_and_height

    def transformed_size(self, size: Size) -> Size:
        """Return the size of an image of ``size`` after this transform."""
        return size.swapped() if self.swaps_width_and_height else size

    def rotate_cw(self) -> GeometricTransform:
        return self.model_copy(update={"rotation": self.rotation.rotated_cw()})

    def rotate_ccw(self) -> GeometricTransform:
        return self.model_copy(update={"rotation": self.rotation.rotated_ccw()})

    def toggle_flip_horizontal(self) -> GeometricTransform:
        return self.model_copy(update={"flip_horizontal": not self.flip_horizontal})

    def toggle_flip_vertical(self) -> GeometricTransform:
        return self.model_copy(update={"flip_vertical": not self.flip_vertical})

    def map_point(self, x: float, y: float) -> tuple[float, float]:
        """Map a normalized point from source space to transformed space."""
        x, y = _rotate_point(x, y, self.rotation)
        if self.flip_horizontal:
            x = 1.0 - x
        if self.flip_vertical:
            y = 1.0 - y
        return x, y

    def inverse_map_point(self, x: float, y: float) -> tuple[float, float]:
        """Map a normalized point from transformed space back to source space."""
        if self.flip_vertical:
            y = 1.0 - y
        if self.flip_horizontal:
            x = 1.0 - x
        return _unrotate_point(x, y, self.rotation)


GeometricTransform.IDENTITY = GeometricTransform()


def apply_transform(image: Image.Image, transform: GeometricTransform) -> Image.Image:
    """Remap pixels through ``transform`` without resampling.

    Args:
        image: Source image in any mode.
        transform: Rotation and flips to apply.

    Returns:
        A new image. The identity transform returns a pixel-identical copy.
    """
    result = image
    if transform.rotation is not Rotation.NONE:
        result = result.transpose(_TRANSPOSE_FOR_ROTATION[transform.rotation])
    if transform.flip_horizontal:
        result = result.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
    if transform.flip_vertical:
        result = result.transpose(Image.Transpose.FLIP_TOP_BOTTOM)
    if result is image:
        return image.copy()
    return result
