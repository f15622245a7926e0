"""Output resizing for cropbatch.

Resize runs after crop and before overlay. Target sizes are computed purely
from the current size and a ResizeSpec so callers can preview the result
dimensions without touching pixels.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal, Self

from PIL import Image
from pydantic import BaseModel, Field, model_validator

from cropbatch.geometry.primitives import Size

_RESAMPLE_FILTERS = {
    "lanczos": Image.Resampling.LANCZOS,
    "bicubic": Image.Resampling.BICUBIC,
    "nearest": Image.Resampling.NEAREST,
}


class ResizeMode(str, Enum):
    NONE = "none"
    EXACT = "exact"
    MAX_WIDTH = "max_width"
    MAX_HEIGHT = "max_height"
    PERCENTAGE = "percentage"


class ResizeSpec(BaseModel, frozen=True):
    """Requested output size.

    Attributes:
        mode: Which sizing rule applies.
        width: Target width (exact) or width limit (max_width).
        height: Target height (exact) or height limit (max_height).
        percentage: Uniform scale in percent (percentage).
        maintain_aspect_ratio: For exact mode, fit inside width x height
            instead of stretching.
        resample: Resampling filter. Lanczos unless a caller opts out.
    """

    mode: ResizeMode = ResizeMode.NONE
    width: int | None = Field(default=None, gt=0)
    height: int | None = Field(default=None, gt=0)
    percentage: float | None = Field(default=None, gt=0)
    maintain_aspect_ratio: bool = True
    resample: Literal["lanczos", "bicubic", "nearest"] = "lanczos"

    @model_validator(mode="after")
    def _check_parameters(self) -> Self:
        if self.mode is ResizeMode.EXACT and (self.width is None or self.height is None):
            raise ValueError("exact resize requires width and height")
        if self.mode is ResizeMode.MAX_WIDTH and self.width is None:
            raise ValueError("max_width resize requires width")
        if self.mode is ResizeMode.MAX_HEIGHT and self.height is None:
            raise ValueError("max_height resize requires height")
        if self.mode is ResizeMode.PERCENTAGE and self.percentage is None:
            raise ValueError("percentage resize requires percentage")
        return self

    @property
    def is_enabled(self) -> bool:
        return self.mode is not ResizeMode.NONE


def _scaled(size: Size, scale_x: float, scale_y: float) -> Size:
    return Size(
        width=max(1, round(size.width * scale_x)),
        height=max(1, round(size.height * scale_y)),
    )


def compute_target_size(size: Size, spec: ResizeSpec) -> Size | None:
    """Return the output size for ``size`` under ``spec``.

    Returns:
        The new size, or None when resizing is disabled or would leave the
        size unchanged.
    """
    target: Size | None
    if spec.mode is ResizeMode.EXACT:
        assert spec.width is not None and spec.height is not None
        if spec.maintain_aspect_ratio:
            scale = min(spec.width / size.width, spec.height / size.height)
            target = _scaled(size, scale, scale)
        else:
            target = Size(width=spec.width, height=spec.height)
    elif spec.mode is ResizeMode.MAX_WIDTH:
        assert spec.width is not None
        if size.width <= spec.width:
            return None
        scale = spec.width / size.width
        target = _scaled(size, scale, scale)
    elif spec.mode is ResizeMode.MAX_HEIGHT:
        assert spec.height is not None
        if size.height <= spec.height:
            return None
        scale = spec.height / size.height
        target = _scaled(size, scale, scale)
    elif spec.mode is ResizeMode.PERCENTAGE:
        assert spec.percentage is not None
        scale = spec.percentage / 100.0
        target = _scaled(size, scale, scale)
    else:
        return None

    if target == size:
        return None
    return target


def resize(image: Image.Image, spec: ResizeSpec) -> Image.Image | None:
    """Resize ``image`` per ``spec``; None means "unchanged, keep the input"."""
    target = compute_target_size(Size(width=image.width, height=image.height), spec)
    if target is None:
        return None
    return image.resize(target.to_tuple(), _RESAMPLE_FILTERS[spec.resample])
