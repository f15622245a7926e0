"""Crop policy validation for cropbatch.

The crop engine itself only refuses crops that leave no pixels. Callers that
want a stricter floor (for example "never produce an image narrower than
10px") use CropValidator, which checks, clamps and nudges CropSpec values
against an image size.
"""

from __future__ import annotations

from enum import Enum

from cropbatch.config import settings
from cropbatch.core.crop_engine import CropSpec
from cropbatch.geometry.primitives import Size


class CropValidationError(Exception):
    """Raised when a crop violates the minimum-dimension policy.

    Attributes:
        crop: The crop that was validated.
        bounds: The image size it was validated against.
    """

    def __init__(
        self,
        message: str,
        *,
        crop: CropSpec,
        bounds: Size,
    ) -> None:
        self.crop = crop
        self.bounds = bounds
        crop_str = (crop.top, crop.bottom, crop.left, crop.right)
        super().__init__(
            f"{message} (crop(t,b,l,r)={crop_str}, bounds={bounds.to_tuple()})"
        )


class CropEdge(str, Enum):
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"


class CropValidator:
    """Validator for crop insets against an image size.

    Stateless; every method operates only on its inputs. ``min_dimension``
    defaults to ``settings.MIN_CROP_DIMENSION``.
    """

    def validate(
        self,
        crop: CropSpec,
        bounds: Size,
        *,
        min_dimension: int | None = None,
        strict: bool = True,
    ) -> bool:
        """Check that the crop leaves at least ``min_dimension`` pixels each way.

        Args:
            crop: The insets to validate.
            bounds: Size of the image the crop applies to.
            min_dimension: Smallest allowed output width and height.
            strict: If True, raise CropValidationError on failure.
                If False, return False instead.

        Returns:
            True if the crop satisfies the policy.

        Raises:
            CropValidationError: If strict=True and the crop is too large.
        """
        floor = settings.MIN_CROP_DIMENSION if min_dimension is None else min_dimension
        width = bounds.width - crop.left - crop.right
        height = bounds.height - crop.top - crop.bottom
        is_valid = width >= floor and height >= floor

        if not is_valid and strict:
            violations: list[str] = []
            if width < floor:
                violations.append(f"remaining width ({width}) below {floor}")
            if height < floor:
                violations.append(f"remaining height ({height}) below {floor}")
            raise CropValidationError(
                f"Crop too large: {'; '.join(violations)}",
                crop=crop,
                bounds=bounds,
            )

        return is_valid

    def clamp(
        self,
        crop: CropSpec,
        bounds: Size,
        *,
        min_dimension: int | None = None,
    ) -> CropSpec:
        """Shrink insets so the remaining area satisfies the floor.

        Edges are clamped in order left, right, top, bottom; each one may only
        take what the opposite edge has not already claimed. An image smaller
        than the floor ends up with all insets at zero.

        Example:
            >>> validator = CropValidator()
            >>> bounds = Size(width=100, height=100)
            >>> validator.clamp(CropSpec(left=80, right=80), bounds, min_dimension=1)
            CropSpec(top=0, bottom=0, left=19, right=80)
        """
        floor = settings.MIN_CROP_DIMENSION if min_dimension is None else min_dimension
        left = max(0, min(crop.left, bounds.width - crop.right - floor))
        right = max(0, min(crop.right, bounds.width - left - floor))
        top = max(0, min(crop.top, bounds.height - crop.bottom - floor))
        bottom = max(0, min(crop.bottom, bounds.height - top - floor))
        return CropSpec(top=top, bottom=bottom, left=left, right=right)

    def adjust_edge(
        self,
        crop: CropSpec,
        edge: CropEdge,
        delta: int,
        bounds: Size,
        *,
        min_dimension: int | None = None,
    ) -> CropSpec:
        """Move one edge by ``delta`` pixels, stopping at the floor.

        Positive deltas crop more; negative deltas give pixels back. The
        result never goes below zero and never leaves fewer than
        ``min_dimension`` pixels between this edge and its opposite.
        """
        floor = settings.MIN_CROP_DIMENSION if min_dimension is None else min_dimension
        if edge is CropEdge.TOP:
            value = max(0, min(crop.top + delta, bounds.height - crop.bottom - floor))
            return crop.model_copy(update={"top": value})
        if edge is CropEdge.BOTTOM:
            value = max(0, min(crop.bottom + delta, bounds.height - crop.top - floor))
            return crop.model_copy(update={"bottom": value})
        if edge is CropEdge.LEFT:
            value = max(0, min(crop.left + delta, bounds.width - crop.right - floor))
            return crop.model_copy(update={"left": value})
        value = max(0, min(crop.right + delta, bounds.width - crop.left - floor))
        return crop.model_copy(update={"right": value})
