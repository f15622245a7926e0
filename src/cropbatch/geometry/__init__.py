"""Geometry module for cropbatch.

This package provides the coordinate model shared by every pipeline stage,
the single vertical-convention conversion module, 90-degree transforms and
overlay placement.

Key Components:
    - Primitives: Size, Region, PixelRect and resolution-independent
      NormalizedRect
    - Crop space: the only top-left/bottom-left origin conversion
    - Transforms: rotation/flip pixel remapping and rect mapping
    - Overlays: anchor placement, text templates, compositing

Crop policy checks live in ``cropbatch.geometry.validators`` and are imported
from there directly, since they depend on ``cropbatch.core``.

Example:
    from cropbatch.geometry import GeometricTransform, NormalizedRect, Rotation

    rect = NormalizedRect(x=0.1, y=0.2, width=0.3, height=0.1)
    transform = GeometricTransform(rotation=Rotation.CW_90)

    # Rect drawn on the rotated preview, mapped back to source space
    source_rect = rect.applying_inverse_transform(transform)
"""

from cropbatch.geometry.crop_space import (
    PixelOrigin,
    VerticalEdge,
    crop_rect,
    crop_region,
    edge_row,
    flip_rect_vertical,
)
from cropbatch.geometry.overlay import (
    Anchor,
    OverlayCompositor,
    OverlaySizeMode,
    OverlaySpec,
    TemplateContext,
    TextOutline,
    TextShadow,
    TextStyle,
    overlay_position,
    overlay_size,
    substitute_template,
)
from cropbatch.geometry.primitives import NormalizedRect, PixelRect, Region, Size
from cropbatch.geometry.transforms import GeometricTransform, Rotation, apply_transform

__all__ = [
    "Anchor",
    "GeometricTransform",
    "NormalizedRect",
    "OverlayCompositor",
    "OverlaySizeMode",
    "OverlaySpec",
    "PixelOrigin",
    "PixelRect",
    "Region",
    "Rotation",
    "Size",
    "TemplateContext",
    "TextOutline",
    "TextShadow",
    "TextStyle",
    "VerticalEdge",
    "apply_transform",
    "crop_rect",
    "crop_region",
    "edge_row",
    "flip_rect_vertical",
    "overlay_position",
    "overlay_size",
    "substitute_template",
]
