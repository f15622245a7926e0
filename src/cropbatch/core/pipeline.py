"""Single-item pipeline for cropbatch.

Stages run in a fixed order for every item:

    1. region effects   (rects authored on the untransformed source)
    2. geometric transform
    3. crop             (insets in the transformed image's space)
    4. resize
    5. overlay          (positioned in the final pixel space)

Encoding and writing (stage 6) belong to the caller; see
``cropbatch.imaging.codec`` and ``cropbatch.batch.executor``.

Applying effects before the transform means effect rasterization never deals
with rotated geometry: rects stay anchored to source pixels whatever rotation
or flip is chosen later.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from enum import Enum

from PIL import Image
from pydantic import BaseModel, Field

from cropbatch.config import settings as app_settings
from cropbatch.core.crop_engine import CropSpec, crop
from cropbatch.core.effects import RegionEffect, apply_effects
from cropbatch.core.resize import ResizeSpec, resize
from cropbatch.geometry.overlay import OverlayCompositor, OverlaySpec, TemplateContext
from cropbatch.geometry.transforms import GeometricTransform, apply_transform
from cropbatch.imaging.codec import ExportSpec, normalize_mode
from cropbatch.utils.logging import get_logger, set_correlation_context

logger = get_logger(__name__)


class PipelineStage(str, Enum):
    EFFECTS = "effects"
    TRANSFORM = "transform"
    CROP = "crop"
    RESIZE = "resize"
    OVERLAY = "overlay"
    ENCODE = "encode"


class PipelineSettings(BaseModel, frozen=True):
    """Everything a pipeline run reads, captured as immutable values.

    Attributes:
        crop: Edge insets applied after the transform.
        transform: Rotation and flips.
        resize: Output sizing.
        overlay: Optional image or text overlay.
        export: Encoding parameters (used by the caller's encode stage).
        max_soften_radius: Blur radius at soften intensity 1.
        mosaic_divisor: Base mosaic block is max(w, h) / divisor.
    """

    crop: CropSpec = Field(default_factory=CropSpec)
    transform: GeometricTransform = Field(default_factory=GeometricTransform)
    resize: ResizeSpec = Field(default_factory=ResizeSpec)
    overlay: OverlaySpec | None = None
    export: ExportSpec = Field(default_factory=ExportSpec)
    max_soften_radius: float = Field(
        default_factory=lambda: app_settings.MAX_SOFTEN_RADIUS, gt=0
    )
    mosaic_divisor: float = Field(
        default_factory=lambda: app_settings.MOSAIC_BLOCK_DIVISOR, gt=0
    )

    def snapshot(self) -> PipelineSettings:
        """Return a copy that shares no mutable state with this one.

        Every field is a frozen model except the overlay bitmap, which is
        copied.
        """
        overlay = self.overlay.copy_with_own_image() if self.overlay else None
        return self.model_copy(update={"overlay": overlay})


_default_compositor = OverlayCompositor()


def process_one(
    source: Image.Image,
    settings: PipelineSettings,
    effects: Sequence[RegionEffect] = (),
    *,
    context: TemplateContext | None = None,
    checkpoint: Callable[[], None] | None = None,
    compositor: OverlayCompositor | None = None,
    path: str | None = None,
) -> Image.Image:
    """Run one image through every pixel stage.

    Args:
        source: Decoded source image. Never modified.
        settings: Captured pipeline settings.
        effects: Region effects for this image, in paint order.
        context: Template values for text overlays.
        checkpoint: Called before each stage; raise from it (for example
            OperationCancelled) to abort between stages.
        compositor: Overlay compositor to use. Defaults to a shared instance.
        path: Source path for error context.

    Returns:
        A new RGB or RGBA image.

    Raises:
        InvalidCropRegionError: If the crop leaves no pixels.
    """

    def enter(stage: PipelineStage) -> None:
        set_correlation_context(stage=stage.value)
        if checkpoint is not None:
            checkpoint()

    image = normalize_mode(source)

    enter(PipelineStage.EFFECTS)
    if effects:
        image = apply_effects(
            image,
            effects,
            max_soften_radius=settings.max_soften_radius,
            mosaic_divisor=settings.mosaic_divisor,
        )

    enter(PipelineStage.TRANSFORM)
    if not settings.transform.is_identity:
        image = apply_transform(image, settings.transform)

    enter(PipelineStage.CROP)
    if settings.crop.has_any_crop:
        image = crop(image, settings.crop, path=path)

    enter(PipelineStage.RESIZE)
    resized = resize(image, settings.resize)
    if resized is not None:
        image = resized

    enter(PipelineStage.OVERLAY)
    if settings.overlay is not None:
        image = (compositor or _default_compositor).apply(image, settings.overlay, context)

    if image is source:
        image = source.copy()

    logger.debug("Pipeline complete", size=image.size, mode=image.mode)
    return image
