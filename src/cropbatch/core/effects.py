"""Region effects: soften, mosaic and solid fill.

Effects are authored as normalized rectangles on the untransformed source
image and stored per image identity. ``apply_effects`` rasterizes them in
list order (later effects paint over earlier ones) and never touches pixels
outside an effect's rectangle.

Known limitation: a soften rect touching the image edge samples fewer
neighbours on that side, so its falloff is asymmetric there.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
from collections.abc import Hashable, Iterable
from types import MappingProxyType
from typing import Annotated, Literal, Self
from uuid import UUID, uuid4

import numpy as np
from PIL import Image, ImageFilter
from pydantic import BaseModel, Field, field_validator

from cropbatch.config import settings
from cropbatch.geometry.primitives import NormalizedRect, Region, Size
from cropbatch.imaging.codec import normalize_mode

logger = logging.getLogger(__name__)

RGBColor = tuple[
    Annotated[int, Field(ge=0, le=255)],
    Annotated[int, Field(ge=0, le=255)],
    Annotated[int, Field(ge=0, le=255)],
]

# Gaussian weight beyond 3 sigma is negligible at 8-bit depth.
_SOFTEN_REACH = 3.0


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


class Soften(BaseModel, frozen=True):
    """Gaussian blur; radius grows linearly with intensity."""

    kind: Literal["soften"] = "soften"
    intensity: float = 1.0

    @field_validator("intensity")
    @classmethod
    def _clamp_intensity(cls, v: float) -> float:
        return _clamp_unit(v)


class Mosaic(BaseModel, frozen=True):
    """Pixelation into flat blocks of the mean color."""

    kind: Literal["mosaic"] = "mosaic"
    intensity: float = 1.0

    @field_validator("intensity")
    @classmethod
    def _clamp_intensity(cls, v: float) -> float:
        return _clamp_unit(v)


class SolidFill(BaseModel, frozen=True):
    """Opaque flat color."""

    kind: Literal["solid_fill"] = "solid_fill"
    color: RGBColor = (0, 0, 0)

    @classmethod
    def black(cls) -> SolidFill:
        return cls(color=(0, 0, 0))

    @classmethod
    def white(cls) -> SolidFill:
        return cls(color=(255, 255, 255))


EffectKind = Annotated[Soften | Mosaic | SolidFill, Field(discriminator="kind")]


class RegionEffect(BaseModel, frozen=True):
    """A single effect applied to a rectangle of one image.

    Attributes:
        id: Stable identifier used by EffectStore edits.
        rect: Area in normalized source coordinates, always within the
            unit square.
        effect: What to do with the pixels under ``rect``.
    """

    id: UUID = Field(default_factory=uuid4)
    rect: NormalizedRect
    effect: EffectKind = Field(default_factory=Soften)

    @field_validator("rect")
    @classmethod
    def _clamp_rect(cls, v: NormalizedRect) -> NormalizedRect:
        return v.clamped()

    def with_rect(self, rect: NormalizedRect) -> Self:
        return type(self)(id=self.id, rect=rect, effect=self.effect)

    def with_effect(self, effect: Soften | Mosaic | SolidFill) -> Self:
        return type(self)(id=self.id, rect=self.rect, effect=effect)

    @property
    def content_hash(self) -> str:
        """Digest over geometry and effect parameters (not the id)."""
        payload = {
            "rect": self.rect.content_key(),
            "effect": self.effect.model_dump(mode="json"),
        }
        encoded = json.dumps(payload, sort_keys=True).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()

    def is_outside_crop(self, crop_area: NormalizedRect) -> bool:
        """True if nothing of this effect survives the crop."""
        return not self.rect.intersects(crop_area)

    def is_partially_cropped(self, crop_area: NormalizedRect) -> bool:
        return self.rect.intersects(crop_area) and not crop_area.contains(self.rect)


class EffectStore:
    """Ordered effect lists keyed by image identity.

    The store is the editable side; batch runs take ``snapshot()`` so later
    edits never reach work that is already scheduled.
    """

    def __init__(self) -> None:
        self._effects: dict[Hashable, list[RegionEffect]] = {}

    def effects_for(self, identity: Hashable) -> tuple[RegionEffect, ...]:
        return tuple(self._effects.get(identity, ()))

    def add(self, identity: Hashable, effect: RegionEffect) -> None:
        self._effects.setdefault(identity, []).append(effect)

    def remove(self, identity: Hashable, effect_id: UUID) -> bool:
        """Remove one effect; returns False if it was not present."""
        effects = self._effects.get(identity)
        if not effects:
            return False
        for i, effect in enumerate(effects):
            if effect.id == effect_id:
                del effects[i]
                if not effects:
                    del self._effects[identity]
                return True
        return False

    def update(
        self,
        identity: Hashable,
        effect_id: UUID,
        *,
        rect: NormalizedRect | None = None,
        effect: Soften | Mosaic | SolidFill | None = None,
    ) -> RegionEffect:
        """Replace the rect and/or effect of an existing entry in place.

        Raises:
            KeyError: If no effect with ``effect_id`` exists for ``identity``.
        """
        effects = self._effects.get(identity, [])
        for i, current in enumerate(effects):
            if current.id != effect_id:
                continue
            updated = current
            if rect is not None:
                updated = updated.with_rect(rect)
            if effect is not None:
                updated = updated.with_effect(effect)
            effects[i] = updated
            return updated
        raise KeyError(f"No effect {effect_id} for {identity!r}")

    def clear(self, identity: Hashable) -> None:
        self._effects.pop(identity, None)

    def clear_many(self, identities: Iterable[Hashable]) -> None:
        for identity in identities:
            self._effects.pop(identity, None)

    def clear_all(self) -> None:
        self._effects.clear()

    @property
    def has_any(self) -> bool:
        return any(self._effects.values())

    def snapshot(self) -> MappingProxyType[Hashable, tuple[RegionEffect, ...]]:
        """Return an immutable copy of every effect list."""
        return MappingProxyType(
            {identity: tuple(effects) for identity, effects in self._effects.items()}
        )

    def count_outside_crop(self, identity: Hashable, crop_area: NormalizedRect) -> int:
        return sum(1 for e in self.effects_for(identity) if e.is_outside_crop(crop_area))

    def count_partially_cropped(
        self, identity: Hashable, crop_area: NormalizedRect
    ) -> int:
        return sum(
            1 for e in self.effects_for(identity) if e.is_partially_cropped(crop_area)
        )


def mosaic_block_size(region: Region, intensity: float, divisor: float) -> int:
    """Block edge in pixels for a mosaic over ``region``."""
    base = max(region.width, region.height) / divisor
    return max(1, round(base * (0.3 + 0.7 * intensity)))


def apply_effects(
    image: Image.Image,
    effects: Iterable[RegionEffect],
    *,
    max_soften_radius: float | None = None,
    mosaic_divisor: float | None = None,
) -> Image.Image:
    """Rasterize ``effects`` onto a copy of ``image``.

    Args:
        image: Image in the space the rects were authored in.
        effects: Effects in paint order.
        max_soften_radius: Blur radius at intensity 1.
            Defaults to settings.MAX_SOFTEN_RADIUS.
        mosaic_divisor: Base mosaic block is max(w, h) / divisor.
            Defaults to settings.MOSAIC_BLOCK_DIVISOR.

    Returns:
        A new RGB or RGBA image.
    """
    max_radius = settings.MAX_SOFTEN_RADIUS if max_soften_radius is None else max_soften_radius
    divisor = settings.MOSAIC_BLOCK_DIVISOR if mosaic_divisor is None else mosaic_divisor

    result = normalize_mode(image).copy()
    bounds = Size(width=result.width, height=result.height)

    for effect in effects:
        region = effect.rect.to_region(bounds)
        if region is None:
            logger.debug("Skipping empty effect %s", effect.id)
            continue

        kind = effect.effect
        logger.debug("Applying %s to %d px", kind.kind, region.area)
        if isinstance(kind, Soften):
            _soften(result, region, bounds, kind.intensity * max_radius)
        elif isinstance(kind, Mosaic):
            _mosaic(result, region, mosaic_block_size(region, kind.intensity, divisor))
        else:
            _fill(result, region, kind.color)

    return result


def _soften(image: Image.Image, region: Region, bounds: Size, radius: float) -> None:
    if radius <= 0:
        return
    padded = region.expanded(math.ceil(radius * _SOFTEN_REACH), bounds)
    blurred = image.crop(padded.to_box()).filter(ImageFilter.GaussianBlur(radius))
    inner = blurred.crop(
        (
            region.x - padded.x,
            region.y - padded.y,
            region.right - padded.x,
            region.bottom - padded.y,
        )
    )
    image.paste(inner, (region.x, region.y))


def _mosaic(image: Image.Image, region: Region, block: int) -> None:
    pixels = np.asarray(image.crop(region.to_box()), dtype=np.float64)
    height, width = pixels.shape[:2]

    row_starts = np.arange(0, height, block)
    col_starts = np.arange(0, width, block)
    row_sizes = np.diff(np.append(row_starts, height))
    col_sizes = np.diff(np.append(col_starts, width))

    sums = np.add.reduceat(np.add.reduceat(pixels, row_starts, axis=0), col_starts, axis=1)
    counts = np.outer(row_sizes, col_sizes)[..., np.newaxis]
    means = sums / counts

    painted = np.repeat(np.repeat(means, row_sizes, axis=0), col_sizes, axis=1)
    tile = Image.fromarray(np.clip(np.rint(painted), 0, 255).astype(np.uint8))
    image.paste(tile, (region.x, region.y))


def _fill(image: Image.Image, region: Region, color: tuple[int, int, int]) -> None:
    fill = (*color, 255) if image.mode == "RGBA" else color
    image.paste(fill, region.to_box())
