"""Image and text overlay compositing for cropbatch.

An overlay is placed on the final (cropped, resized) bitmap at one of nine
anchor points. Position math runs in top-left-origin pixels:

    pos = margin + (available - overlay) * anchor_fraction + offset

independently for x and y, where ``available`` is the bitmap size minus the
margin on both sides. The result is clamped so the overlay always lies fully
inside the bitmap; an overlay larger than the bitmap is first scaled down
uniformly to fit.

Text overlays substitute template variables ({filename}, {index}, {count},
{date}, {datetime}, {year}, {month}, {day}) before the text is measured.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime
from enum import Enum
from functools import lru_cache
from typing import Annotated, Self

from PIL import Image, ImageDraw, ImageFilter, ImageFont
from pydantic import BaseModel, Field, model_validator

from cropbatch.geometry.primitives import Size

logger = logging.getLogger(__name__)

_Channel = Annotated[int, Field(ge=0, le=255)]
RGBAColor = tuple[_Channel, _Channel, _Channel, _Channel]

_TEMPLATE_TOKEN_RE = re.compile(r"\{(\w+)\}")

_FALLBACK_FONTS = ("DejaVuSans.ttf", "Arial.ttf")
_FALLBACK_BOLD_FONTS = ("DejaVuSans-Bold.ttf", "Arial Bold.ttf")


class Anchor(str, Enum):
    """Nine-point placement grid."""

    TOP_LEFT = "top_left"
    TOP_CENTER = "top_center"
    TOP_RIGHT = "top_right"
    CENTER_LEFT = "center_left"
    CENTER = "center"
    CENTER_RIGHT = "center_right"
    BOTTOM_LEFT = "bottom_left"
    BOTTOM_CENTER = "bottom_center"
    BOTTOM_RIGHT = "bottom_right"

    @property
    def fraction(self) -> tuple[float, float]:
        """Return (fx, fy) in [0, 1]; (0, 0) is top-left, (1, 1) bottom-right."""
        vertical, _, horizontal = self.value.partition("_")
        if self is Anchor.CENTER:
            return (0.5, 0.5)
        fx = {"left": 0.0, "center": 0.5, "right": 1.0}[horizontal]
        fy = {"top": 0.0, "center": 0.5, "bottom": 1.0}[vertical]
        return (fx, fy)


class OverlaySizeMode(str, Enum):
    ORIGINAL = "original"
    PERCENTAGE = "percentage"  # of the target width
    FIXED_WIDTH = "fixed_width"
    FIXED_HEIGHT = "fixed_height"


class TextShadow(BaseModel, frozen=True):
    color: RGBAColor = (0, 0, 0, 128)
    blur: float = Field(default=3.0, ge=0)
    offset_x: int = 2
    offset_y: int = 2


class TextOutline(BaseModel, frozen=True):
    color: RGBAColor = (0, 0, 0, 255)
    width: int = Field(default=1, ge=0)


class TextStyle(BaseModel, frozen=True):
    """Font and decoration for text overlays.

    Attributes:
        font_family: TrueType font file stem, resolved by Pillow's font path.
        font_size: Size in pixels.
        color: Fill color.
        bold: Prefer the ``-Bold`` variant of the family.
        shadow: Optional blurred drop shadow.
        outline: Optional stroke around each glyph.
    """

    font_family: str = "DejaVuSans"
    font_size: int = Field(default=48, gt=0)
    color: RGBAColor = (255, 255, 255, 255)
    bold: bool = False
    shadow: TextShadow | None = None
    outline: TextOutline | None = None


class OverlaySpec(BaseModel, frozen=True, arbitrary_types_allowed=True):
    """What to overlay and where.

    Exactly one of ``image`` or ``text`` must be set.

    Attributes:
        image: Overlay bitmap (any mode; composited as RGBA).
        text: Text template, substituted per item.
        anchor: Grid position.
        margin: Inset from every edge in pixels.
        offset_x: Extra shift in pixels; positive moves right.
        offset_y: Extra shift in pixels; positive moves down.
        opacity: Multiplier applied to the overlay's alpha channel.
        size_mode: How the overlay is scaled against the target.
        size_value: Percent of target width, or pixels, depending on mode.
        text_style: Styling for text overlays.
    """

    image: Image.Image | None = None
    text: str | None = None
    anchor: Anchor = Anchor.BOTTOM_RIGHT
    margin: float = Field(default=20.0, ge=0)
    offset_x: float = 0.0
    offset_y: float = 0.0
    opacity: float = Field(default=0.5, ge=0, le=1)
    size_mode: OverlaySizeMode = OverlaySizeMode.PERCENTAGE
    size_value: float = Field(default=20.0, gt=0)
    text_style: TextStyle = Field(default_factory=TextStyle)

    @model_validator(mode="after")
    def _check_content(self) -> Self:
        if (self.image is None) == (self.text is None):
            raise ValueError("OverlaySpec needs exactly one of image or text")
        if self.text is not None and not self.text.strip():
            raise ValueError("Text overlay must not be blank")
        return self

    def copy_with_own_image(self) -> OverlaySpec:
        """Return a copy that does not share the overlay bitmap."""
        if self.image is None:
            return self
        return self.model_copy(update={"image": self.image.copy()})


class TemplateContext(BaseModel, frozen=True):
    """Per-item values for text template substitution."""

    filename: str = ""
    index: int = 1
    count: int = 1
    now: datetime = Field(default_factory=datetime.now)


def substitute_template(template: str, context: TemplateContext) -> str:
    """Replace known ``{token}`` variables; unknown tokens are left as-is."""
    values = {
        "filename": context.filename,
        "index": str(context.index),
        "count": str(context.count),
        "date": context.now.strftime("%Y-%m-%d"),
        "datetime": context.now.strftime("%Y-%m-%d %H:%M"),
        "year": context.now.strftime("%Y"),
        "month": context.now.strftime("%m"),
        "day": context.now.strftime("%d"),
    }
    return _TEMPLATE_TOKEN_RE.sub(lambda m: values.get(m.group(1), m.group(0)), template)


def overlay_size(content_size: Size, target_size: Size, spec: OverlaySpec) -> Size:
    """Scale the overlay per ``spec.size_mode``, then shrink it to fit the target.

    Aspect ratio of the content is always preserved.
    """
    aspect = content_size.aspect_ratio
    if spec.size_mode is OverlaySizeMode.PERCENTAGE:
        width = target_size.width * spec.size_value / 100.0
        height = width / aspect
    elif spec.size_mode is OverlaySizeMode.FIXED_WIDTH:
        width = spec.size_value
        height = width / aspect
    elif spec.size_mode is OverlaySizeMode.FIXED_HEIGHT:
        height = spec.size_value
        width = height * aspect
    else:
        width, height = float(content_size.width), float(content_size.height)

    if width > target_size.width or height > target_size.height:
        fit = min(target_size.width / width, target_size.height / height)
        width, height = width * fit, height * fit

    return Size(
        width=max(1, min(target_size.width, round(width))),
        height=max(1, min(target_size.height, round(height))),
    )


def overlay_position(
    size: Size,
    target_size: Size,
    spec: OverlaySpec,
) -> tuple[int, int]:
    """Return the top-left pixel of the overlay, clamped inside the target."""
    fx, fy = spec.anchor.fraction
    available_w = target_size.width - 2 * spec.margin
    available_h = target_size.height - 2 * spec.margin

    x = spec.margin + (available_w - size.width) * fx + spec.offset_x
    y = spec.margin + (available_h - size.height) * fy + spec.offset_y

    max_x = max(0, target_size.width - size.width)
    max_y = max(0, target_size.height - size.height)
    return (
        max(0, min(max_x, round(x))),
        max(0, min(max_y, round(y))),
    )


@lru_cache(maxsize=32)
def _load_font(
    family: str,
    size: int,
    bold: bool,
    strict: bool,
) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    candidates = [f"{family}-Bold.ttf"] if bold else []
    candidates.append(f"{family}.ttf")
    candidates.extend(_FALLBACK_BOLD_FONTS if bold else _FALLBACK_FONTS)

    for name in candidates:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue

    if strict:
        raise RuntimeError(
            f"No TrueType font available for {family!r}. "
            "Strict font check is enabled. Install system fonts."
        )
    logger.warning(
        "No TrueType font available for %r (tried %s). Using Pillow's default font.",
        family,
        ", ".join(candidates),
    )
    return ImageFont.load_default(size=size)


class OverlayCompositor:
    """Composites image or text overlays onto processed bitmaps.

    Stateless apart from the font policy; safe to share across worker
    threads.
    """

    def __init__(self, *, strict_font_check: bool = False) -> None:
        """Initialize the compositor.

        Args:
            strict_font_check: If True, raise RuntimeError when no TrueType
                font is found instead of falling back to Pillow's default.
        """
        self.strict_font_check = strict_font_check

    def apply(
        self,
        image: Image.Image,
        spec: OverlaySpec,
        context: TemplateContext | None = None,
    ) -> Image.Image:
        """Composite ``spec`` onto ``image``.

        Args:
            image: RGB or RGBA target in its final pixel space.
            spec: Overlay content and placement.
            context: Values for text templates. Defaults to an empty context.

        Returns:
            A new image in the same mode as ``image``.
        """
        if spec.opacity <= 0:
            return image.copy()

        if spec.image is not None:
            content = spec.image.convert("RGBA")
        else:
            assert spec.text is not None
            text = substitute_template(spec.text, context or TemplateContext())
            if not text.strip():
                logger.debug("Text overlay is empty after substitution; skipping")
                return image.copy()
            content = self.render_text(text, spec.text_style)

        target = Size(width=image.width, height=image.height)
        size = overlay_size(Size(width=content.width, height=content.height), target, spec)
        if content.size != size.to_tuple():
            content = content.resize(size.to_tuple(), Image.Resampling.LANCZOS)

        if spec.opacity < 1:
            alpha = content.getchannel("A").point(lambda a: round(a * spec.opacity))
            content.putalpha(alpha)

        layer = Image.new("RGBA", image.size, (0, 0, 0, 0))
        layer.paste(content, overlay_position(size, target, spec))

        base = image if image.mode == "RGBA" else image.convert("RGBA")
        composited = Image.alpha_composite(base, layer)
        return composited if image.mode == "RGBA" else composited.convert(image.mode)

    def render_text(self, text: str, style: TextStyle) -> Image.Image:
        """Render ``text`` to a tightly sized RGBA image.

        The canvas is padded to hold the shadow's offset and blur.
        """
        font = _load_font(
            style.font_family,
            style.font_size,
            style.bold,
            self.strict_font_check,
        )
        stroke_width = style.outline.width if style.outline else 0
        stroke_fill = style.outline.color if style.outline else None

        measure = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
        left, top, right, bottom = measure.textbbox(
            (0, 0), text, font=font, stroke_width=stroke_width
        )

        pad = 0
        if style.shadow is not None:
            shadow = style.shadow
            pad = math.ceil(shadow.blur * 3) + max(abs(shadow.offset_x), abs(shadow.offset_y))

        canvas_size = (max(1, right - left + 2 * pad), max(1, bottom - top + 2 * pad))
        origin = (pad - left, pad - top)
        canvas = Image.new("RGBA", canvas_size, (0, 0, 0, 0))

        if style.shadow is not None:
            shadow = style.shadow
            shadow_layer = Image.new("RGBA", canvas_size, (0, 0, 0, 0))
            ImageDraw.Draw(shadow_layer).text(
                (origin[0] + shadow.offset_x, origin[1] + shadow.offset_y),
                text,
                fill=shadow.color,
                font=font,
                stroke_width=stroke_width,
                stroke_fill=shadow.color,
            )
            if shadow.blur > 0:
                shadow_layer = shadow_layer.filter(ImageFilter.GaussianBlur(shadow.blur))
            canvas = Image.alpha_composite(canvas, shadow_layer)

        text_layer = Image.new("RGBA", canvas_size, (0, 0, 0, 0))
        ImageDraw.Draw(text_layer).text(
            origin,
            text,
            fill=style.color,
            font=font,
            stroke_width=stroke_width,
            stroke_fill=stroke_fill,
        )
        return Image.alpha_composite(canvas, text_layer)
