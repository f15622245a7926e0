"""cropbatch CLI - batch crop, transform, redact and watermark images.

Thin command-line shell over ``cropbatch.batch``; all processing rules live
in the library.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer

from cropbatch import __version__
from cropbatch.batch.executor import BatchItem, BatchOutcome, BatchResult, process_batch
from cropbatch.batch.naming import ConflictPolicy, NamingMode, NamingSpec
from cropbatch.core.crop_engine import CropSpec
from cropbatch.core.detect import detect_common
from cropbatch.core.effects import Mosaic, RegionEffect, Soften, SolidFill
from cropbatch.core.pipeline import PipelineSettings
from cropbatch.core.resize import ResizeMode, ResizeSpec
from cropbatch.exceptions import DecodeError, PipelineError
from cropbatch.geometry.overlay import Anchor, OverlaySizeMode, OverlaySpec
from cropbatch.geometry.primitives import NormalizedRect
from cropbatch.geometry.transforms import GeometricTransform, Rotation, apply_transform
from cropbatch.imaging.codec import ExportFormat, ExportSpec, decode
from cropbatch.utils.logging import configure_logging, get_logger

app = typer.Typer(
    name="cropbatch",
    help="cropbatch: deterministic batch image cropping pipeline",
    add_completion=False,
)

_NAMED_COLORS = {"black": (0, 0, 0), "white": (255, 255, 255)}


# =============================================================================
# Commands
# =============================================================================


@app.command()
def version(
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Show version information."""
    if json_output:
        typer.echo(json.dumps({"version": __version__}))
    else:
        typer.echo(f"cropbatch {__version__}")


@app.command()
def process(  # noqa: PLR0913
    inputs: Annotated[
        list[Path],
        typer.Argument(
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            help="Images to process",
        ),
    ],
    top: Annotated[int, typer.Option("--top", "-t", min=0, help="Crop from top edge")] = 0,
    bottom: Annotated[
        int, typer.Option("--bottom", "-b", min=0, help="Crop from bottom edge")
    ] = 0,
    left: Annotated[int, typer.Option("--left", "-l", min=0, help="Crop from left edge")] = 0,
    right: Annotated[
        int, typer.Option("--right", "-r", min=0, help="Crop from right edge")
    ] = 0,
    detect_ui_bars: Annotated[
        bool,
        typer.Option(
            "--detect-ui",
            help="Replace top/bottom with solid UI bars shared by most inputs",
        ),
    ] = False,
    rotate: Annotated[
        int, typer.Option("--rotate", help="Clockwise rotation: 0, 90, 180 or 270")
    ] = 0,
    flip_horizontal: Annotated[
        bool, typer.Option("--flip-h", help="Mirror left/right after rotating")
    ] = False,
    flip_vertical: Annotated[
        bool, typer.Option("--flip-v", help="Mirror top/bottom after rotating")
    ] = False,
    resize_mode: Annotated[
        ResizeMode, typer.Option("--resize", help="Resize mode")
    ] = ResizeMode.NONE,
    width: Annotated[int | None, typer.Option("--width", help="Target width")] = None,
    height: Annotated[int | None, typer.Option("--height", help="Target height")] = None,
    percent: Annotated[
        float | None, typer.Option("--percent", help="Scale percentage")
    ] = None,
    stretch: Annotated[
        bool, typer.Option("--stretch", help="Ignore aspect ratio in exact mode")
    ] = False,
    soften: Annotated[
        list[str] | None,
        typer.Option("--soften", help="Blur region x,y,w,h (normalized, repeatable)"),
    ] = None,
    mosaic: Annotated[
        list[str] | None,
        typer.Option("--mosaic", help="Pixelate region x,y,w,h (normalized, repeatable)"),
    ] = None,
    fill: Annotated[
        list[str] | None,
        typer.Option("--fill", help="Solid fill region x,y,w,h (normalized, repeatable)"),
    ] = None,
    intensity: Annotated[
        float, typer.Option("--intensity", help="Soften/mosaic intensity 0-1")
    ] = 1.0,
    fill_color: Annotated[
        str, typer.Option("--fill-color", help="black, white or r,g,b")
    ] = "black",
    text: Annotated[
        str | None, typer.Option("--text", help="Text overlay template, e.g. '© {year}'")
    ] = None,
    overlay_image: Annotated[
        Path | None,
        typer.Option("--overlay-image", exists=True, dir_okay=False, help="Overlay image"),
    ] = None,
    anchor: Annotated[
        Anchor, typer.Option("--anchor", help="Overlay position")
    ] = Anchor.BOTTOM_RIGHT,
    opacity: Annotated[float, typer.Option("--opacity", help="Overlay opacity 0-1")] = 0.5,
    margin: Annotated[float, typer.Option("--margin", help="Overlay margin in px")] = 20.0,
    overlay_size_mode: Annotated[
        OverlaySizeMode | None,
        typer.Option("--overlay-size-mode", help="Overlay sizing (default: original for text)"),
    ] = None,
    overlay_size: Annotated[
        float, typer.Option("--overlay-size", help="Overlay size value")
    ] = 20.0,
    suffix: Annotated[
        str | None, typer.Option("--suffix", "-s", help="Filename suffix")
    ] = None,
    template: Annotated[
        str | None,
        typer.Option("--template", help="Name template: {name} {index} {counter} {date} {time}"),
    ] = None,
    output_dir: Annotated[
        Path | None,
        typer.Option("--output", "-o", file_okay=False, help="Output directory"),
    ] = None,
    on_conflict: Annotated[
        ConflictPolicy, typer.Option("--on-conflict", help="Existing output handling")
    ] = ConflictPolicy.RENAME,
    fmt: Annotated[
        ExportFormat, typer.Option("--format", "-f", help="Output format")
    ] = ExportFormat.PNG,
    quality: Annotated[
        int | None, typer.Option("--quality", "-q", min=1, max=100, help="Lossy quality")
    ] = None,
    keep_format: Annotated[
        bool, typer.Option("--keep-format", help="Reuse each source's format")
    ] = False,
    workers: Annotated[
        int | None, typer.Option("--workers", "-w", min=1, help="Parallel workers")
    ] = None,
    fail_fast: Annotated[
        bool, typer.Option("--fail-fast", help="Stop at the first failing item")
    ] = False,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity (-v, -vv, -vvv)"
        ),
    ] = 0,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Crop, transform, redact and overlay a batch of images."""
    _configure_logging(verbose)
    logger = get_logger(__name__)

    try:
        effects: list[RegionEffect] = []
        for value in soften or ():
            rect = _parse_rect(value)
            effects.append(RegionEffect(rect=rect, effect=Soften(intensity=intensity)))
        for value in mosaic or ():
            rect = _parse_rect(value)
            effects.append(RegionEffect(rect=rect, effect=Mosaic(intensity=intensity)))
        for value in fill or ():
            color = SolidFill(color=_parse_color(fill_color))
            effects.append(RegionEffect(rect=_parse_rect(value), effect=color))

        overlay = None
        if text is not None or overlay_image is not None:
            size_mode = overlay_size_mode or (
                OverlaySizeMode.ORIGINAL if text is not None else OverlaySizeMode.PERCENTAGE
            )
            overlay = OverlaySpec(
                image=decode(overlay_image) if overlay_image is not None else None,
                text=text,
                anchor=anchor,
                margin=margin,
                opacity=opacity,
                size_mode=size_mode,
                size_value=overlay_size,
            )

        export_kwargs: dict[str, object] = {"format": fmt, "preserve_original_format": keep_format}
        if quality is not None:
            export_kwargs["quality"] = quality

        transform = GeometricTransform(
            rotation=_parse_rotation(rotate),
            flip_horizontal=flip_horizontal,
            flip_vertical=flip_vertical,
        )
        crop_spec = CropSpec(top=top, bottom=bottom, left=left, right=right)
        if detect_ui_bars:
            crop_spec = _detect_ui_crop(inputs, transform, crop_spec)

        settings = PipelineSettings(
            crop=crop_spec,
            transform=transform,
            resize=ResizeSpec(
                mode=resize_mode,
                width=width,
                height=height,
                percentage=percent,
                maintain_aspect_ratio=not stretch,
            ),
            overlay=overlay,
            export=ExportSpec(**export_kwargs),  # type: ignore[arg-type]
        )

        naming_kwargs: dict[str, object] = {"output_dir": output_dir}
        if template is not None:
            naming_kwargs.update(mode=NamingMode.TEMPLATE, template=template)
        if suffix is not None:
            naming_kwargs["suffix"] = suffix
        naming = NamingSpec(**naming_kwargs)  # type: ignore[arg-type]
    except (ValueError, PipelineError) as e:
        raise typer.BadParameter(str(e)) from None

    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)

    items = [BatchItem(source_path=path) for path in inputs]
    per_item_effects = {item.key: effects for item in items} if effects else None

    logger.info("Starting processing", inputs=len(items), format=fmt.value)

    try:
        result = process_batch(
            items,
            settings,
            per_item_effects,
            naming,
            conflict_policy=on_conflict,
            max_workers=workers,
            fail_fast=fail_fast,
        )
    except PipelineError as e:
        logger.error("Batch rejected", error=str(e))
        if json_output:
            typer.echo(json.dumps({"error": str(e)}))
        else:
            typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    _print_result(result, json_output)
    raise typer.Exit(0 if result.outcome is BatchOutcome.COMPLETED else 1)


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """cropbatch: deterministic batch image cropping pipeline."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def _configure_logging(verbose: int) -> None:
    """Configure logging based on verbosity level."""
    if verbose == 0:
        level = "WARNING"
    elif verbose == 1:
        level = "INFO"
    else:  # verbose >= 2
        level = "DEBUG"

    configure_logging(level=level)


def _detect_ui_crop(
    inputs: list[Path], transform: GeometricTransform, crop: CropSpec
) -> CropSpec:
    """Detect UI bars common to the inputs, in the space crops apply to."""
    logger = get_logger(__name__)
    images = []
    for path in inputs:
        try:
            images.append(apply_transform(decode(path), transform))
        except DecodeError as e:
            logger.warning("Skipping unreadable input for UI detection", error=str(e))

    detection = detect_common(images)
    logger.info(
        "UI detection",
        top=detection.top,
        top_description=detection.top_description,
        bottom=detection.bottom,
        bottom_description=detection.bottom_description,
    )
    return detection.applied_to(crop)


def _parse_rect(value: str) -> NormalizedRect:
    parts = value.split(",")
    if len(parts) != 4:
        raise ValueError(f"Expected x,y,w,h but got {value!r}")
    try:
        x, y, w, h = (float(p) for p in parts)
    except ValueError:
        raise ValueError(f"Region values must be numbers: {value!r}") from None
    return NormalizedRect(x=x, y=y, width=w, height=h)


def _parse_color(value: str) -> tuple[int, int, int]:
    named = _NAMED_COLORS.get(value.lower())
    if named is not None:
        return named
    parts = value.split(",")
    if len(parts) != 3:
        raise ValueError(f"Expected black, white or r,g,b but got {value!r}")
    r, g, b = (int(p) for p in parts)
    return (r, g, b)


def _parse_rotation(value: int) -> Rotation:
    try:
        return Rotation(value % 360)
    except ValueError:
        raise ValueError(f"Rotation must be a multiple of 90, got {value}") from None


def _print_result(result: BatchResult, json_output: bool) -> None:
    if json_output:
        typer.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        return

    typer.echo(f"Processed {result.completed}/{result.total} images ({result.outcome.value})")
    for path in result.outputs:
        typer.echo(f"  {path}")
    for failure in result.failures:
        typer.echo(f"  FAILED {failure.source_path}: {failure.message}", err=True)
