"""End-to-end batch runs over real files.

Exercises decode -> effects -> transform -> crop -> resize -> overlay ->
encode -> write for several sources and formats.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from cropbatch.batch import (
    BatchItem,
    BatchOutcome,
    CancellationToken,
    ConflictPolicy,
    NamingMode,
    NamingSpec,
    process_batch,
)
from cropbatch.core import CropSpec, EffectStore, PipelineSettings, RegionEffect, SolidFill
from cropbatch.core.resize import ResizeMode, ResizeSpec
from cropbatch.exceptions import OutputExistsError
from cropbatch.geometry import GeometricTransform, NormalizedRect, Rotation
from cropbatch.geometry.overlay import Anchor, OverlaySizeMode, OverlaySpec
from cropbatch.imaging import ExportFormat, ExportSpec

pytestmark = pytest.mark.integration


def _write_sources(directory: Path) -> list[Path]:
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for i, fmt in enumerate(("PNG", "JPEG", "TIFF")):
        image = Image.new("RGB", (120, 80), (200, 200, 200))
        image.paste((255, 0, 0), (0, 0, 60, 40))
        extension = {"PNG": "png", "JPEG": "jpg", "TIFF": "tif"}[fmt]
        path = directory / f"photo{i}.{extension}"
        image.save(path, format=fmt)
        paths.append(path)
    return paths


class TestFullPipeline:
    """Full-stack batch runs."""

    def test_every_stage_in_order(self, tmp_path: Path) -> None:
        """Test the combined effect of all stages on real files."""
        sources = _write_sources(tmp_path / "in")
        out_dir = tmp_path / "out"
        out_dir.mkdir()

        store = EffectStore()
        # Black out the red top-left quadrant of the first source only.
        store.add(
            str(sources[0]),
            RegionEffect(
                rect=NormalizedRect(x=0, y=0, width=0.5, height=0.5),
                effect=SolidFill.black(),
            ),
        )
        settings = PipelineSettings(
            transform=GeometricTransform(rotation=Rotation.CW_90),
            crop=CropSpec(top=10, bottom=10),
            resize=ResizeSpec(mode=ResizeMode.PERCENTAGE, percentage=50),
            overlay=OverlaySpec(
                image=Image.new("RGBA", (6, 6), (0, 0, 255, 255)),
                anchor=Anchor.BOTTOM_LEFT,
                margin=0,
                opacity=1.0,
                size_mode=OverlaySizeMode.ORIGINAL,
            ),
            export=ExportSpec(format=ExportFormat.PNG),
        )

        result = process_batch(
            [BatchItem(source_path=p) for p in sources],
            settings,
            store,
            NamingSpec(output_dir=out_dir),
        )

        assert result.outcome is BatchOutcome.COMPLETED
        assert [p.name for p in result.outputs] == [
            "photo0_cropped.png",
            "photo1_cropped.png",
            "photo2_cropped.png",
        ]

        with Image.open(result.outputs[0]) as first, Image.open(result.outputs[2]) as third:
            # 120x80 -> rotated 80x120 -> cropped 80x100 -> halved 40x50
            assert first.size == third.size == (40, 50)
            first_pixels = np.asarray(first.convert("RGB"))
            third_pixels = np.asarray(third.convert("RGB"))

        # The red quadrant sits top-right after rotation; crop and resize keep
        # it in the top-right area. Only the third source still has red there.
        assert tuple(third_pixels[5, 35]) == (255, 0, 0)
        assert tuple(first_pixels[5, 35]) == (0, 0, 0)
        # Overlay lands bottom-left on every output.
        assert tuple(first_pixels[49, 0]) == (0, 0, 255)
        assert tuple(third_pixels[49, 0]) == (0, 0, 255)

    def test_preserve_original_format(self, tmp_path: Path) -> None:
        """Test each output keeps its source's encoding."""
        sources = _write_sources(tmp_path)
        result = process_batch(
            [BatchItem(source_path=p) for p in sources],
            PipelineSettings(export=ExportSpec(preserve_original_format=True)),
        )
        assert [p.suffix for p in result.outputs] == [".png", ".jpg", ".tif"]
        for path, expected in zip(result.outputs, ("PNG", "JPEG", "TIFF"), strict=True):
            with Image.open(path) as img:
                assert img.format == expected

    def test_rename_and_abort_policies(self, tmp_path: Path) -> None:
        """Test rename keeps existing files and abort refuses to start."""
        sources = _write_sources(tmp_path)
        items = [BatchItem(source_path=p) for p in sources]
        first = process_batch(items, PipelineSettings())
        second = process_batch(items, PipelineSettings(), conflict_policy=ConflictPolicy.RENAME)

        assert [p.name for p in second.outputs] == [
            f"{p.stem}_1.png" for p in first.outputs
        ]
        with pytest.raises(OutputExistsError, match="already exist"):
            process_batch(items, PipelineSettings(), conflict_policy=ConflictPolicy.ABORT)

    def test_template_counter_padding(self, tmp_path: Path) -> None:
        """Test {counter} is zero-padded to the batch size."""
        sources = _write_sources(tmp_path / "in")
        extra = [tmp_path / "in" / f"copy{i}.png" for i in range(9)]
        for path in extra:
            Image.new("RGB", (8, 8)).save(path)
        items = [BatchItem(source_path=p) for p in [*sources, *extra]]

        result = process_batch(
            items,
            PipelineSettings(),
            naming=NamingSpec(
                mode=NamingMode.TEMPLATE, template="out_{counter}", output_dir=tmp_path / "in"
            ),
        )
        assert result.outputs[0].name == "out_01.png"
        assert result.outputs[-1].name == "out_12.png"

    def test_mixed_resolutions_still_process(self, tmp_path: Path) -> None:
        """Test a batch with differing sizes crops every item by the same insets."""
        big = tmp_path / "big.png"
        small = tmp_path / "small.png"
        Image.new("RGB", (100, 100)).save(big)
        Image.new("RGB", (50, 50)).save(small)

        result = process_batch(
            [BatchItem(source_path=big), BatchItem(source_path=small)],
            PipelineSettings(crop=CropSpec(left=10)),
        )
        sizes = []
        for path in result.outputs:
            with Image.open(path) as img:
                sizes.append(img.size)
        assert sizes == [(90, 100), (40, 50)]

    def test_cancel_from_progress_callback(self, tmp_path: Path) -> None:
        """Test a token cancelled from the progress callback stops the run."""
        sources = _write_sources(tmp_path)
        token = CancellationToken()
        result = process_batch(
            [BatchItem(source_path=p) for p in sources],
            PipelineSettings(),
            progress=lambda done, total: token.cancel(),
            token=token,
            max_workers=1,
        )
        assert result.outcome is BatchOutcome.CANCELLED
        assert result.completed == 1
