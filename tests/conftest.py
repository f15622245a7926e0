"""Shared pytest fixtures and configuration."""

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from PIL import Image

from cropbatch.config import Settings
from cropbatch.utils.logging import clear_correlation_context


@pytest.fixture(autouse=True)
def reset_logging_context() -> Iterator[None]:
    """Reset correlation context between tests."""
    clear_correlation_context()
    yield
    clear_correlation_context()


@pytest.fixture
def test_settings() -> Settings:
    """Create a Settings instance with test-safe defaults."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        LOG_LEVEL="DEBUG",
        LOG_FORMAT="console",
    )


def _quadrant_image(width: int, height: int, mode: str = "RGB") -> Image.Image:
    """Image with four solid quadrants: red, green / blue, white."""
    colors = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (255, 255, 255)]
    image = Image.new("RGB", (width, height))
    half_w, half_h = width // 2, height // 2
    boxes = [
        (0, 0, half_w, half_h),
        (half_w, 0, width, half_h),
        (0, half_h, half_w, height),
        (half_w, half_h, width, height),
    ]
    for box, color in zip(boxes, colors, strict=True):
        image.paste(color, box)
    return image.convert(mode) if mode != "RGB" else image


@pytest.fixture
def quadrant_image() -> Image.Image:
    """40x20 RGB image with distinct quadrant colors."""
    return _quadrant_image(40, 20)


@pytest.fixture
def gradient_image() -> Image.Image:
    """64x48 RGB image where every pixel value depends on its position."""
    image = Image.new("RGB", (64, 48))
    image.putdata(
        [((x * 4) % 256, (y * 5) % 256, (x + y) % 256) for y in range(48) for x in range(64)]
    )
    return image


@pytest.fixture
def make_image_files(tmp_path: Path) -> Callable[..., list[Path]]:
    """Factory writing ``count`` PNG files into ``tmp_path``."""

    def _make(
        count: int,
        *,
        size: tuple[int, int] = (40, 20),
        prefix: str = "img",
        directory: Path | None = None,
    ) -> list[Path]:
        target = directory or tmp_path
        target.mkdir(parents=True, exist_ok=True)
        paths = []
        for i in range(count):
            path = target / f"{prefix}{i:02d}.png"
            _quadrant_image(*size).save(path)
            paths.append(path)
        return paths

    return _make
