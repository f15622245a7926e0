"""Detection of solid UI bars along the top and bottom edges.

Screenshots often carry a menu bar, status bar or home indicator strip in a
single flat color. The detector samples three columns (at 1/4, 1/2 and 3/4
of the width), averages them per row, and walks inward from each edge while
the row color stays within a small distance of the outermost row. A run of
at least ``MIN_BAR_HEIGHT`` rows is suggested as a crop inset.

Detection looks at the image as it will be cropped: callers that rotate or
flip first should detect on the transformed image.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence

import numpy as np
import numpy.typing as npt
from PIL import Image
from pydantic import BaseModel, Field

from cropbatch.core.crop_engine import CropSpec
from cropbatch.geometry.crop_space import VerticalEdge, edge_row

logger = logging.getLogger(__name__)

MIN_BAR_HEIGHT = 15
MAX_SCAN_ROWS = 150
COLOR_TOLERANCE = 15  # summed absolute RGB difference

# (low, high, label), inclusive; first match wins
KNOWN_UI_HEIGHTS: tuple[tuple[int, int, str], ...] = (
    (22, 25, "macOS menu bar"),
    (28, 30, "macOS window title bar"),
    (48, 52, "macOS menu bar + title bar"),
    (20, 20, "iOS status bar (pre-iPhone X)"),
    (44, 47, "iOS status bar (notch)"),
    (54, 59, "iOS Dynamic Island status bar"),
    (21, 21, "iOS home indicator (iPhone X+)"),
    (34, 34, "iOS home indicator area"),
    (52, 56, "Browser tab bar"),
    (85, 92, "Browser full chrome"),
    (80, 85, "macOS Dock area"),
)


class UIDetection(BaseModel, frozen=True):
    """Suggested top/bottom insets found by the detector.

    Attributes:
        top: Rows to remove from the top edge (0 when nothing was found).
        bottom: Rows to remove from the bottom edge.
        top_description: Known UI element matching ``top``, if any.
        bottom_description: Known UI element matching ``bottom``, if any.
    """

    top: int = Field(default=0, ge=0)
    bottom: int = Field(default=0, ge=0)
    top_description: str | None = None
    bottom_description: str | None = None

    @property
    def has_detection(self) -> bool:
        return self.top > 0 or self.bottom > 0

    def to_crop_spec(self) -> CropSpec:
        return CropSpec(top=self.top, bottom=self.bottom)

    def applied_to(self, crop: CropSpec) -> CropSpec:
        """Return ``crop`` with detected edges replacing its top/bottom."""
        return CropSpec(
            top=self.top or crop.top,
            bottom=self.bottom or crop.bottom,
            left=crop.left,
            right=crop.right,
        )


def describe_height(height: int) -> str | None:
    """Name the UI element a bar height usually belongs to."""
    for low, high, label in KNOWN_UI_HEIGHTS:
        if low <= height <= high:
            return label
    return None


def _row_colors(image: Image.Image) -> npt.NDArray[np.int64]:
    """Per-row mean RGB of the three sample columns, truncated to ints."""
    rgb = np.asarray(image.convert("RGB"), dtype=np.int64)
    width = rgb.shape[1]
    columns = [width // 4, width // 2, 3 * width // 4]
    return rgb[:, columns, :].sum(axis=1) // len(columns)


def detect_bar(
    image: Image.Image,
    edge: VerticalEdge,
    *,
    min_height: int = MIN_BAR_HEIGHT,
    tolerance: int = COLOR_TOLERANCE,
) -> int | None:
    """Measure a solid bar at one edge of ``image``.

    The scan covers at most a third of the height and never more than
    ``MAX_SCAN_ROWS`` rows.

    Args:
        image: Image to inspect, in any mode.
        edge: Which visual edge to scan from.
        min_height: Shortest run reported as a bar.
        tolerance: Largest summed RGB difference still counted as the same
            color as the outermost row.

    Returns:
        The bar height in rows, or None if no bar of ``min_height`` exists.
    """
    height = image.height
    max_scan = min(height // 3, MAX_SCAN_ROWS)
    if max_scan < 2:
        return None

    colors = _row_colors(image)
    rows = [edge_row(edge, inset, height) for inset in range(max_scan)]
    distances = np.abs(colors[rows] - colors[rows[0]]).sum(axis=1)

    breaks = np.flatnonzero(distances[1:] >= tolerance)
    bar = int(breaks[0]) + 1 if breaks.size else max_scan
    return bar if bar >= min_height else None


def detect_ui(image: Image.Image) -> UIDetection:
    """Suggest top and bottom insets for one image."""
    top = detect_bar(image, VerticalEdge.TOP) or 0
    bottom = detect_bar(image, VerticalEdge.BOTTOM) or 0
    result = UIDetection(
        top=top,
        bottom=bottom,
        top_description=describe_height(top) if top else None,
        bottom_description=describe_height(bottom) if bottom else None,
    )
    if result.has_detection:
        logger.debug(
            "Detected UI bars top=%d (%s) bottom=%d (%s)",
            top,
            result.top_description,
            bottom,
            result.bottom_description,
        )
    return result


def _majority(values: list[int], total: int) -> int:
    """Most common non-zero value if more than half of ``total`` agree."""
    counts = Counter(value for value in values if value > 0)
    if not counts:
        return 0
    value, count = counts.most_common(1)[0]
    return value if count > total // 2 else 0


def detect_common(images: Sequence[Image.Image]) -> UIDetection:
    """Suggest insets shared by the majority of a batch.

    Each edge is decided independently: the most common detected height is
    kept only when more than half of all images report exactly that value.
    Ties go to the height seen first.
    """
    if not images:
        return UIDetection()

    results = [detect_ui(image) for image in images]
    top = _majority([r.top for r in results], len(images))
    bottom = _majority([r.bottom for r in results], len(images))
    logger.info(
        "Common UI detection over %d images: top=%d bottom=%d", len(images), top, bottom
    )
    return UIDetection(
        top=top,
        bottom=bottom,
        top_description=describe_height(top) if top else None,
        bottom_description=describe_height(bottom) if bottom else None,
    )
