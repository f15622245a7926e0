"""Custom exceptions for pipeline and batch operations.

Every per-item failure raised by the pipeline derives from PipelineError so
the batch executor can record it against the item and keep going. Pre-flight
failures (naming collisions, source overwrite, existing outputs) are raised
before any file is written.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cropbatch.core.crop_engine import CropSpec
    from cropbatch.geometry.primitives import Size


class PipelineError(Exception):
    """Base exception for all pipeline-related errors."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        """Initialize pipeline error with optional path context.

        Args:
            message: Human-readable error description.
            path: Path of the file that caused the error.
        """
        self.path = Path(path) if path else None
        self.message = message
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with path context if available."""
        if self.path:
            return f"{self.message} (path: {self.path})"
        return self.message


class DecodeError(PipelineError):
    """Raised when a source image cannot be read or decoded."""


class EncodeError(PipelineError):
    """Raised when an image cannot be encoded to the requested format."""


class WriteError(PipelineError):
    """Raised when an encoded image cannot be written to disk."""


class InvalidCropRegionError(PipelineError):
    """Raised when a crop would leave a non-positive width or height."""

    def __init__(
        self,
        message: str,
        path: Path | str | None = None,
        *,
        image_size: Size | None = None,
        crop: CropSpec | None = None,
    ) -> None:
        """Initialize crop error with geometry context.

        Args:
            message: Human-readable error description.
            path: Source path, when known.
            image_size: Size of the image being cropped.
            crop: The offending crop insets.
        """
        self.image_size = image_size
        self.crop = crop
        super().__init__(message, path)

    def _format_message(self) -> str:
        parts = [self.message]
        if self.path:
            parts.append(f"path={self.path}")
        if self.image_size is not None:
            parts.append(f"size={self.image_size.to_tuple()}")
        if self.crop is not None:
            parts.append(
                f"crop=(top={self.crop.top}, bottom={self.crop.bottom}, "
                f"left={self.crop.left}, right={self.crop.right})"
            )

        if len(parts) == 1:
            return parts[0]
        return f"{parts[0]} ({', '.join(parts[1:])})"


class WouldOverwriteSourceError(PipelineError):
    """Raised when an output path equals an input path under no-overwrite policy."""


class OutputExistsError(PipelineError):
    """Raised when an output already exists and the conflict policy is abort."""


class NamingCollisionError(PipelineError):
    """Raised when two items resolve to the same output path.

    Attributes:
        output_path: The shared output path.
        sources: Source paths that resolve to it.
    """

    def __init__(self, output_path: Path, sources: Sequence[Path]) -> None:
        self.sources = tuple(sources)
        names = ", ".join(str(s) for s in self.sources)
        super().__init__(
            f"{len(self.sources)} items resolve to the same output ({names})",
            output_path,
        )

    @property
    def output_path(self) -> Path | None:
        """Return the colliding output path."""
        return self.path


class OperationCancelled(Exception):  # noqa: N818
    """Signal raised by cooperative cancellation checkpoints.

    Not a PipelineError: cancellation is a terminal state of a batch run,
    never a per-item failure.
    """
