"""Image decode, encode and write for cropbatch.

Decoding applies the EXIF orientation tag so every later stage sees the image
upright. Encoding produces bytes in memory; writing is a separate atomic
step so a failed or cancelled item never leaves a half-written output.
"""

from __future__ import annotations

from enum import Enum
from io import BytesIO
from pathlib import Path

from PIL import Image, ImageOps
from pydantic import BaseModel, Field

from cropbatch.config import settings
from cropbatch.exceptions import DecodeError, EncodeError, WriteError


class ExportFormat(str, Enum):
    """Output encodings supported by Pillow without plugins."""

    PNG = "png"
    JPEG = "jpeg"
    TIFF = "tiff"
    WEBP = "webp"

    @property
    def extension(self) -> str:
        return "jpg" if self is ExportFormat.JPEG else self.value

    @property
    def pillow_format(self) -> str:
        return self.value.upper()

    @property
    def supports_quality(self) -> bool:
        return self in (ExportFormat.JPEG, ExportFormat.WEBP)

    @property
    def supports_alpha(self) -> bool:
        return self is not ExportFormat.JPEG

    @classmethod
    def from_extension(cls, extension: str) -> ExportFormat | None:
        """Map a file extension (with or without dot) to a format, if known."""
        ext = extension.lower().lstrip(".")
        return _EXTENSION_ALIASES.get(ext)


_EXTENSION_ALIASES = {
    "png": ExportFormat.PNG,
    "jpg": ExportFormat.JPEG,
    "jpeg": ExportFormat.JPEG,
    "tif": ExportFormat.TIFF,
    "tiff": ExportFormat.TIFF,
    "webp": ExportFormat.WEBP,
}


class ExportSpec(BaseModel, frozen=True):
    """How processed images are encoded.

    Attributes:
        format: Output encoding.
        quality: Lossy quality 1-100 (ignored by lossless formats).
        preserve_original_format: Reuse the source's format when it is one
            of the supported outputs.
    """

    format: ExportFormat = ExportFormat.PNG
    quality: int = Field(default_factory=lambda: settings.DEFAULT_QUALITY, ge=1, le=100)
    preserve_original_format: bool = False

    def format_for(self, source_path: Path | str) -> ExportFormat:
        if self.preserve_original_format:
            original = ExportFormat.from_extension(Path(source_path).suffix)
            if original is not None:
                return original
        return self.format

    def extension_for(self, source_path: Path | str) -> str:
        """Return the output extension (without dot) for ``source_path``.

        When the source format is kept, the source's own spelling is reused
        (``.tif`` stays ``.tif``, ``.jpeg`` stays ``.jpeg``).
        """
        if self.preserve_original_format:
            suffix = Path(source_path).suffix
            if ExportFormat.from_extension(suffix) is not None:
                return suffix.lower().lstrip(".")
        return self.format.extension


def normalize_mode(image: Image.Image) -> Image.Image:
    """Convert to RGB, or RGBA when the image carries transparency."""
    if image.mode in ("RGB", "RGBA"):
        return image
    has_alpha = image.mode in ("LA", "PA", "La") or "transparency" in image.info
    return image.convert("RGBA" if has_alpha else "RGB")


def decode(source: Path | str | bytes) -> Image.Image:
    """Read an image and return it upright and fully loaded.

    Args:
        source: File path or encoded bytes.

    Returns:
        The decoded image with EXIF orientation applied.

    Raises:
        DecodeError: If the data cannot be read or is not a supported image.
    """
    path = None if isinstance(source, bytes) else Path(source)
    fp = BytesIO(source) if isinstance(source, bytes) else path
    try:
        with Image.open(fp) as img:  # type: ignore[arg-type]
            img.load()
            upright = ImageOps.exif_transpose(img)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Cannot decode image: {e}", path) from e
    return upright


def encode(
    image: Image.Image,
    fmt: ExportFormat,
    quality: int | None = None,
) -> bytes:
    """Encode ``image`` in ``fmt``.

    Transparency is flattened onto white for formats without alpha.

    Raises:
        EncodeError: If Pillow refuses the image or format.
    """
    quality = settings.DEFAULT_QUALITY if quality is None else quality
    if not 1 <= quality <= 100:
        raise ValueError(f"quality must be in [1, 100], got {quality}")

    out = image
    if not fmt.supports_alpha and out.mode not in ("RGB", "L"):
        rgba = out.convert("RGBA")
        out = Image.new("RGB", rgba.size, (255, 255, 255))
        out.paste(rgba, mask=rgba.getchannel("A"))

    params: dict[str, object] = {}
    if fmt.supports_quality:
        params["quality"] = quality

    buffer = BytesIO()
    try:
        out.save(buffer, format=fmt.pillow_format, **params)
    except (OSError, ValueError, KeyError) as e:
        raise EncodeError(f"Cannot encode image as {fmt.value}: {e}") from e
    return buffer.getvalue()


def write_bytes(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` atomically.

    The bytes go to a hidden sibling file first and are moved into place
    with ``Path.replace`` (atomic on POSIX and Windows).

    Raises:
        WriteError: If the directory is missing or not writable.
    """
    temp_path = path.with_name(f".{path.name}.part")
    try:
        temp_path.write_bytes(data)
        temp_path.replace(path)
    except OSError as e:
        temp_path.unlink(missing_ok=True)
        raise WriteError(f"Cannot write output: {e.strerror or e}", path) from e
