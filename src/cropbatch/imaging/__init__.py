"""Image codec layer: decode sources, encode results, write outputs."""

from cropbatch.imaging.codec import (
    ExportFormat,
    ExportSpec,
    decode,
    encode,
    normalize_mode,
    write_bytes,
)

__all__ = [
    "ExportFormat",
    "ExportSpec",
    "decode",
    "encode",
    "normalize_mode",
    "write_bytes",
]
