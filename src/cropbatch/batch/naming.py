"""Output naming for batch runs.

``output_path`` is a pure function of the source path, the item's position
and a NamingSpec, so pre-flight checks can compute every output before a
single byte is written.

Template tokens:
    {name}     source file stem
    {index}    1-based position in the batch
    {counter}  1-based position, zero-padded to the width of the batch size
    {date}     run date, YYYY-MM-DD
    {time}     run time, HHMMSS
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Self

from pydantic import BaseModel, Field, model_validator

from cropbatch.config import settings

TEMPLATE_TOKENS = frozenset({"name", "index", "counter", "date", "time"})

_TOKEN_RE = re.compile(r"\{([^{}]*)\}")


class NamingMode(str, Enum):
    SUFFIX = "suffix"
    TEMPLATE = "template"


class ConflictPolicy(str, Enum):
    """What to do when a planned output already exists on disk."""

    OVERWRITE = "overwrite"
    RENAME = "rename"
    ABORT = "abort"


class NamingSpec(BaseModel, frozen=True):
    """How output file names are derived.

    Attributes:
        mode: Fixed suffix or token template.
        suffix: Appended to the source stem in suffix mode.
        template: Token template (without extension) in template mode.
        output_dir: Directory for outputs; defaults to each source's directory.
    """

    mode: NamingMode = NamingMode.SUFFIX
    suffix: str = Field(default_factory=lambda: settings.DEFAULT_SUFFIX)
    template: str = "{name}_{counter}"
    output_dir: Path | None = None

    @model_validator(mode="after")
    def _check_template(self) -> Self:
        if self.mode is NamingMode.TEMPLATE:
            validate_template(self.template)
        if "/" in self.suffix or "\\" in self.suffix:
            raise ValueError(f"Suffix must not contain path separators: {self.suffix!r}")
        return self


def validate_template(template: str) -> None:
    """Reject unknown tokens and templates that cannot name a file.

    Raises:
        ValueError: If the template is blank, contains a path separator or
            uses a token outside TEMPLATE_TOKENS.
    """
    if not template.strip():
        raise ValueError("Naming template must not be blank")
    if "/" in template or "\\" in template:
        raise ValueError(f"Naming template must not contain path separators: {template!r}")
    unknown = sorted(set(_TOKEN_RE.findall(template)) - TEMPLATE_TOKENS)
    if unknown:
        raise ValueError(
            f"Unknown naming token(s) {', '.join('{' + t + '}' for t in unknown)}; "
            f"allowed: {', '.join(sorted(TEMPLATE_TOKENS))}"
        )


def render_template(
    template: str,
    *,
    name: str,
    index: int,
    count: int,
    now: datetime,
) -> str:
    """Substitute tokens for the item at 0-based ``index`` of ``count``."""
    validate_template(template)
    position = index + 1
    values = {
        "name": name,
        "index": str(position),
        "counter": str(position).zfill(len(str(max(count, 1)))),
        "date": now.strftime("%Y-%m-%d"),
        "time": now.strftime("%H%M%S"),
    }
    return _TOKEN_RE.sub(lambda m: values[m.group(1)], template)


def output_path(
    input_path: Path,
    index: int,
    naming: NamingSpec,
    *,
    extension: str,
    count: int = 1,
    now: datetime | None = None,
) -> Path:
    """Compute where the item at 0-based ``index`` is written.

    Args:
        input_path: Source file path.
        index: 0-based position of the item in the batch.
        naming: Naming rules.
        extension: Output extension without the dot.
        count: Batch size (controls {counter} padding).
        now: Timestamp for {date} and {time}. Defaults to the current time.

    Returns:
        The output path. Nothing is checked against the filesystem.
    """
    if naming.mode is NamingMode.SUFFIX:
        stem = f"{input_path.stem}{naming.suffix}"
    else:
        stem = render_template(
            naming.template,
            name=input_path.stem,
            index=index,
            count=count,
            now=now or datetime.now(),
        )
    directory = naming.output_dir if naming.output_dir is not None else input_path.parent
    return directory / f"{stem}.{extension}"


def append_numeric_suffix(path: Path, is_taken: Callable[[Path], bool]) -> Path:
    """Return ``<stem>_1<ext>``, ``<stem>_2<ext>``, ... whichever is first free."""
    n = 1
    while True:
        candidate = path.with_name(f"{path.stem}_{n}{path.suffix}")
        if not is_taken(candidate):
            return candidate
        n += 1
