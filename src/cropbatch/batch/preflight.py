"""Pre-flight planning for batch runs.

Every output path is computed and checked before the first write, so a
batch either validates completely or fails without touching the disk:

- two items resolving to the same output -> NamingCollisionError
- an output equal to any input (when forbidden) -> WouldOverwriteSourceError
- an existing output under the abort policy -> OutputExistsError

Under the rename policy, existing outputs get a numeric suffix that is also
guaranteed not to clash with any other item's planned path.
"""

from __future__ import annotations

import os
import sys
from collections import Counter, defaultdict
from collections.abc import Callable, Hashable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from cropbatch.batch.naming import (
    ConflictPolicy,
    NamingSpec,
    append_numeric_suffix,
    output_path,
)
from cropbatch.exceptions import (
    NamingCollisionError,
    OutputExistsError,
    WouldOverwriteSourceError,
)
from cropbatch.geometry.primitives import Size
from cropbatch.imaging.codec import ExportFormat, ExportSpec


def path_key(path: Path) -> str:
    """Comparison key for paths.

    Keys are absolute and case-folded on Windows and macOS, whose default
    filesystems treat names differing only in case as the same file.
    """
    key = os.path.normcase(os.path.abspath(path))
    if sys.platform == "darwin":
        key = key.casefold()
    return key


@dataclass(frozen=True)
class PlannedOutput:
    """Where one item will be written.

    Attributes:
        index: 0-based position in the batch.
        source_path: The item's source.
        path: Final output path after conflict resolution.
        format: Encoding for this item.
        renamed: True if a numeric suffix was added to avoid an existing file.
    """

    index: int
    source_path: Path
    path: Path
    format: ExportFormat
    renamed: bool = False


def plan_outputs(
    sources: Sequence[Path],
    naming: NamingSpec,
    export: ExportSpec,
    *,
    policy: ConflictPolicy = ConflictPolicy.RENAME,
    forbid_source_overwrite: bool = True,
    now: datetime | None = None,
    exists: Callable[[Path], bool] = Path.exists,
) -> list[PlannedOutput]:
    """Compute and validate every output path of a batch.

    Args:
        sources: Source paths in batch order.
        naming: Output naming rules.
        export: Export settings (decides each item's extension).
        policy: Handling of outputs that already exist.
        forbid_source_overwrite: Refuse outputs that equal any input path.
        now: Timestamp for naming tokens; defaults to the current time.
        exists: Filesystem existence check (injectable for tests).

    Returns:
        One PlannedOutput per source, in order.

    Raises:
        NamingCollisionError: Two items resolve to the same output.
        WouldOverwriteSourceError: An output equals an input path.
        OutputExistsError: An output exists and policy is ABORT.
    """
    now = now or datetime.now()
    count = len(sources)

    planned: list[PlannedOutput] = []
    for index, source in enumerate(sources):
        fmt = export.format_for(source)
        path = output_path(
            source,
            index,
            naming,
            extension=export.extension_for(source),
            count=count,
            now=now,
        )
        planned.append(PlannedOutput(index=index, source_path=source, path=path, format=fmt))

    by_key: defaultdict[str, list[PlannedOutput]] = defaultdict(list)
    for plan in planned:
        by_key[path_key(plan.path)].append(plan)
    for plans in by_key.values():
        if len(plans) > 1:
            raise NamingCollisionError(plans[0].path, [p.source_path for p in plans])

    input_keys = {path_key(source) for source in sources}
    if forbid_source_overwrite:
        for plan in planned:
            if path_key(plan.path) in input_keys:
                raise WouldOverwriteSourceError(
                    f"Output would overwrite source {plan.source_path}", plan.path
                )

    if policy is ConflictPolicy.OVERWRITE:
        return planned

    existing = [plan for plan in planned if exists(plan.path)]
    if not existing:
        return planned

    if policy is ConflictPolicy.ABORT:
        raise OutputExistsError(
            f"{len(existing)} output(s) already exist", existing[0].path
        )

    reserved = set(by_key) | input_keys

    def is_taken(candidate: Path) -> bool:
        return path_key(candidate) in reserved or exists(candidate)

    resolved = list(planned)
    for plan in existing:
        new_path = append_numeric_suffix(plan.path, is_taken)
        reserved.add(path_key(new_path))
        resolved[plan.index] = PlannedOutput(
            index=plan.index,
            source_path=plan.source_path,
            path=new_path,
            format=plan.format,
            renamed=True,
        )
    return resolved


@dataclass(frozen=True)
class ResolutionReport:
    """Result of comparing source resolutions across a batch.

    Attributes:
        majority: The most common size, or None for an empty batch.
        mismatched: Identities whose size differs from the majority.
    """

    majority: Size | None
    mismatched: tuple[Hashable, ...] = field(default_factory=tuple)

    @property
    def has_mismatches(self) -> bool:
        return bool(self.mismatched)


def find_resolution_mismatches(sizes: Mapping[Hashable, Size]) -> ResolutionReport:
    """Find items whose resolution differs from the batch majority.

    Pixel crop insets tuned on one resolution cut a different share of an
    image with another, so callers warn about these before exporting. Ties
    resolve to the size seen first.
    """
    if not sizes:
        return ResolutionReport(majority=None)
    majority, _ = Counter(sizes.values()).most_common(1)[0]
    mismatched = tuple(identity for identity, size in sizes.items() if size != majority)
    return ResolutionReport(majority=majority, mismatched=mismatched)
