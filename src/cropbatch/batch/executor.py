"""Batch execution of the pipeline over many images.

A run has three phases:

1. Snapshot: pipeline settings and per-image effect lists are captured when
   the executor is created. Edits made afterwards never reach the run.
2. Pre-flight: every output path is planned and validated before any file
   is written (see ``cropbatch.batch.preflight``).
3. Processing: a fixed-size pool of asyncio workers pulls items from a
   queue. Decoding, pixel stages, encoding and the atomic write run in a
   thread per item via ``asyncio.to_thread``.

Cancellation is cooperative. The token is checked before each item, between
pipeline stages and right before the write; files already written stay in
place and the run reports how many completed.
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from collections.abc import Callable, Hashable, Mapping, Sequence
from datetime import datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType

from PIL import Image
from pydantic import BaseModel, ConfigDict, Field

from cropbatch.batch.naming import ConflictPolicy, NamingSpec
from cropbatch.batch.preflight import (
    PlannedOutput,
    find_resolution_mismatches,
    plan_outputs,
)
from cropbatch.config import settings as app_settings
from cropbatch.core.effects import EffectStore, RegionEffect
from cropbatch.core.pipeline import PipelineSettings, PipelineStage, process_one
from cropbatch.exceptions import OperationCancelled, PipelineError
from cropbatch.geometry.overlay import OverlayCompositor, TemplateContext
from cropbatch.geometry.primitives import Size
from cropbatch.imaging.codec import decode, encode, write_bytes
from cropbatch.utils.logging import get_logger, set_correlation_context

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]


class CancellationToken:
    """Thread-safe cancellation flag shared between a caller and a run."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled()


class BatchItem(BaseModel):
    """One image in a batch.

    Attributes:
        source_path: Where the image came from; drives output naming.
        identity: Key for per-image effects. Defaults to the source path.
        image: Already-decoded pixels. When None the source is decoded.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    source_path: Path
    identity: str | None = None
    image: Image.Image | None = None

    @property
    def key(self) -> str:
        return self.identity if self.identity is not None else str(self.source_path)


class BatchOutcome(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ItemFailure(BaseModel):
    """A per-item error collected during a run."""

    index: int
    identity: str
    source_path: Path
    error_type: str
    message: str


class BatchResult(BaseModel):
    """Summary of a batch run.

    Attributes:
        run_id: Correlation id used in logs.
        outputs: Written paths, in batch order.
        failures: Per-item errors, in batch order.
        completed: Number of outputs written.
        total: Number of items submitted.
        outcome: Terminal state of the run.
    """

    run_id: str
    outputs: list[Path] = Field(default_factory=list)
    failures: list[ItemFailure] = Field(default_factory=list)
    completed: int = 0
    total: int = 0
    outcome: BatchOutcome = BatchOutcome.COMPLETED


class _RunState:
    """Mutable bookkeeping shared by the workers of one run."""

    def __init__(self, total: int) -> None:
        self.total = total
        self.done = 0
        self.outputs: list[tuple[int, Path]] = []
        self.failures: list[ItemFailure] = []
        self.first_error: Exception | None = None


class BatchExecutor:
    """Runs the pipeline over many items with conflict-safe output naming.

    Example:
        >>> executor = BatchExecutor(
        ...     PipelineSettings(crop=CropSpec(top=40)),
        ...     naming=NamingSpec(suffix="_trimmed"),
        ... )
        >>> result = executor.run_sync([BatchItem(source_path=Path("a.png"))])
    """

    def __init__(
        self,
        settings: PipelineSettings,
        effects: EffectStore | Mapping[Hashable, Sequence[RegionEffect]] | None = None,
        naming: NamingSpec | None = None,
        *,
        conflict_policy: ConflictPolicy = ConflictPolicy.RENAME,
        forbid_source_overwrite: bool = True,
        max_workers: int | None = None,
        fail_fast: bool = False,
        progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
        compositor: OverlayCompositor | None = None,
    ) -> None:
        """Capture everything the run will read.

        Args:
            settings: Pipeline settings; snapshotted here.
            effects: Per-identity effect lists; snapshotted here.
            naming: Output naming rules. Defaults to suffix mode.
            conflict_policy: Handling of outputs that already exist.
            forbid_source_overwrite: Refuse outputs equal to any input path.
            max_workers: Worker pool size. Defaults to settings.MAX_WORKERS.
            fail_fast: Stop scheduling after the first failure and re-raise it.
            progress: Called with (done, total) after every finished item.
            token: Cancellation token; a private one is created if omitted.
            compositor: Overlay compositor shared by all workers.
        """
        self._settings = settings.snapshot()
        if isinstance(effects, EffectStore):
            self._effects = effects.snapshot()
        else:
            self._effects = MappingProxyType(
                {identity: tuple(items) for identity, items in (effects or {}).items()}
            )
        self._naming = naming or NamingSpec()
        self._conflict_policy = conflict_policy
        self._forbid_source_overwrite = forbid_source_overwrite
        self._max_workers = app_settings.MAX_WORKERS if max_workers is None else max_workers
        if self._max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self._max_workers}")
        self._fail_fast = fail_fast
        self._progress = progress
        self.token = token or CancellationToken()
        self._compositor = compositor or OverlayCompositor()

    def run_sync(self, items: Sequence[BatchItem]) -> BatchResult:
        """Blocking wrapper around ``run`` for non-async callers."""
        return asyncio.run(self.run(items))

    async def run(self, items: Sequence[BatchItem]) -> BatchResult:
        """Process ``items`` and write their outputs.

        Raises:
            NamingCollisionError: Pre-flight found two items sharing an output.
            WouldOverwriteSourceError: Pre-flight found an output equal to an input.
            OutputExistsError: Pre-flight found an existing output under ABORT.
            Exception: The first item error, when fail_fast is set.
        """
        run_id = uuid.uuid4().hex[:12]
        set_correlation_context(run_id=run_id)
        now = datetime.now()

        plans = plan_outputs(
            [item.source_path for item in items],
            self._naming,
            self._settings.export,
            policy=self._conflict_policy,
            forbid_source_overwrite=self._forbid_source_overwrite,
            now=now,
        )
        self._warn_on_mixed_resolutions(items)

        logger.info(
            "Starting batch",
            total=len(items),
            workers=min(self._max_workers, max(len(items), 1)),
            policy=self._conflict_policy.value,
        )

        state = _RunState(total=len(items))
        await self._run_pending_items(list(zip(items, plans, strict=True)), state, now)

        if self._fail_fast and state.first_error is not None:
            raise state.first_error

        if self.token.cancelled and state.done < state.total:
            outcome = BatchOutcome.CANCELLED
        elif state.failures:
            outcome = BatchOutcome.FAILED
        else:
            outcome = BatchOutcome.COMPLETED

        outputs = [path for _, path in sorted(state.outputs, key=lambda entry: entry[0])]
        failures = sorted(state.failures, key=lambda f: f.index)
        logger.info(
            "Batch finished",
            outcome=outcome.value,
            completed=len(outputs),
            failed=len(failures),
            total=state.total,
        )
        return BatchResult(
            run_id=run_id,
            outputs=outputs,
            failures=failures,
            completed=len(outputs),
            total=state.total,
            outcome=outcome,
        )

    def _warn_on_mixed_resolutions(self, items: Sequence[BatchItem]) -> None:
        sizes: dict[Hashable, Size] = {}
        for item in items:
            size = _header_size(item)
            if size is not None:
                sizes[item.key] = size
        report = find_resolution_mismatches(sizes)
        if report.has_mismatches and self._settings.crop.has_any_crop:
            assert report.majority is not None
            logger.warning(
                "Items differ from the majority resolution; pixel crop insets "
                "will remove a different share of them",
                majority=report.majority.to_tuple(),
                mismatched=[str(identity) for identity in report.mismatched],
            )

    async def _run_pending_items(
        self,
        pending: list[tuple[BatchItem, PlannedOutput]],
        state: _RunState,
        now: datetime,
    ) -> None:
        """Run all items using a fixed-size worker pool."""
        if not pending:
            return

        work_queue: asyncio.Queue[tuple[BatchItem, PlannedOutput] | None] = asyncio.Queue()
        for entry in pending:
            work_queue.put_nowait(entry)

        n_workers = min(self._max_workers, len(pending))
        for _ in range(n_workers):
            work_queue.put_nowait(None)

        state_lock = asyncio.Lock()
        stop_event = asyncio.Event()

        async with asyncio.TaskGroup() as tg:
            for _ in range(n_workers):
                tg.create_task(
                    self._run_worker(
                        work_queue=work_queue,
                        state=state,
                        state_lock=state_lock,
                        stop_event=stop_event,
                        now=now,
                    )
                )

    async def _run_worker(
        self,
        *,
        work_queue: asyncio.Queue[tuple[BatchItem, PlannedOutput] | None],
        state: _RunState,
        state_lock: asyncio.Lock,
        stop_event: asyncio.Event,
        now: datetime,
    ) -> None:
        """Worker that processes items and records their results."""
        while True:
            entry = await work_queue.get()
            try:
                if entry is None:
                    return

                async with state_lock:
                    if stop_event.is_set() or self.token.cancelled:
                        continue

                item, plan = entry
                set_correlation_context(item_id=item.key)
                context = TemplateContext(
                    filename=item.source_path.stem,
                    index=plan.index + 1,
                    count=state.total,
                    now=now,
                )

                try:
                    written = await asyncio.to_thread(self._process_item, item, plan, context)
                except OperationCancelled:
                    logger.info("Item cancelled before write", index=plan.index)
                    continue
                except PipelineError as e:
                    logger.warning("Item failed", index=plan.index, error=str(e))
                    await self._record_failure(item, plan, e, state, state_lock, stop_event)
                    continue
                except Exception as e:
                    logger.exception("Unexpected error processing item", index=plan.index)
                    await self._record_failure(item, plan, e, state, state_lock, stop_event)
                    continue

                async with state_lock:
                    state.outputs.append((plan.index, written))
                    state.done += 1
                    self._report_progress(state)
            finally:
                work_queue.task_done()

    async def _record_failure(
        self,
        item: BatchItem,
        plan: PlannedOutput,
        error: Exception,
        state: _RunState,
        state_lock: asyncio.Lock,
        stop_event: asyncio.Event,
    ) -> None:
        async with state_lock:
            state.failures.append(
                ItemFailure(
                    index=plan.index,
                    identity=item.key,
                    source_path=item.source_path,
                    error_type=type(error).__name__,
                    message=str(error),
                )
            )
            state.done += 1
            if self._fail_fast and state.first_error is None:
                state.first_error = error
                stop_event.set()
            self._report_progress(state)

    def _report_progress(self, state: _RunState) -> None:
        if self._progress is not None:
            self._progress(state.done, state.total)

    def _process_item(
        self,
        item: BatchItem,
        plan: PlannedOutput,
        context: TemplateContext,
    ) -> Path:
        """Decode, process, encode and write one item (runs in a worker thread)."""
        token = self.token
        token.raise_if_cancelled()

        source = item.image if item.image is not None else decode(item.source_path)
        result = process_one(
            source,
            self._settings,
            self._effects.get(item.key, ()),
            context=context,
            checkpoint=token.raise_if_cancelled,
            compositor=self._compositor,
            path=str(item.source_path),
        )

        set_correlation_context(stage=PipelineStage.ENCODE.value)
        token.raise_if_cancelled()
        data = encode(result, plan.format, self._settings.export.quality)

        token.raise_if_cancelled()
        write_bytes(plan.path, data)
        logger.debug("Wrote output", path=str(plan.path), renamed=plan.renamed)
        return plan.path


def _header_size(item: BatchItem) -> Size | None:
    """Read an item's pixel size without decoding it fully.

    Unreadable sources return None here; the decode stage reports them.
    """
    if item.image is not None:
        return Size(width=item.image.width, height=item.image.height)
    try:
        with Image.open(item.source_path) as img:
            return Size(width=img.width, height=img.height)
    except (OSError, Image.DecompressionBombError):
        return None


def process_batch(
    items: Sequence[BatchItem],
    settings: PipelineSettings,
    effects: EffectStore | Mapping[Hashable, Sequence[RegionEffect]] | None = None,
    naming: NamingSpec | None = None,
    *,
    progress: ProgressCallback | None = None,
    token: CancellationToken | None = None,
    **options: object,
) -> BatchResult:
    """Synchronous convenience entry point for a whole batch.

    Extra keyword options are passed to BatchExecutor.
    """
    executor = BatchExecutor(
        settings,
        effects,
        naming,
        progress=progress,
        token=token,
        **options,  # type: ignore[arg-type]
    )
    return executor.run_sync(items)
