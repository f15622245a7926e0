"""Batch execution for cropbatch.

Provides output naming, pre-flight conflict planning and the worker-pool
executor that drives the single-item pipeline over many images.
"""

from cropbatch.batch.executor import (
    BatchExecutor,
    BatchItem,
    BatchOutcome,
    BatchResult,
    CancellationToken,
    ItemFailure,
    process_batch,
)
from cropbatch.batch.naming import (
    ConflictPolicy,
    NamingMode,
    NamingSpec,
    append_numeric_suffix,
    output_path,
)
from cropbatch.batch.preflight import (
    PlannedOutput,
    ResolutionReport,
    find_resolution_mismatches,
    plan_outputs,
)

__all__ = [
    "BatchExecutor",
    "BatchItem",
    "BatchOutcome",
    "BatchResult",
    "CancellationToken",
    "ConflictPolicy",
    "ItemFailure",
    "NamingMode",
    "NamingSpec",
    "PlannedOutput",
    "ResolutionReport",
    "append_numeric_suffix",
    "find_resolution_mismatches",
    "output_path",
    "plan_outputs",
    "process_batch",
]
