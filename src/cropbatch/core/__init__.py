"""Core pixel stages for cropbatch.

This package contains the per-item pipeline and the engines it sequences.

Public API:
    - CropSpec / crop: Edge-inset cropping.
    - detect_ui / detect_common: Solid UI bar detection suggesting insets.
    - RegionEffect, Soften, Mosaic, SolidFill: Tagged effect variants.
    - EffectStore: Per-image effect lists with immutable snapshots.
    - apply_effects: Rasterizes effects onto a bitmap.
    - ResizeSpec / resize: Output sizing.
    - PipelineSettings / process_one: Fixed-order single-item pipeline.
"""

from cropbatch.core.crop_engine import CropSpec, crop
from cropbatch.core.detect import UIDetection, detect_common, detect_ui
from cropbatch.core.effects import (
    EffectStore,
    Mosaic,
    RegionEffect,
    Soften,
    SolidFill,
    apply_effects,
)
from cropbatch.core.pipeline import PipelineSettings, PipelineStage, process_one
from cropbatch.core.resize import ResizeMode, ResizeSpec, compute_target_size, resize

__all__ = [
    "CropSpec",
    "EffectStore",
    "Mosaic",
    "PipelineSettings",
    "PipelineStage",
    "RegionEffect",
    "ResizeMode",
    "ResizeSpec",
    "Soften",
    "SolidFill",
    "UIDetection",
    "apply_effects",
    "compute_target_size",
    "crop",
    "detect_common",
    "detect_ui",
    "process_one",
    "resize",
]
