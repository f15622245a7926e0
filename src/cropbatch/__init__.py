"""cropbatch: deterministic batch image transformation pipeline.

Applies region effects, 90-degree rotation/flip, edge-inset crop, resize and
overlay compositing to one image or to many images with conflict-safe output
naming.
"""

__version__ = "0.1.0"
