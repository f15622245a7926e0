"""CLI module for cropbatch.

Provides the command-line interface for batch processing images.
"""

from __future__ import annotations

from cropbatch.cli.main import app

__all__ = ["app"]
