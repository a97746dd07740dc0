"""Runtime - Execution flow and monitoring.

Contains: concurrency (channels, select, pool, primitives), observability.
"""

from __future__ import annotations

from . import concurrency, observability

__all__ = ["concurrency", "observability"]
