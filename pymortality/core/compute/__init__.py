"""
Shared compute infrastructure for pymortality.

This module provides timing utilities and sparse linear algebra kernels
that are shared across the births and smoothing code paths.

IMPORTANT: This is NOT where inference backends live. Those go in
smoothing/backends/. This module contains shared NUMERIC infrastructure.

Submodules:
    timing: Execution timing utilities
    linalg: Linear algebra kernels (Cholesky, log-determinants)
"""

from pymortality.core.compute.timing import Timer

__all__ = [
    # Timing
    "Timer",
]
