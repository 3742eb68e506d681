"""
Linear algebra kernels for pymortality.

All functions follow these conventions:
    - CPU functions use SciPy (SuperLU for sparse factorisations)
    - Each operation returns a structured result dataclass
    - Errors are raised immediately with clear messages

Submodules:
    cholesky: Sparse symmetric factorisation, log-determinant,
        marginal variances
"""

from pymortality.core.compute.linalg.cholesky import (
    CholeskyResult,
    cholesky_cpu,
)

__all__ = [
    "CholeskyResult",
    "cholesky_cpu",
]
