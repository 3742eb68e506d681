"""
Sparse factorisation of symmetric positive definite precision matrices.

Gaussian Markov random field computations need three things from a
posterior precision Q: a solve Q⁻¹b, the log-determinant log|Q|, and
quadratic forms of Q⁻¹ such as the marginal variances diag(Q⁻¹). All of
them come from one SuperLU factorisation (via SciPy) with a symmetric
fill-reducing ordering and diagonal pivoting, i.e. P Q P' = L D L'.
Q is never densified.
"""

from dataclasses import dataclass
from typing import Any

import numpy as np
import scipy.sparse as sp
from numpy.typing import NDArray
from scipy.sparse.linalg import SuperLU, splu

from pymortality.core.exceptions import NotPositiveDefiniteError


# Right-hand sides per triangular solve in quadratic_diagonal()
SOLVE_BLOCK = 128

# Above this size the minimum eigenvalue is not computed for error messages
EIGEN_REPORT_LIMIT = 500


@dataclass(frozen=True)
class CholeskyResult:
    """
    Result of a symmetric factorisation P Q P' = L D L'.

    Attributes:
        lu: SuperLU factor object
        logdet: log|Q| = Σ log D_ii
    """
    lu: SuperLU
    logdet: float

    @property
    def size(self) -> int:
        return self.lu.shape[0]

    def solve(self, b: NDArray[np.floating[Any]]) -> NDArray[np.floating[Any]]:
        """Solve Q x = b."""
        return self.lu.solve(np.asarray(b, dtype=np.float64))

    def quadratic_diagonal(self, B) -> NDArray[np.floating[Any]]:
        """
        diag(B' Q⁻¹ B) for a (d x n) matrix B, dense or sparse.

        Columns are solved SOLVE_BLOCK at a time, so memory stays at
        O(d * SOLVE_BLOCK) whatever n is.
        """
        B = sp.csc_matrix(B)
        n = B.shape[1]
        out = np.empty(n)
        for start in range(0, n, SOLVE_BLOCK):
            stop = min(start + SOLVE_BLOCK, n)
            cols = B[:, start:stop].toarray()
            out[start:stop] = np.einsum('ij,ij->j', cols, self.lu.solve(cols))
        return out

    def marginal_variances(self) -> NDArray[np.floating[Any]]:
        """diag(Q⁻¹)."""
        return self.quadratic_diagonal(sp.identity(self.size, format='csc'))


def _min_eigenvalue(Q: sp.spmatrix) -> float | None:
    if Q.shape[0] > EIGEN_REPORT_LIMIT:
        return None
    return float(np.linalg.eigvalsh(Q.toarray()).min())


def cholesky_cpu(Q, matrix_name: str = 'Q') -> CholeskyResult:
    """
    Sparse symmetric factorisation using SuperLU (via SciPy).

    Args:
        Q: Symmetric positive definite matrix (d x d), sparse or dense
        matrix_name: Name used in error messages

    Returns:
        CholeskyResult with the factor and log-determinant

    Raises:
        NotPositiveDefiniteError: If Q contains non-finite values, is
            singular, or has a non-positive pivot
    """
    Q = sp.csc_matrix(Q, dtype=np.float64)
    if not np.all(np.isfinite(Q.data)):
        raise NotPositiveDefiniteError(
            f"{matrix_name} contains non-finite values",
            matrix_name=matrix_name,
        )
    try:
        lu = splu(
            Q,
            permc_spec='MMD_AT_PLUS_A',
            diag_pivot_thresh=0.0,
            options={'SymmetricMode': True, 'Equil': False},
        )
    except RuntimeError as e:
        min_eig = _min_eigenvalue(Q)
        raise NotPositiveDefiniteError(
            f"{matrix_name} is singular: {e}",
            matrix_name=matrix_name,
            min_eigenvalue=min_eig,
        ) from e

    pivots = lu.U.diagonal()
    if not np.array_equal(lu.perm_r, lu.perm_c) or np.any(pivots <= 0):
        min_eig = _min_eigenvalue(Q)
        detail = f"min eigenvalue {min_eig:.3e}" if min_eig is not None else (
            f"min pivot {float(pivots.min()):.3e}"
        )
        raise NotPositiveDefiniteError(
            f"{matrix_name} is not positive definite ({detail})",
            matrix_name=matrix_name,
            min_eigenvalue=min_eig,
        )

    logdet = float(np.sum(np.log(pivots)))
    return CholeskyResult(lu=lu, logdet=logdet)
