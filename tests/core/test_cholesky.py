"""
Tests for the sparse factorisation kernel used by the Laplace backend.

Validates:
    - log-determinant, solve and marginal variances against dense NumPy
    - quadratic forms diag(B' Q⁻¹ B) for sparse B
    - large banded precisions factor without densifying
    - indefinite, singular and non-finite matrices raise
"""

import numpy as np
import pytest
import scipy.sparse as sp
from numpy.testing import assert_allclose

from pymortality.core.compute.linalg import cholesky_cpu
from pymortality.core.exceptions import NotPositiveDefiniteError


@pytest.fixture
def spd(rng):
    A = rng.standard_normal((6, 6))
    return A @ A.T + 6 * np.eye(6)


def _second_difference(d):
    """Tridiagonal [-1, 2, -1]: det = d + 1, (Q⁻¹)_ii = i (d + 1 - i) / (d + 1)."""
    return sp.diags([-np.ones(d - 1), 2 * np.ones(d), -np.ones(d - 1)], [-1, 0, 1], format='csr')


# ═══════════════════════════════════════════════════════════════════════
# Dense-reference comparisons
# ═══════════════════════════════════════════════════════════════════════


class TestCholesky:

    def test_logdet(self, spd):
        result = cholesky_cpu(spd)
        assert_allclose(result.logdet, np.linalg.slogdet(spd)[1], rtol=1e-10)

    def test_solve(self, spd, rng):
        b = rng.standard_normal(6)
        assert_allclose(spd @ cholesky_cpu(spd).solve(b), b, atol=1e-10)

    def test_solve_matrix_rhs(self, spd, rng):
        B = rng.standard_normal((6, 3))
        assert_allclose(spd @ cholesky_cpu(sp.csr_matrix(spd)).solve(B), B, atol=1e-10)

    def test_marginal_variances(self, spd):
        result = cholesky_cpu(spd)
        assert_allclose(result.marginal_variances(), np.diag(np.linalg.inv(spd)), rtol=1e-10)

    def test_quadratic_diagonal(self, spd, rng):
        B = sp.csr_matrix(rng.standard_normal((6, 300)) * (rng.random((6, 300)) < 0.4))
        expected = np.diag(B.T.toarray() @ np.linalg.inv(spd) @ B.toarray())
        assert_allclose(cholesky_cpu(spd).quadratic_diagonal(B), expected, rtol=1e-9, atol=1e-12)


# ═══════════════════════════════════════════════════════════════════════
# Scaling
# ═══════════════════════════════════════════════════════════════════════


class TestLargeSparse:

    def test_banded_precision(self):
        d = 20_000
        result = cholesky_cpu(_second_difference(d))
        assert result.size == d
        assert_allclose(result.logdet, np.log(d + 1), rtol=1e-8)

        picks = np.array([0, 9_999, d - 1])
        B = sp.identity(d, format='csc')[:, picks]
        i = picks + 1
        assert_allclose(result.quadratic_diagonal(B), i * (d + 1 - i) / (d + 1), rtol=1e-8)


# ═══════════════════════════════════════════════════════════════════════
# Failures
# ═══════════════════════════════════════════════════════════════════════


class TestFailures:

    def test_indefinite_raises(self):
        Q = np.array([[1.0, 2.0], [2.0, 1.0]])
        with pytest.raises(NotPositiveDefiniteError) as info:
            cholesky_cpu(Q, matrix_name='H')
        assert info.value.matrix_name == 'H'
        assert info.value.min_eigenvalue == pytest.approx(-1.0)

    def test_singular_raises(self):
        with pytest.raises(NotPositiveDefiniteError):
            cholesky_cpu(np.zeros((3, 3)), matrix_name='Q')

    def test_non_finite_raises(self):
        with pytest.raises(NotPositiveDefiniteError, match="non-finite"):
            cholesky_cpu(np.array([[np.nan]]))
