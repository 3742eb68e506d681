"""
Newton iteration for the latent mode (inner loop of the Laplace fit).

For fixed hyperparameters θ, finds the mode of

    f(x) = log p(y | M x + o, θ_lik) - 1/2 x' Q x + b' x

where Q is the latent prior precision including soft constraints and b
carries the constraint targets. Each step solves (M' W M + Q) Δ = ∇f
with W = -d²l/dη² floored at 1e-10, then halves the step until f does
not decrease.

The outer loop optimizes θ on the Laplace-approximated log posterior
evaluated at this mode.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import scipy.sparse as sp
from numpy.typing import NDArray

from pymortality.core.compute.linalg import CholeskyResult, cholesky_cpu
from pymortality.core.exceptions import ConvergenceError


WEIGHT_FLOOR = 1e-10


@dataclass(frozen=True)
class NewtonResult:
    """Latent mode at fixed θ.

    Attributes:
        x: Mode of the latent vector.
        eta: Linear predictor at the mode (n,).
        log_lik: Log-likelihood at the mode.
        chol: Cholesky factor of the negative Hessian M' W M + Q.
        n_iter: Newton iterations used.
    """
    x: NDArray
    eta: NDArray
    log_lik: float
    chol: CholeskyResult
    n_iter: int


def solve_mode(
    M: sp.csr_matrix,
    offset: NDArray,
    y: NDArray,
    trials: NDArray,
    Q: sp.csr_matrix,
    b: NDArray,
    family,  # smoothing.families.Family
    theta_lik: NDArray,
    x0: NDArray | None = None,
    tol: float = 1e-10,
    max_iter: int = 50,
    backend_name: str | None = None,
) -> NewtonResult:
    """Damped Newton for the latent mode.

    Args:
        M: Design matrix (n, d).
        offset: Linear-predictor offset (n,).
        y: Responses, NaN for prediction rows (n,).
        trials: Number of trials (n,).
        Q: Latent prior precision (d, d).
        b: Linear term of the prior (d,).
        family: Likelihood family.
        theta_lik: Likelihood hyperparameters.
        x0: Starting value; zeros if None.
        tol: Convergence tolerance on the relative objective change.
        max_iter: Maximum Newton iterations.
        backend_name: Reported on failures.

    Returns:
        NewtonResult at convergence.

    Raises:
        ConvergenceError: If the iteration does not converge.
        NotPositiveDefiniteError: If the negative Hessian cannot be factored.
    """
    d = M.shape[1]
    x = np.zeros(d) if x0 is None else np.asarray(x0, dtype=np.float64).copy()
    Q = sp.csr_matrix(Q)
    Mt = M.T.tocsr()

    def objective(x_, eta_):
        return family.log_likelihood(y, trials, eta_, theta_lik) - 0.5 * x_ @ (Q @ x_) + b @ x_

    eta = M @ x + offset
    f_old = objective(x, eta)
    change = np.inf

    for iteration in range(1, max_iter + 1):
        grad_eta, hess_eta = family.eta_derivatives(y, trials, eta, theta_lik)
        w = np.maximum(-hess_eta, WEIGHT_FLOOR)
        H = Mt @ sp.diags(w) @ M + Q
        chol = cholesky_cpu(H, matrix_name='negative Hessian')
        grad = Mt @ grad_eta - Q @ x + b
        step = chol.solve(grad)

        scale = 1.0
        while True:
            x_new = x + scale * step
            eta_new = M @ x_new + offset
            f_new = objective(x_new, eta_new)
            if f_new >= f_old - 1e-12 * abs(f_old) or scale < 1e-4:
                break
            scale /= 2.0

        change = abs(f_new - f_old) / (abs(f_old) + 1.0)
        x, eta, f_old = x_new, eta_new, f_new
        if change < tol and np.max(np.abs(scale * step)) < 1e-4:
            grad_eta, hess_eta = family.eta_derivatives(y, trials, eta, theta_lik)
            w = np.maximum(-hess_eta, WEIGHT_FLOOR)
            H = Mt @ sp.diags(w) @ M + Q
            return NewtonResult(
                x=x,
                eta=eta,
                log_lik=family.log_likelihood(y, trials, eta, theta_lik),
                chol=cholesky_cpu(H, matrix_name='negative Hessian'),
                n_iter=iteration,
            )

    raise ConvergenceError(
        f"Latent mode did not converge after {max_iter} Newton iterations "
        f"(relative change {change:.3e})",
        iterations=max_iter,
        final_change=float(change),
        threshold=tol,
        backend_name=backend_name,
    )
