"""
CPU reference backend for space-time smoothing.

Empirical-Bayes Laplace approximation: hyperparameters are set to the
mode of their Laplace-approximated posterior, and the latent field is
summarised by the Gaussian approximation at that mode. This is the
reference implementation; any engine satisfying the Backend protocol
can replace it.

Algorithm:
    1. Build the latent model: fixed effects, one block per term, the
       design matrix M and the constraint matrix A.
    2. Constraints are imposed softly: Q(θ) gets κ A'A with κ = exp(10),
       plus 1e-6 on the diagonal to keep it proper.
    3. For each θ, find the latent mode by damped Newton (inner loop).
    4. Maximise the Laplace log posterior over θ with L-BFGS-B (outer):

           log p(θ | y) ≈ log p(y | x̂) - 1/2 (x̂-μ)'Q(x̂-μ)
                          + 1/2 log|Q| - 1/2 log|H| + log p(θ)

    5. Report Gaussian marginals of fixed effects, random effects and
       linear predictors at θ̂.
"""

from __future__ import annotations

import warnings

import numpy as np
import pandas as pd
import scipy.sparse as sp
from numpy.typing import NDArray
from scipy import stats
from scipy.optimize import minimize

from pymortality.core.compute.linalg import cholesky_cpu
from pymortality.core.compute.timing import Timer
from pymortality.core.result import Result
from pymortality.smoothing._common import SUMMARY_COLUMNS, PosteriorSummary, SmoothingProblem
from pymortality.smoothing._latent import LatentModel, build_latent
from pymortality.smoothing._newton import solve_mode


CONSTRAINT_PRECISION = float(np.exp(10))
JITTER = 1e-6
_Z = stats.norm.ppf(0.975)


def _summary_frame(mean: NDArray, sd: NDArray) -> dict[str, NDArray]:
    return {
        'mean': mean,
        'sd': sd,
        '0.025quant': mean - _Z * sd,
        '0.5quant': mean,
        '0.975quant': mean + _Z * sd,
        'mode': mean,
    }


class LaplaceBackend:
    """
    CPU backend using an empirical-Bayes Laplace approximation.

    Implements the Backend protocol for SmoothingProblem -> PosteriorSummary.

    Options read from ``problem.options`` (other keys are ignored):
        max_iter: L-BFGS-B iterations (default 200)
        tol: L-BFGS-B ftol (default 1e-7)
        eps: finite-difference step on θ (default 1e-4)
        inner_max_iter: Newton iterations per θ (default 50)
        inner_tol: Newton relative tolerance (default 1e-10)
    """

    @property
    def name(self) -> str:
        return 'cpu_laplace'

    def solve(self, problem: SmoothingProblem) -> Result[PosteriorSummary]:
        """
        Fit the model by Laplace approximation.

        Args:
            problem: Assembled model, augmented data and family

        Returns:
            Result containing PosteriorSummary

        Raises:
            ConvergenceError: If a latent-mode search does not converge
            NotPositiveDefiniteError: If a precision cannot be factored
        """
        options = problem.options or {}
        max_iter = int(options.get('max_iter', 200))
        tol = float(options.get('tol', 1e-7))
        eps = float(options.get('eps', 1e-4))
        inner_max_iter = int(options.get('inner_max_iter', 50))
        inner_tol = float(options.get('inner_tol', 1e-10))

        timer = Timer()
        timer.start()

        data = problem.data
        family = problem.family

        with timer.section('build'):
            latent = build_latent(problem.model, data)
            y = data[problem.response].to_numpy(dtype=np.float64)
            trials = data[problem.trials].to_numpy(dtype=np.float64)
            if problem.offset in data.columns:
                offset = data[problem.offset].to_numpy(dtype=np.float64)
            else:
                offset = np.zeros(len(data))

            penalty = CONSTRAINT_PRECISION * (latent.A.T @ latent.A)
            penalty = penalty + JITTER * sp.identity(latent.dim, format='csr')
            b = CONSTRAINT_PRECISION * (latent.A.T @ latent.e)

            n_latent_hyper = len(latent.hyper_names)
            hyper_names = latent.hyper_names + list(family.hyper_names)
            theta0 = np.concatenate(
                [blk.initial_hyper() for blk in latent.blocks] + [family.initial_hyper()]
            ) if hyper_names else np.zeros(0)
            bounds = [bd for blk in latent.blocks for bd in blk.bounds()]
            bounds += [(-10.0, 10.0)] * len(family.hyper_names)

        state = {'x': None}
        trace = []

        def evaluate(theta: NDArray):
            theta_latent = theta[:n_latent_hyper]
            theta_lik = theta[n_latent_hyper:]
            Q = sp.csr_matrix(latent.prior_precision(theta_latent) + penalty)
            mode = solve_mode(
                latent.M, offset, y, trials, Q, b, family, theta_lik,
                x0=state['x'], tol=inner_tol, max_iter=inner_max_iter,
                backend_name=self.name,
            )
            state['x'] = mode.x

            chol_Q = cholesky_cpu(Q, matrix_name='prior precision')
            mu = chol_Q.solve(b) if np.any(b) else np.zeros(latent.dim)
            r = mode.x - mu
            log_post = (
                mode.log_lik
                - 0.5 * float(r @ (Q @ r))
                + 0.5 * chol_Q.logdet
                - 0.5 * mode.chol.logdet
                + latent.log_prior(theta_latent)
                + family.hyper_log_prior(theta_lik)
            )
            return log_post, mode

        def objective(theta: NDArray) -> float:
            value = -evaluate(theta)[0]
            if problem.verbose:
                trace.append(float(value))
            return value

        with timer.section('optimize'):
            if len(theta0) > 0:
                opt = minimize(
                    objective,
                    theta0,
                    method='L-BFGS-B',
                    bounds=bounds,
                    options={'maxiter': max_iter, 'ftol': tol, 'eps': eps},
                )
                theta_hat = opt.x
                converged = bool(opt.success)
                n_iter = int(opt.nit)
                message = str(opt.message)
                theta_sd = np.sqrt(np.maximum(np.diag(opt.hess_inv.todense()), 0.0))
            else:
                theta_hat = theta0
                converged, n_iter, message = True, 0, ''
                theta_sd = np.zeros(0)

        if not converged:
            warnings.warn(
                f"Hyperparameter optimizer did not converge after {n_iter} "
                f"iterations. Message: {message}",
                RuntimeWarning,
                stacklevel=2,
            )

        with timer.section('summarize'):
            log_post, mode = evaluate(theta_hat)
            summary = self._summarize(
                latent, mode, offset, theta_hat, theta_sd, hyper_names,
                n_latent_hyper, family, log_post, converged, n_iter,
            )

        timer.stop()

        warn_list = []
        if not converged:
            warn_list.append(f"Optimizer did not converge: {message}")

        info = {
            'method': 'Laplace',
            'optimizer': 'L-BFGS-B',
            'family': family.name,
            'converged': converged,
            'n_iter': n_iter,
            'newton_iter': mode.n_iter,
            'n_latent': latent.dim,
            'n_hyper': len(hyper_names),
            'n_constraints': latent.A.shape[0],
        }
        if problem.verbose:
            info['trace'] = tuple(trace)

        return Result(
            params=summary,
            info=info,
            timing=timer.result(),
            backend_name=self.name,
            warnings=tuple(warn_list),
        )

    @staticmethod
    def _summarize(
        latent: LatentModel,
        mode,
        offset: NDArray,
        theta_hat: NDArray,
        theta_sd: NDArray,
        hyper_names: list[str],
        n_latent_hyper: int,
        family,
        log_post: float,
        converged: bool,
        n_iter: int,
    ) -> PosteriorSummary:
        sd = np.sqrt(mode.chol.marginal_variances())
        x = mode.x

        p = latent.p
        fixed = pd.DataFrame(
            _summary_frame(x[:p], sd[:p]),
            index=pd.Index(latent.fixed_names, name='name'),
            columns=list(SUMMARY_COLUMNS),
        )

        random = {}
        for blk in latent.blocks:
            frame = pd.DataFrame(_summary_frame(x[blk.start:blk.stop], sd[blk.start:blk.stop]))
            frame.insert(0, 'ID', np.arange(1, blk.size + 1))
            random[blk.term.index] = frame

        eta_var = mode.chol.quadratic_diagonal(latent.M.T)
        linear_predictor = pd.DataFrame(
            _summary_frame(mode.eta, np.sqrt(np.maximum(eta_var, 0.0)))
        )

        natural = np.empty(len(theta_hat))
        for i, name in enumerate(hyper_names[:n_latent_hyper]):
            natural[i] = np.exp(theta_hat[i]) if name.startswith('log ') else 1.0 / (1.0 + np.exp(-theta_hat[i]))
        natural[n_latent_hyper:] = family.hyper_natural(theta_hat[n_latent_hyper:])
        hyperpar = pd.DataFrame(
            {'theta': theta_hat, 'theta_sd': theta_sd, 'mode': natural},
            index=pd.Index(hyper_names, name='name'),
        )

        return PosteriorSummary(
            fixed=fixed,
            random=random,
            hyperpar=hyperpar,
            linear_predictor=linear_predictor,
            log_marginal_likelihood=float(log_post),
            reference_levels=dict(latent.reference_levels),
            converged=converged,
            n_iter=n_iter,
        )
