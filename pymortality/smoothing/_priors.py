"""
Hyperpriors for random-effect precisions and the BYM2 mixing parameter.

Densities are evaluated on the internal scale the optimiser works on:
theta = log(precision) for precisions and theta = logit(phi) for the
mixing parameter. Each log density includes the Jacobian of that
transformation.

References:
    Simpson, D., Rue, H., Riebler, A., Martins, T. G. & Sørbye, S. H.
        (2017). Penalising model component complexity: A principled,
        practical approach to constructing priors. Statistical Science,
        32(1), 1-28.
    Riebler, A., Sørbye, S. H., Simpson, D. & Rue, H. (2016). An
        intuitive Bayesian spatial model for disease mapping that accounts
        for scaling. Statistical Methods in Medical Research, 25(4).
    Wakefield, J. (2007). Disease mapping and spatial regression with
        count data. Biostatistics, 8(2), 158-183.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from scipy import stats
from scipy.special import expit, gammaln

from pymortality.core.exceptions import ConfigurationError


@dataclass(frozen=True)
class PCPrior:
    """PC prior on a precision: P(sd > u) = alpha.

    Equivalent to an exponential prior with rate lambda = -log(alpha) / u
    on the standard deviation.
    """
    u: float = 1.0
    alpha: float = 0.01

    def __post_init__(self):
        if self.u <= 0 or not 0 < self.alpha < 1:
            raise ConfigurationError(
                f"PC prior needs u > 0 and 0 < alpha < 1, "
                f"got u={self.u}, alpha={self.alpha}"
            )

    @property
    def rate(self) -> float:
        return -math.log(self.alpha) / self.u

    def log_density(self, theta: float) -> float:
        lam = self.rate
        return math.log(lam / 2.0) - theta / 2.0 - lam * math.exp(-theta / 2.0)


@dataclass(frozen=True)
class GammaPrior:
    """Gamma(shape, rate) prior on a precision."""
    shape: float
    rate: float

    def __post_init__(self):
        if self.shape <= 0 or self.rate <= 0:
            raise ConfigurationError(
                f"Gamma prior needs positive shape and rate, "
                f"got shape={self.shape}, rate={self.rate}"
            )

    def log_density(self, theta: float) -> float:
        a, b = self.shape, self.rate
        return a * math.log(b) - float(gammaln(a)) + a * theta - b * math.exp(theta)


@dataclass(frozen=True)
class PCMixingPrior:
    """PC prior on the BYM2 mixing parameter: P(phi < u) = alpha.

    The distance from the base model (phi = 0, no spatial structure) is
    d(phi) = sqrt(2 KLD(phi)), with

        KLD(phi) = 1/2 sum_i [phi (g_i - 1) - log(1 + phi (g_i - 1))]

    where g_i are the non-zero generalised variances (reciprocal non-zero
    eigenvalues) of the scaled ICAR structure matrix.
    """
    u: float = 0.5
    alpha: float = 2.0 / 3.0

    def __post_init__(self):
        if not 0 < self.u < 1 or not 0 < self.alpha < 1:
            raise ConfigurationError(
                f"PC mixing prior needs 0 < u < 1 and 0 < alpha < 1, "
                f"got u={self.u}, alpha={self.alpha}"
            )

    @staticmethod
    def _kld(phi: float, gamma: NDArray) -> float:
        g1 = gamma - 1.0
        return 0.5 * float(np.sum(phi * g1 - np.log1p(phi * g1)))

    @staticmethod
    def _dkld(phi: float, gamma: NDArray) -> float:
        g1 = gamma - 1.0
        return 0.5 * float(np.sum(phi * g1 ** 2 / (1.0 + phi * g1)))

    def distance(self, phi: float, gamma: NDArray) -> float:
        return math.sqrt(max(2.0 * self._kld(phi, gamma), 0.0))

    def log_density(self, theta: float, gamma: NDArray) -> float:
        """Log density of logit(phi) given generalised variances ``gamma``."""
        phi = float(expit(theta))
        d_u = self.distance(self.u, gamma)
        lam = -math.log(1.0 - self.alpha) / max(d_u, 1e-12)

        d = max(self.distance(phi, gamma), 1e-12)
        d_prime = self._dkld(phi, gamma) / d
        jacobian = math.log(phi) + math.log1p(-phi)
        return math.log(lam) - lam * d + math.log(max(d_prime, 1e-300)) + jacobian


def wakefield_gamma(R: float = 2.0, shape: float = 0.5, q: float = 0.975) -> GammaPrior:
    """Gamma prior under which 95% of residual odds ratios lie in [1/R, R].

    A N(0, 1/tau) effect with tau ~ Gamma(a, b) is marginally Student t
    with 2a degrees of freedom and scale sqrt(b / a), so
    b = a (log R / t_{2a, q})^2.
    """
    t = stats.t.ppf(q, df=2.0 * shape)
    return GammaPrior(shape=shape, rate=shape * (math.log(R) / t) ** 2)


@dataclass(frozen=True)
class HyperParameters:
    """Hyperprior settings of one fit.

    PC settings apply when ``family == 'pc'``; Gamma (shape, rate) pairs
    when ``family == 'gamma'``.
    """
    family: str = 'pc'
    pc_u: float = 1.0
    pc_alpha: float = 0.01
    pc_u_phi: float = 0.5
    pc_alpha_phi: float = 2.0 / 3.0
    a_iid: float = 0.5
    b_iid: float = 0.0
    a_rw: float = 0.5
    b_rw: float = 0.0
    a_icar: float = 0.5
    b_icar: float = 0.0

    @classmethod
    def resolve(
        cls,
        family: str = 'pc',
        *,
        pc_u: float = 1.0,
        pc_alpha: float = 0.01,
        pc_u_phi: float = 0.5,
        pc_alpha_phi: float = 2.0 / 3.0,
        a_iid: float | None = None,
        b_iid: float | None = None,
        a_rw: float | None = None,
        b_rw: float | None = None,
        a_icar: float | None = None,
        b_icar: float | None = None,
    ) -> HyperParameters:
        """Fill unset Gamma parameters from ``wakefield_gamma()``.

        Raises:
            ConfigurationError: If ``family`` is not 'pc' or 'gamma'.
        """
        family = str(family).lower()
        if family not in ('pc', 'gamma'):
            raise ConfigurationError(
                f"hyper needs to be either 'pc' or 'gamma', got {family!r}"
            )
        default = wakefield_gamma()

        def pick(value, fallback):
            return float(fallback if value is None else value)

        return cls(
            family=family,
            pc_u=float(pc_u),
            pc_alpha=float(pc_alpha),
            pc_u_phi=float(pc_u_phi),
            pc_alpha_phi=float(pc_alpha_phi),
            a_iid=pick(a_iid, default.shape),
            b_iid=pick(b_iid, default.rate),
            a_rw=pick(a_rw, default.shape),
            b_rw=pick(b_rw, default.rate),
            a_icar=pick(a_icar, default.shape),
            b_icar=pick(b_icar, default.rate),
        )

    def precision(self, kind: str) -> PCPrior | GammaPrior:
        """Prior on the precision of an 'iid', 'rw' or 'icar' effect."""
        if self.family == 'pc':
            return PCPrior(self.pc_u, self.pc_alpha)
        pairs = {
            'iid': (self.a_iid, self.b_iid),
            'rw': (self.a_rw, self.b_rw),
            'icar': (self.a_icar, self.b_icar),
        }
        return GammaPrior(*pairs[kind])

    def mixing(self) -> PCMixingPrior:
        return PCMixingPrior(self.pc_u_phi, self.pc_alpha_phi)
