"""
Likelihood families for death counts.

Each Family defines, for counts y out of n trials with linear predictor η:
- the log-likelihood Σ log p(y | n, η, θ)
- its first and second derivatives in η (for the Newton inner loop)
- any likelihood hyperparameters θ, their starting values and prior

Rows with a missing response contribute nothing, which is how prediction
rows added by augmentation stay out of the likelihood.

References:
    Rue, H., Martino, S. & Chopin, N. (2009). Approximate Bayesian
        inference for latent Gaussian models by using integrated nested
        Laplace approximations. JRSS B, 71(2), 319-392.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np
from numpy.typing import NDArray
from scipy.special import betaln, digamma, expit, gammaln, polygamma

from pymortality.core.exceptions import ConfigurationError


# =====================================================================
# Link
# =====================================================================

class Link(ABC):
    """Abstract link function g(p) mapping a probability to η."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def link(self, p: NDArray) -> NDArray:
        ...

    @abstractmethod
    def linkinv(self, eta: NDArray) -> NDArray:
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class LogitLink(Link):
    """Logit link: g(p) = log(p/(1-p))."""

    @property
    def name(self) -> str:
        return 'logit'

    def link(self, p: NDArray) -> NDArray:
        p = np.clip(p, 1e-10, 1 - 1e-10)
        return np.log(p / (1 - p))

    def linkinv(self, eta: NDArray) -> NDArray:
        return expit(np.clip(eta, -500, 500))


def _log_choose(n: NDArray, y: NDArray) -> NDArray:
    return gammaln(n + 1) - gammaln(y + 1) - gammaln(n - y + 1)


# =====================================================================
# Family base class
# =====================================================================

class Family(ABC):
    """Count likelihood with a logit link."""

    def __init__(self):
        self._link = LogitLink()

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    def link(self) -> Link:
        return self._link

    @property
    def hyper_names(self) -> tuple[str, ...]:
        """Internal-scale names of the likelihood hyperparameters."""
        return ()

    def initial_hyper(self) -> NDArray:
        return np.zeros(len(self.hyper_names))

    def hyper_log_prior(self, theta: NDArray) -> float:
        return 0.0

    def hyper_natural(self, theta: NDArray) -> NDArray:
        """Hyperparameters on their natural scale."""
        return np.asarray(theta, dtype=np.float64)

    @abstractmethod
    def log_likelihood(
        self, y: NDArray, n: NDArray, eta: NDArray, theta: NDArray
    ) -> float:
        ...

    @abstractmethod
    def eta_derivatives(
        self, y: NDArray, n: NDArray, eta: NDArray, theta: NDArray
    ) -> tuple[NDArray, NDArray]:
        """(dl/dη, d²l/dη²) per row; zero for missing responses."""
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(link={self._link.name!r})"


# =====================================================================
# Concrete families
# =====================================================================

class Binomial(Family):
    """Binomial family.

    log p = log C(n, y) + y η - n log(1 + e^η)
    dl/dη = y - n p,  d²l/dη² = -n p (1 - p)
    """

    @property
    def name(self) -> str:
        return 'binomial'

    def log_likelihood(self, y, n, eta, theta=()):
        obs = ~np.isnan(y)
        y, n, eta = y[obs], n[obs], eta[obs]
        return float(np.sum(_log_choose(n, y) + y * eta - n * np.logaddexp(0.0, eta)))

    def eta_derivatives(self, y, n, eta, theta=()):
        obs = ~np.isnan(y)
        p = self.link.linkinv(eta)
        grad = np.where(obs, np.nan_to_num(y) - n * p, 0.0)
        hess = np.where(obs, -n * p * (1.0 - p), 0.0)
        return grad, hess


class BetaBinomial(Family):
    """Beta-binomial family with overdispersion ρ ∈ (0, 1).

    With s = (1 - ρ)/ρ, a = p s and b = (1 - p) s:

        log p = log C(n, y) + log B(y + a, n - y + b) - log B(a, b)

    Internal hyperparameter: logit ρ, with prior N(0, precision 0.4).
    """

    PRIOR_PRECISION = 0.4

    def __init__(self, rho: float | None = None):
        super().__init__()
        if rho is not None and not 0 < rho < 1:
            raise ConfigurationError(f"rho must lie in (0, 1), got {rho}")
        self.rho = rho

    @property
    def name(self) -> str:
        return 'betabinomial'

    @property
    def hyper_names(self) -> tuple[str, ...]:
        return () if self.rho is not None else ('logit_rho',)

    def initial_hyper(self):
        # rho = 0.018: mild overdispersion
        return np.full(len(self.hyper_names), -4.0)

    def hyper_log_prior(self, theta):
        if self.rho is not None:
            return 0.0
        t = float(theta[0])
        prec = self.PRIOR_PRECISION
        return 0.5 * np.log(prec / (2 * np.pi)) - 0.5 * prec * t ** 2

    def hyper_natural(self, theta):
        return expit(np.asarray(theta, dtype=np.float64))

    def _rho(self, theta) -> float:
        if self.rho is not None:
            return self.rho
        return float(expit(theta[0]))

    def log_likelihood(self, y, n, eta, theta=()):
        obs = ~np.isnan(y)
        y, n, eta = y[obs], n[obs], eta[obs]
        s = (1.0 - self._rho(theta)) / self._rho(theta)
        p = np.clip(self.link.linkinv(eta), 1e-12, 1 - 1e-12)
        a, b = p * s, (1.0 - p) * s
        return float(np.sum(
            _log_choose(n, y) + betaln(y + a, n - y + b) - betaln(a, b)
        ))

    def eta_derivatives(self, y, n, eta, theta=()):
        obs = ~np.isnan(y)
        yy = np.nan_to_num(y)
        s = (1.0 - self._rho(theta)) / self._rho(theta)
        p = np.clip(self.link.linkinv(eta), 1e-12, 1 - 1e-12)
        a, b = p * s, (1.0 - p) * s
        v = p * (1.0 - p)

        dp = s * (digamma(yy + a) - digamma(a) - digamma(n - yy + b) + digamma(b))
        d2p = s ** 2 * (
            polygamma(1, yy + a) - polygamma(1, a)
            + polygamma(1, n - yy + b) - polygamma(1, b)
        )
        grad = dp * v
        hess = d2p * v ** 2 + dp * v * (1.0 - 2.0 * p)
        return np.where(obs, grad, 0.0), np.where(obs, hess, 0.0)

    def __repr__(self) -> str:
        return f"BetaBinomial(rho={self.rho})"


# =====================================================================
# Family name → class mapping + resolver
# =====================================================================

_FAMILY_CLASSES: dict[str, type[Family]] = {
    'binomial': Binomial,
    'betabinomial': BetaBinomial,
    'beta-binomial': BetaBinomial,
}


def resolve_family(family: str | Family) -> Family:
    """Resolve a family argument to a Family instance.

    Raises:
        ConfigurationError: If the name is not recognised or the argument
            is neither a string nor a Family.
    """
    if isinstance(family, Family):
        return family
    if isinstance(family, str):
        cls = _FAMILY_CLASSES.get(family.lower())
        if cls is None:
            valid = ', '.join(sorted(_FAMILY_CLASSES))
            raise ConfigurationError(
                f"Unknown family: {family!r}. Valid families: {valid}"
            )
        return cls()
    raise ConfigurationError(
        f"family must be str or Family, got {type(family).__name__}"
    )
