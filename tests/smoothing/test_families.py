"""
Tests for likelihood families.

Validates:
    - Log-likelihoods against scipy.stats
    - Missing responses contribute nothing
    - Analytic eta derivatives against finite differences
    - Family resolution
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose
from scipy import stats
from scipy.special import expit

from pymortality.core.exceptions import ConfigurationError
from pymortality.smoothing import BetaBinomial, Binomial, resolve_family
from pymortality.smoothing.families import LogitLink


@pytest.fixture
def counts_data(rng):
    n = rng.integers(5, 50, size=12).astype(float)
    y = rng.binomial(n.astype(int), 0.1).astype(float)
    eta = rng.normal(-2.0, 0.5, size=12)
    return y, n, eta


def _numeric_derivatives(family, y, n, eta, theta, h=1e-5):
    grad = np.empty_like(eta)
    hess = np.empty_like(eta)
    for i in range(len(eta)):
        def ll(e):
            shifted = eta.copy()
            shifted[i] = e
            return family.log_likelihood(y, n, shifted, theta)
        f0, fp, fm = ll(eta[i]), ll(eta[i] + h), ll(eta[i] - h)
        grad[i] = (fp - fm) / (2 * h)
        hess[i] = (fp - 2 * f0 + fm) / h ** 2
    return grad, hess


class TestLogitLink:

    def test_roundtrip_values(self):
        link = LogitLink()
        p = np.array([0.1, 0.5, 0.9])
        assert_allclose(link.linkinv(link.link(p)), p)
        assert_allclose(link.link(np.array([0.5])), [0.0], atol=1e-15)


class TestBinomial:

    def test_log_likelihood(self, counts_data):
        y, n, eta = counts_data
        expected = stats.binom.logpmf(y, n, expit(eta)).sum()
        assert Binomial().log_likelihood(y, n, eta) == pytest.approx(expected)

    def test_missing_responses_ignored(self, counts_data):
        y, n, eta = counts_data
        fam = Binomial()
        y_nan = np.concatenate([y, [np.nan, np.nan]])
        n_ext = np.concatenate([n, [1.0, 1.0]])
        eta_ext = np.concatenate([eta, [0.0, 3.0]])
        assert fam.log_likelihood(y_nan, n_ext, eta_ext) == pytest.approx(
            fam.log_likelihood(y, n, eta)
        )
        grad, hess = fam.eta_derivatives(y_nan, n_ext, eta_ext)
        assert_allclose(grad[-2:], 0.0)
        assert_allclose(hess[-2:], 0.0)

    def test_derivatives(self, counts_data):
        y, n, eta = counts_data
        fam = Binomial()
        grad, hess = fam.eta_derivatives(y, n, eta)
        num_grad, num_hess = _numeric_derivatives(fam, y, n, eta, ())
        assert_allclose(grad, num_grad, rtol=1e-5, atol=1e-6)
        assert_allclose(hess, num_hess, rtol=1e-3, atol=1e-3)

    def test_no_hyperparameters(self):
        assert Binomial().hyper_names == ()
        assert Binomial().initial_hyper().shape == (0,)


class TestBetaBinomial:

    def test_log_likelihood(self, counts_data):
        y, n, eta = counts_data
        rho = 0.2
        s = (1 - rho) / rho
        p = expit(eta)
        expected = stats.betabinom.logpmf(y, n, p * s, (1 - p) * s).sum()
        theta = np.array([np.log(rho / (1 - rho))])
        assert BetaBinomial().log_likelihood(y, n, eta, theta) == pytest.approx(expected)

    def test_fixed_rho(self, counts_data):
        y, n, eta = counts_data
        fam = BetaBinomial(rho=0.2)
        assert fam.hyper_names == ()
        free = BetaBinomial().log_likelihood(y, n, eta, np.array([np.log(0.25)]))
        assert fam.log_likelihood(y, n, eta) == pytest.approx(free)

    def test_derivatives(self, counts_data):
        y, n, eta = counts_data
        fam = BetaBinomial()
        theta = np.array([-1.5])
        grad, hess = fam.eta_derivatives(y, n, eta, theta)
        num_grad, num_hess = _numeric_derivatives(fam, y, n, eta, theta)
        assert_allclose(grad, num_grad, rtol=1e-5, atol=1e-6)
        assert_allclose(hess, num_hess, rtol=1e-3, atol=1e-3)

    def test_approaches_binomial(self, counts_data):
        y, n, eta = counts_data
        theta = np.array([-14.0])
        assert BetaBinomial().log_likelihood(y, n, eta, theta) == pytest.approx(
            Binomial().log_likelihood(y, n, eta), rel=1e-4
        )

    def test_hyper_prior(self):
        fam = BetaBinomial()
        assert fam.hyper_names == ('logit_rho',)
        expected = stats.norm.logpdf(0.7, scale=1 / np.sqrt(0.4))
        assert fam.hyper_log_prior(np.array([0.7])) == pytest.approx(expected)
        assert_allclose(fam.hyper_natural(np.array([0.0])), [0.5])

    @pytest.mark.parametrize("rho", [0.0, 1.0, -0.2])
    def test_invalid_rho(self, rho):
        with pytest.raises(ConfigurationError, match="rho"):
            BetaBinomial(rho=rho)


class TestResolveFamily:

    @pytest.mark.parametrize("name, cls", [
        ('binomial', Binomial),
        ('betabinomial', BetaBinomial),
        ('beta-binomial', BetaBinomial),
        ('BetaBinomial', BetaBinomial),
    ])
    def test_names(self, name, cls):
        assert isinstance(resolve_family(name), cls)

    def test_instance_passthrough(self):
        fam = BetaBinomial(rho=0.1)
        assert resolve_family(fam) is fam

    def test_unknown(self):
        with pytest.raises(ConfigurationError, match="Unknown family"):
            resolve_family('poisson')

    def test_wrong_type(self):
        with pytest.raises(ConfigurationError, match="str or Family"):
            resolve_family(3)
