"""
Shared fixtures for smoothing tests.

A four-region map (A-B-C-D chain with an A-C shortcut), three 5-year
periods covering 2000-2014, two age bands and two strata.
"""

import numpy as np
import pandas as pd
import pytest

from pymortality.core.result import Result
from pymortality.smoothing import PosteriorSummary


REGIONS = ('A', 'B', 'C', 'D')
PERIODS = ('00-04', '05-09', '10-14')
AGES = ('0', '1-11')
AGE_N = (1, 11)
YEAR_RANGE = (2000, 2014)


@pytest.fixture
def adjacency():
    W = np.array([
        [0, 1, 1, 0],
        [1, 0, 1, 0],
        [1, 1, 0, 1],
        [0, 0, 1, 0],
    ], dtype=float)
    return pd.DataFrame(W, index=list(REGIONS), columns=list(REGIONS))


def _make_counts(rng, regions=REGIONS, years=PERIODS, clusters=2, surveys=None):
    """Cluster-level count cells with a higher hazard in the first month."""
    rows = []
    hazard = {'0': 0.03, '1-11': 0.004}
    survey_labels = surveys or [None]
    for survey in survey_labels:
        for region in regions:
            for c in range(clusters):
                cluster = f"{region}{c}"
                for year in years:
                    for age in AGES:
                        for stratum in ('urban', 'rural'):
                            total = int(rng.integers(20, 60))
                            row = {
                                'cluster': cluster,
                                'years': year,
                                'region': region,
                                'strata': stratum,
                                'age': age,
                                'total': total,
                                'Y': int(rng.binomial(total, hazard[age])),
                            }
                            if survey is not None:
                                row['survey'] = survey
                            rows.append(row)
    return pd.DataFrame(rows)


def _fake_summary(fixed_names=('age0', 'age1-11', 'strataurban'), reference_levels=None):
    """Canned posterior summary with the standard table columns."""
    k = len(fixed_names)
    fixed = pd.DataFrame(
        {
            'mean': np.linspace(-3.0, -5.0, k),
            'sd': np.full(k, 0.1),
            '0.025quant': np.linspace(-3.2, -5.2, k),
            '0.5quant': np.linspace(-3.0, -5.0, k),
            '0.975quant': np.linspace(-2.8, -4.8, k),
            'mode': np.linspace(-3.0, -5.0, k),
        },
        index=pd.Index(list(fixed_names), name='name'),
    )
    hyperpar = pd.DataFrame(
        {'theta': [1.0], 'theta_sd': [0.5], 'mode': [np.e]},
        index=pd.Index(['log precision for time_struct'], name='name'),
    )
    return PosteriorSummary(
        fixed=fixed,
        random={},
        hyperpar=hyperpar,
        linear_predictor=pd.DataFrame(),
        log_marginal_likelihood=-123.4,
        reference_levels=dict(reference_levels or {}),
    )


class RecordingBackend:
    """Backend that records the problems it receives."""

    def __init__(self, summary=None, warnings=()):
        self.problems = []
        self._summary = summary
        self._warnings = tuple(warnings)

    @property
    def name(self):
        return 'recording'

    def solve(self, problem):
        self.problems.append(problem)
        return Result(
            params=self._summary if self._summary is not None else _fake_summary(),
            info={'method': 'recording'},
            timing=None,
            backend_name=self.name,
            warnings=self._warnings,
        )


class FailingBackend:
    """Backend that raises the given exception."""

    def __init__(self, exc):
        self.exc = exc
        self.calls = 0

    @property
    def name(self):
        return 'failing'

    def solve(self, problem):
        self.calls += 1
        raise self.exc


@pytest.fixture
def make_counts(rng):
    """Factory for count tables sharing the seeded generator."""
    def factory(**kwargs):
        return _make_counts(rng, **kwargs)
    return factory


@pytest.fixture
def counts(rng):
    """Subnational count table."""
    return _make_counts(rng)


@pytest.fixture
def national_counts(rng):
    """Count table with the national sentinel region."""
    return _make_counts(rng, regions=('All',), clusters=4)


@pytest.fixture
def summary_factory():
    return _fake_summary


@pytest.fixture
def recording_backend():
    return RecordingBackend()


@pytest.fixture
def backend_factory():
    """Build recording or failing backends inside a test."""
    class Factory:
        recording = RecordingBackend
        failing = FailingBackend
    return Factory
