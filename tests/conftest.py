"""
pytest configuration and shared fixtures.
"""

import pytest
import numpy as np
import pandas as pd


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def births(rng):
    """Synthetic DHS-style birth records.

    200 children born 2000-2014 (CMC 1201-1380), interviewed in mid-2016
    (CMC 1398). Roughly 8% died, at ages 0-59 months.
    """
    n = 200
    dob = rng.integers(1201, 1381, size=n)
    interview = np.full(n, 1398)
    died = rng.random(n) < 0.08
    age_at_death = np.where(
        died, np.minimum(rng.integers(0, 60, size=n), interview - dob), np.nan
    )
    return pd.DataFrame({
        'caseid': [f"c{i:04d}" for i in range(n)],
        'v001': rng.integers(1, 11, size=n),
        'v002': rng.integers(1, 30, size=n),
        'v004': rng.integers(1, 11, size=n),
        'v005': rng.integers(500_000, 1_500_000, size=n),
        'v021': rng.integers(1, 11, size=n),
        'v022': rng.integers(1, 5, size=n),
        'v023': rng.integers(1, 5, size=n),
        'v024': rng.choice(['north', 'south', 'east'], size=n),
        'v025': rng.choice(['urban', 'rural'], size=n),
        'v139': rng.integers(1, 4, size=n),
        'bidx': rng.integers(1, 4, size=n),
        'b3': dob,
        'b5': np.where(died, 'no', 'yes'),
        'b7': age_at_death,
        'v008': interview,
    })
