"""
Tests for survival splitting of exposure intervals.

Validates:
    - Segments tile [0, s) at integer months
    - Exposure and deaths are conserved
    - Segments stop at the largest age cutoff
"""

import numpy as np
import pandas as pd
from numpy.testing import assert_allclose, assert_array_equal

from pymortality.births._expand import compact_person_months, split_exposure


class TestSplitExposure:

    def test_single_child_segments(self):
        seg = split_exposure(
            dob=np.array([100.0]),
            obs_stop=np.array([102.5]),
            died=np.array([True]),
            max_age=60,
        )
        assert_array_equal(seg.agemonth, [0, 1, 2])
        assert_allclose(seg.tstop, [1.0, 2.0, 2.5])
        assert_array_equal(seg.died, [False, False, True])

    def test_segments_tile_exposure(self, rng):
        n = 50
        dob = rng.integers(1000, 1200, size=n).astype(float)
        stop_age = rng.uniform(0.01, 40.0, size=n)
        died = rng.random(n) < 0.3
        seg = split_exposure(dob, dob + stop_age, died, max_age=60)

        exposure = np.bincount(seg.child, weights=seg.tstop - seg.agemonth, minlength=n)
        assert_allclose(exposure, stop_age)
        assert np.all(seg.tstop > seg.agemonth)

    def test_deaths_conserved(self, rng):
        n = 50
        dob = np.zeros(n)
        stop_age = rng.uniform(0.01, 59.0, size=n)
        died = rng.random(n) < 0.3
        seg = split_exposure(dob, stop_age, died, max_age=60)

        assert seg.died.sum() == died.sum()
        assert_array_equal(np.flatnonzero(np.bincount(seg.child[seg.died], minlength=n)),
                           np.flatnonzero(died))

    def test_capped_at_max_age(self):
        seg = split_exposure(np.array([0.0]), np.array([100.0]), np.array([True]), max_age=60)
        assert len(seg.agemonth) == 60
        assert seg.agemonth.max() == 59
        # death at 100 months falls outside the window
        assert not seg.died.any()

    def test_ordered_by_child_then_age(self):
        seg = split_exposure(
            np.array([0.0, 0.0]), np.array([2.0, 3.0]), np.array([False, False]), max_age=60,
        )
        assert_array_equal(seg.child, [0, 0, 1, 1, 1])
        assert_array_equal(seg.agemonth, [0, 1, 0, 1, 2])


class TestCompact:

    def test_cells_sum_to_rows(self):
        frame = pd.DataFrame({
            'v001': [1, 1, 1, 2],
            'age': pd.Categorical(['0', '0', '1-11', '0']),
            'time': pd.Categorical(['2000'] * 4),
            'strata': ['a', 'a', 'a', 'b'],
            'died': [False, True, False, False],
        })
        cells = compact_person_months(frame, ['v001'])
        assert len(cells) == 3
        assert cells['total'].sum() == 4
        assert cells['Y'].sum() == 1
        first = cells[(cells['v001'] == 1) & (cells['age'] == '0')]
        assert first['total'].iloc[0] == 2
        assert first['Y'].iloc[0] == 1

    def test_missing_strata_forms_cell(self):
        frame = pd.DataFrame({
            'v001': [1, 1],
            'age': pd.Categorical(['0', '0']),
            'time': pd.Categorical(['2000', '2000']),
            'strata': [np.nan, np.nan],
            'died': [True, False],
        })
        cells = compact_person_months(frame, ['v001'])
        assert len(cells) == 1
        assert cells['total'].iloc[0] == 2
