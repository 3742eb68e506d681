"""
Tests for SmoothingDesign validation.

Validates:
    - Configuration errors (rw, type_st, ages, yearly periods, adjacency)
    - Data errors (columns, labels, counts)
    - Filtering of zero-exposure and national rows
"""

import numpy as np
import pandas as pd
import pytest

from pymortality.core.exceptions import ConfigurationError, DataShapeError
from pymortality.smoothing import fit_smoothing
from pymortality.smoothing.design import SmoothingDesign


PERIODS = ('00-04', '05-09', '10-14')
AGES = ('0', '1-11')
AGE_N = (1, 11)


def _validate(data, **kwargs):
    kwargs.setdefault('year_names', PERIODS)
    kwargs.setdefault('age_groups', AGES)
    kwargs.setdefault('age_n', AGE_N)
    kwargs.setdefault('is_yearly', False)
    return SmoothingDesign.validate(data, **kwargs)


# ═══════════════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════════════


class TestConfiguration:

    def test_valid_subnational(self, counts, adjacency):
        design = _validate(counts, adjacency=adjacency)
        assert not design.national
        assert design.region_names == ('A', 'B', 'C', 'D')
        assert design.time_labels == PERIODS
        assert design.n_years == 0
        assert design.n == len(counts)

    def test_yearly_time_labels(self, counts, adjacency):
        design = _validate(counts, adjacency=adjacency, is_yearly=True, year_range=(2000, 2014))
        assert design.n_years == 15
        assert design.time_labels[:2] == ('2000', '2001')
        assert design.time_labels[-3:] == PERIODS

    def test_yearly_period_count_mismatch(self, counts, adjacency):
        with pytest.raises(ConfigurationError, match="year_names"):
            _validate(counts, adjacency=adjacency, is_yearly=True, year_range=(2000, 2009))

    @pytest.mark.parametrize("rw", [0, 3])
    def test_rw(self, counts, rw):
        with pytest.raises(ConfigurationError, match="rw"):
            _validate(counts, rw=rw)

    def test_type_st(self, counts):
        with pytest.raises(ConfigurationError, match="type_st"):
            _validate(counts, type_st=5)

    def test_age_length_mismatch(self, counts):
        with pytest.raises(ConfigurationError, match="same length"):
            _validate(counts, age_n=(1, 11, 12))

    def test_unknown_family(self, counts):
        with pytest.raises(ConfigurationError, match="Unknown family"):
            _validate(counts, family='poisson')

    def test_adjacency_labels_mismatch(self, counts, adjacency):
        bad = adjacency.copy()
        bad.columns = ['A', 'C', 'B', 'D']
        with pytest.raises(ConfigurationError, match="need to be the same"):
            _validate(counts, adjacency=bad)

    def test_adjacency_without_labels(self, counts, adjacency):
        with pytest.raises(ConfigurationError, match="region names"):
            _validate(counts, adjacency=adjacency.to_numpy())

    def test_national_without_all_rows(self, counts):
        with pytest.raises(ConfigurationError, match="'All'"):
            _validate(counts)


class TestNational:

    def test_keeps_only_all_rows(self, counts, national_counts):
        mixed = pd.concat([counts, national_counts], ignore_index=True)
        design = _validate(mixed)
        assert design.national
        assert design.region_names is None
        assert (design.data['region'] == 'All').all()
        assert design.n == len(national_counts)

    def test_subnational_drops_all_rows(self, counts, national_counts, adjacency):
        mixed = pd.concat([counts, national_counts], ignore_index=True)
        design = _validate(mixed, adjacency=adjacency)
        assert not (design.data['region'] == 'All').any()


# ═══════════════════════════════════════════════════════════════════════
# Data
# ═══════════════════════════════════════════════════════════════════════


class TestData:

    def test_missing_column(self, counts, adjacency):
        with pytest.raises(DataShapeError, match="missing required column") as info:
            _validate(counts.drop(columns=['cluster']), adjacency=adjacency)
        assert info.value.missing == ('cluster',)

    def test_unknown_region(self, counts, adjacency):
        bad = counts.copy()
        bad.loc[0, 'region'] = 'Z'
        with pytest.raises(DataShapeError, match="data.region"):
            _validate(bad, adjacency=adjacency)

    def test_unknown_age(self, counts, adjacency):
        bad = counts.copy()
        bad.loc[0, 'age'] = '60-71'
        with pytest.raises(DataShapeError, match="data.age"):
            _validate(bad, adjacency=adjacency)

    def test_unknown_years(self, counts, adjacency):
        bad = counts.copy()
        bad.loc[0, 'years'] = '15-19'
        with pytest.raises(DataShapeError, match="data.years"):
            _validate(bad, adjacency=adjacency)

    def test_negative_total(self, counts, adjacency):
        bad = counts.copy()
        bad.loc[0, 'total'] = -1
        with pytest.raises(DataShapeError, match="non-negative"):
            _validate(bad, adjacency=adjacency)

    def test_deaths_exceed_total(self, counts, adjacency):
        bad = counts.copy()
        bad.loc[0, 'Y'] = bad.loc[0, 'total'] + 1
        with pytest.raises(DataShapeError, match="between 0 and total"):
            _validate(bad, adjacency=adjacency)

    def test_zero_total_rows_dropped(self, counts, adjacency):
        data = counts.copy()
        data.loc[:4, 'total'] = 0
        data.loc[:4, 'Y'] = 0
        design = _validate(data, adjacency=adjacency)
        assert design.n == len(counts) - 5

    def test_all_zero_total(self, counts, adjacency):
        data = counts.assign(total=0, Y=0)
        with pytest.raises(DataShapeError, match="no rows"):
            _validate(data, adjacency=adjacency)

    def test_missing_strata_becomes_all(self, counts, adjacency):
        data = counts.copy()
        data['strata'] = np.nan
        design = _validate(data, adjacency=adjacency)
        assert (design.data['strata'] == 'All').all()

    def test_survey_labels_sorted(self, make_counts, adjacency):
        data = make_counts(surveys=['2014', '2008'])
        design = _validate(data, adjacency=adjacency)
        assert design.survey_labels == ('2008', '2014')

    def test_input_not_modified(self, counts, adjacency):
        before = counts.copy()
        _validate(counts, adjacency=adjacency)
        pd.testing.assert_frame_equal(counts, before)


class TestFailsBeforeBackend:

    def test_mismatched_adjacency(self, counts, adjacency, recording_backend):
        bad = adjacency.copy()
        bad.index = ['A', 'B', 'D', 'C']
        with pytest.raises(ConfigurationError):
            fit_smoothing(
                counts, year_names=PERIODS, age_groups=AGES, age_n=AGE_N,
                adjacency=bad, is_yearly=False, backend=recording_backend,
            )
        assert recording_backend.problems == []

    def test_bad_data(self, counts, adjacency, recording_backend):
        with pytest.raises(DataShapeError):
            fit_smoothing(
                counts.drop(columns=['Y']), year_names=PERIODS, age_groups=AGES,
                age_n=AGE_N, adjacency=adjacency, is_yearly=False,
                backend=recording_backend,
            )
        assert recording_backend.problems == []
