"""
Index spaces for space-time random effects.

Random effects in the smoothing model are indexed by dense integers.
Combinations of region, time and survey are enumerated once here, in a
fixed and documented order, and looked up by merge afterwards.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import pandas as pd

from pymortality.smoothing._common import IndexTables


NATIONAL_REGION = "All"


def _grid(*sizes: int) -> list[np.ndarray]:
    """1-based full factorial, first factor fastest."""
    mesh = np.meshgrid(*[np.arange(1, s + 1) for s in sizes], indexing='ij')
    return [m.ravel(order='F') for m in mesh]


def build_index_tables(
    region_names: Sequence[str] | None,
    time_labels: Sequence[str],
    survey_labels: Sequence[str] | None = None,
    *,
    n_years: int = 0,
) -> IndexTables:
    """Enumerate region, time and survey combinations.

    Args:
        region_names: Region labels in adjacency order, or None for a
            national model (single sentinel region "All", number 0).
        time_labels: Labels of the N time units. For yearly models the n
            single years come first, followed by the periods.
        survey_labels: Distinct survey labels; None means one survey.
        n_years: Number of single years at the front of ``time_labels``.

    Returns:
        IndexTables.
    """
    national = region_names is None
    if national:
        region = pd.DataFrame({'region': [NATIONAL_REGION], 'region_number': [0]})
    else:
        region = pd.DataFrame({
            'region': [str(r) for r in region_names],
            'region_number': np.arange(1, len(region_names) + 1),
        })

    time = pd.DataFrame({
        'years': [str(t) for t in time_labels],
        'time_number': np.arange(1, len(time_labels) + 1),
    })

    if survey_labels is None or len(survey_labels) == 0:
        survey_labels = ["1"]
    surveys = sorted(str(s) for s in survey_labels)
    survey = pd.DataFrame({
        'survey': surveys,
        'survey_number': np.arange(1, len(surveys) + 1),
    })

    S, N, K = len(region), len(time), len(survey)
    region_numbers = region['region_number'].to_numpy()

    t, k = _grid(N, K)
    survey_time = pd.DataFrame({
        'time_unstruct': t, 'survey': k, 'survey_time': np.arange(1, N * K + 1),
    })

    r, k = _grid(S, K)
    survey_area = pd.DataFrame({
        'region_number': region_numbers[r - 1], 'survey': k,
        'survey_area': np.arange(1, S * K + 1),
    })

    if n_years > 0:
        t1, r1 = _grid(n_years, S)
        t2, r2 = _grid(N - n_years, S)
        t = np.concatenate([t1, t2 + n_years])
        r = np.concatenate([r1, r2])
    else:
        t, r = _grid(N, S)
    time_area = pd.DataFrame({
        'region_number': region_numbers[r - 1], 'time_unstruct': t,
        'time_area': np.arange(1, N * S + 1),
    })

    r, t, k = _grid(S, N, K)
    survey_time_area = pd.DataFrame({
        'region_number': region_numbers[r - 1], 'time_unstruct': t, 'survey': k,
        'survey_time_area': np.arange(1, S * N * K + 1),
    })

    return IndexTables(
        region=region,
        time=time,
        survey=survey,
        survey_time=survey_time,
        survey_area=survey_area,
        time_area=time_area,
        survey_time_area=survey_time_area,
        n_years=int(n_years),
        national=national,
    )
