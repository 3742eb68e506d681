"""
Person-month expansion of birth histories.

Turns one row per child into one row per child-month of observed exposure
("survival splitting"), the long format on which discrete-time hazards
are estimated.

Algorithm:
    1. Exposure of child i runs over ages [0, s_i) months, where s_i is
       age at death or age at interview.
    2. Split at every integer month: segment j covers [j, min(j+1, s_i)).
       There are ceil(s_i) segments; only those starting before the
       largest age cutoff are kept.
    3. The death indicator is set on the segment that ends at s_i, and
       only for children who died. A death past the age window therefore
       leaves no event in the output.
    4. Calendar month of each segment is dob + j; its year decides the
       period label.

References:
    Singer, J. D. & Willett, J. B. (1993). It's about time: Using
        discrete-time survival analysis to study duration and the
        timing of events. Journal of Educational Statistics, 18(2), 155-195.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from pymortality.births._calendar import (
    age_bin_labels,
    bin_ages,
    bin_periods,
    cmc_to_year,
    period_labels,
    truncate_last_period,
)
from pymortality.births.design import BirthsDesign


@dataclass(frozen=True)
class SplitSegments:
    """Flat arrays describing every person-month segment.

    Attributes:
        child: Row index of the child in the design (0-based).
        agemonth: Segment start age in months.
        tstop: Segment end age in months.
        died: True on the segment containing the death.
    """
    child: NDArray
    agemonth: NDArray
    tstop: NDArray
    died: NDArray


def split_exposure(
    dob: NDArray,
    obs_stop: NDArray,
    died: NDArray,
    max_age: int,
) -> SplitSegments:
    """Split each child's exposure interval at integer months.

    Args:
        dob: (n,) date of birth.
        obs_stop: (n,) end of observation, strictly after dob.
        died: (n,) death indicator.
        max_age: Largest age cutoff in months; segments starting at or
            after it are not produced.

    Returns:
        SplitSegments, ordered by child then age.
    """
    stop_age = np.asarray(obs_stop, dtype=np.float64) - np.asarray(dob, dtype=np.float64)
    n_segments = np.ceil(stop_age).astype(np.int64)
    n_keep = np.minimum(n_segments, max_age)

    child = np.repeat(np.arange(len(stop_age)), n_keep)
    offsets = np.repeat(np.cumsum(n_keep) - n_keep, n_keep)
    agemonth = np.arange(int(n_keep.sum())) - offsets

    tstop = np.minimum(agemonth + 1.0, stop_age[child])
    died_seg = died[child] & (agemonth == n_segments[child] - 1)

    return SplitSegments(
        child=child,
        agemonth=agemonth,
        tstop=tstop,
        died=died_seg,
    )


def expand_births(
    design: BirthsDesign,
    *,
    month_cut: Sequence[int],
    year_cut: Sequence[int],
    min_last_period: int = 0,
    survey_year: int | None = None,
    short_period_labels: bool = False,
) -> tuple[pd.DataFrame, bool]:
    """Build the person-month table of a birth-history design.

    Args:
        design: Validated birth records.
        month_cut: Age cutoffs in months.
        year_cut: Calendar year cutoffs, both outer boundaries included.
        min_last_period: Trailing-period threshold, see
            ``truncate_last_period``.
        survey_year: Survey year recorded on every row.
        short_period_labels: Two-digit period labels ("80-84").

    Returns:
        The table, one row per person-month with the record variables
        followed by dob, survey_year, died, id.new, agemonth, obsStart,
        obsStop, obsmonth, year, age, time and strata; and whether the
        trailing period was dropped.
    """
    seg = split_exposure(design.dob, design.obs_stop, design.died, int(max(month_cut)))

    dob = design.dob[seg.child]
    obsmonth = dob + seg.agemonth
    year = cmc_to_year(obsmonth)

    in_window = (year >= year_cut[0]) & (year < year_cut[-1])
    keep = np.flatnonzero(in_window)
    trailing = truncate_last_period(year[keep], year_cut, min_last_period)
    truncated = not bool(trailing.all())
    keep = keep[trailing]

    child = seg.child[keep]
    agemonth = seg.agemonth[keep]

    out = design.records.iloc[child].reset_index(drop=True)
    out['dob'] = dob[keep]
    out['survey_year'] = np.nan if survey_year is None else survey_year
    out['died'] = seg.died[keep]
    out['id.new'] = child + 1
    out['agemonth'] = agemonth
    out['obsStart'] = dob[keep] + agemonth
    out['obsStop'] = dob[keep] + seg.tstop[keep]
    out['obsmonth'] = obsmonth[keep]
    out['year'] = year[keep]

    ages = age_bin_labels(month_cut)
    out['age'] = pd.Categorical.from_codes(bin_ages(agemonth, month_cut), categories=ages)

    periods = period_labels(year_cut, short=short_period_labels)
    out['time'] = pd.Categorical.from_codes(bin_periods(year[keep], year_cut), categories=periods)

    out['strata'] = design.strata.iloc[child].to_numpy()
    return out, truncated


def compact_person_months(
    person_months: pd.DataFrame,
    compact_by: Sequence[str],
) -> pd.DataFrame:
    """Aggregate person-months into count cells.

    Rows are grouped by ``compact_by`` plus age, time and strata. Each cell
    holds ``total`` (number of person-months) and ``Y`` (deaths). Missing
    grouping values form their own cells; empty age/period combinations
    are not materialised.
    """
    keys = list(dict.fromkeys([*compact_by, 'age', 'time', 'strata']))
    frame = person_months[keys + ['died']].copy()
    frame['total'] = 1

    cells = (
        frame.groupby(keys, observed=True, dropna=False, sort=True)
        .agg(total=('total', 'sum'), Y=('died', 'sum'))
        .reset_index()
    )
    cells['Y'] = cells['Y'].astype(np.int64)
    return cells
