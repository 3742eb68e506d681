"""
Calendar binning for person-month construction.

Maps continuous dates to the discrete age bands and calendar periods the
mortality models are defined on.

Conventions:
    - Dates are century-month codes (CMC): months since December 1899,
      so CMC 1 is January 1900. Calendar adjustment (e.g. +92 months for
      the Ethiopian calendar) is applied before any function here.
    - Age cutoffs are in months; age band i is [cut[i-1], cut[i]), with
      the first band [0, cut[0]).
    - Year cutoffs are calendar years including both outer boundaries;
      period i is [cut[i], cut[i+1]). The final cutoff is exclusive.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from numpy.typing import NDArray


def _age_cuts(month_cut: Sequence[int]) -> NDArray:
    cuts = np.asarray(month_cut, dtype=np.int64)
    if cuts[0] == 0:
        cuts = cuts[1:]
    return cuts


def age_bin_labels(month_cut: Sequence[int]) -> tuple[str, ...]:
    """Labels of the age bands defined by month cutoffs.

    A leading 0 cutoff is ignored (the first band always starts at 0), and
    a one-month first band is written "0" rather than "0-0".

    >>> age_bin_labels((1, 12, 24, 36, 48, 60))
    ('0', '1-11', '12-23', '24-35', '36-47', '48-59')
    """
    cuts = _age_cuts(month_cut)
    labels = [f"0-{cuts[0] - 1}"]
    for lo, hi in zip(cuts[:-1], cuts[1:]):
        labels.append(f"{lo}-{hi - 1}")
    if labels[0] == "0-0":
        labels[0] = "0"
    return tuple(labels)


def bin_ages(agemonth: NDArray, month_cut: Sequence[int]) -> NDArray:
    """Index of the age band containing each age in months.

    Ages at or beyond the last cutoff get index len(labels); callers drop
    them before labelling.
    """
    cuts = _age_cuts(month_cut)
    return np.searchsorted(cuts, np.asarray(agemonth), side='right')


def is_single_year(year_cut: Sequence[int]) -> bool:
    """True when year cutoffs are one year apart (yearly periods)."""
    return int(year_cut[1]) - int(year_cut[0]) == 1


def _two_digit(year: int) -> str:
    return f"{(year - 1900) % 100:02d}"


def period_labels(year_cut: Sequence[int], short: bool = False) -> tuple[str, ...]:
    """Labels of the calendar periods defined by year cutoffs.

    Yearly cutoffs label each period by its year. Multi-year periods are
    labelled "start-end" where end is the year before the next cutoff;
    ``short=True`` uses two-digit years ("80-84").

    >>> period_labels(range(1980, 1991, 5))
    ('1980-1984', '1985-1989')
    >>> period_labels(range(2000, 2011, 5), short=True)
    ('00-04', '05-09')
    >>> period_labels(range(2000, 2003))
    ('2000', '2001')
    """
    cuts = [int(c) for c in year_cut]
    if is_single_year(cuts):
        return tuple(str(c) for c in cuts[:-1])

    fmt = _two_digit if short else str
    return tuple(
        f"{fmt(lo)}-{fmt(hi - 1)}" for lo, hi in zip(cuts[:-1], cuts[1:])
    )


def bin_periods(year: NDArray, year_cut: Sequence[int]) -> NDArray:
    """Index of the calendar period containing each year.

    Years before the first cutoff get -1 and years at or after the last
    cutoff get len(year_cut) - 1; callers filter them out first.
    """
    cuts = np.asarray(year_cut, dtype=np.int64)
    return np.searchsorted(cuts, np.asarray(year), side='right') - 1


def cmc_to_year(month: NDArray) -> NDArray:
    """Calendar year of a century-month code."""
    month = np.asarray(month, dtype=np.float64)
    return (np.floor((month - 1.0) / 12.0) + 1900).astype(np.int64)


def truncate_last_period(
    year: NDArray,
    year_cut: Sequence[int],
    min_last_period: int,
) -> NDArray:
    """Keep-mask implementing the trailing-period policy.

    When the latest observed year falls fewer than ``min_last_period`` years
    into the period that contains it, every row of that period is dropped,
    not only the incomplete ones. Estimates for a final period resting on
    its first one or two years are biased towards those years.

    Example: cuts (..., 2015, 2020), min_last_period=3 and latest year 2016:
    2016 < 2015 + 3 - 1, so all years >= 2015 are removed.

    Args:
        year: Calendar year of each row (already restricted to the cut range).
        year_cut: Year cutoffs.
        min_last_period: Minimum number of observed years in the last
            period; 0 disables truncation.

    Returns:
        Boolean mask, True for rows to keep.
    """
    year = np.asarray(year)
    keep = np.ones(year.shape, dtype=bool)
    if min_last_period <= 0 or year.size == 0:
        return keep

    cuts = np.asarray(year_cut, dtype=np.int64)
    max_year = int(year.max())
    last_start = int(cuts[cuts <= max_year].max())
    if max_year < last_start + min_last_period - 1:
        keep = year < last_start
    return keep
