"""
Public API for person-month construction.

    get_births(data, ...) → PersonMonthSolution

Validates inputs, creates a BirthsDesign, expands it into person-months,
optionally compacts to count cells, and wraps the Result in a Solution.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import numpy as np
import pandas as pd

from pymortality.core.compute.timing import Timer
from pymortality.core.exceptions import ConfigurationError
from pymortality.core.result import Result
from pymortality.core.validation import check_increasing, check_nonempty
from pymortality.births._calendar import age_bin_labels, period_labels
from pymortality.births._common import PersonMonthParams
from pymortality.births._expand import compact_person_months, expand_births
from pymortality.births.design import BirthsDesign
from pymortality.births.solution import PersonMonthSolution


DHS_VARIABLES = (
    "caseid", "v001", "v002", "v004", "v005", "v021", "v022",
    "v023", "v024", "v025", "v139", "bidx",
)


def get_births(
    data,
    *,
    survey_year: int | None = None,
    variables: Sequence[str] = DHS_VARIABLES,
    strata: Sequence[str] = ("v024", "v025"),
    dob: str = "b3",
    alive: str = "b5",
    age: str = "b7",
    date_interview: str = "v008",
    month_cut: Sequence[int] = (1, 12, 24, 36, 48, 60),
    year_cut: Sequence[int] = tuple(range(1980, 2021, 5)),
    min_last_period: int = 0,
    cmc_adjust: int = 0,
    compact: bool = False,
    compact_by: Sequence[str] = ("v001", "v024", "v025", "v005"),
    short_period_labels: bool = False,
    epsilon: float = 0.01,
) -> PersonMonthSolution:
    """Person-month (or count-cell) table from birth-history records.

    Column defaults follow the DHS recode naming.

    Parameters
    ----------
    data : pd.DataFrame or path
        One row per child. A path is read with ``pandas.read_stata``.
    survey_year : int or None
        Year of the survey, recorded on every row. Does not truncate.
    variables : sequence of str
        Record variables carried into the output.
    strata : sequence of str
        Stratification variables; several are combined as "a.b".
    dob, alive, age, date_interview : str
        Date of birth (CMC), alive-at-interview flag, age at death in
        completed months, interview date (CMC).
    month_cut : sequence of int
        Age cutoffs in months; defaults give bands 0, 1-11, 12-23, ...,
        48-59.
    year_cut : sequence of int
        Period cutoffs including both boundaries. Consecutive years give
        yearly periods, the last one being max(year_cut) - 1.
    min_last_period : int
        Minimum number of observed years the final period must contain;
        otherwise all of its person-months are dropped. 0 disables.
    cmc_adjust : int
        Months added to every date, e.g. 92 for the Ethiopian calendar.
    compact : bool
        Return count cells (``total``, ``Y``) grouped by ``compact_by``,
        age, time and strata instead of raw person-months.
    compact_by : sequence of str
        Grouping variables for the compact form.
    short_period_labels : bool
        Two-digit period labels ("80-84") instead of "1980-1984".
    epsilon : float
        Exposure width given to records that start and stop in the same
        month, so each child has at least one segment.

    Returns
    -------
    PersonMonthSolution

    Raises
    ------
    ConfigurationError
        If cutoffs are not increasing or ``min_last_period`` is negative.
    DataShapeError
        If required columns are missing or nothing is left after filtering.
    """
    if isinstance(data, (str, Path)):
        data = pd.read_stata(data)

    check_increasing(month_cut, 'month_cut', min_length=1)
    check_increasing(year_cut, 'year_cut', min_length=2)
    if min_last_period < 0:
        raise ConfigurationError(
            f"min_last_period must be non-negative, got {min_last_period}"
        )
    month_cut = tuple(int(c) for c in month_cut)
    year_cut = tuple(int(c) for c in year_cut)
    if month_cut[0] == 0 and len(month_cut) < 2:
        raise ConfigurationError("month_cut needs a positive cutoff")

    variables = list(variables)
    if compact:
        missing = [c for c in compact_by if c not in variables and c not in strata]
        if missing:
            raise ConfigurationError(
                f"compact_by variables {missing} must also appear in "
                f"variables or strata"
            )

    timer = Timer()
    timer.start()

    with timer.section('validate'):
        design = BirthsDesign.for_births(
            data,
            variables=variables,
            strata=list(strata),
            dob=dob,
            alive=alive,
            age=age,
            date_interview=date_interview,
            cmc_adjust=cmc_adjust,
            epsilon=epsilon,
        )

    with timer.section('expand'):
        person_months, truncated = expand_births(
            design,
            month_cut=month_cut,
            year_cut=year_cut,
            min_last_period=min_last_period,
            survey_year=survey_year,
            short_period_labels=short_period_labels,
        )
        check_nonempty(person_months, 'person-months')

    n_person_months = len(person_months)
    n_deaths = int(np.sum(person_months['died']))

    table = person_months
    if compact:
        with timer.section('compact'):
            table = compact_person_months(person_months, compact_by)

    timer.stop()

    warnings_list = []
    if truncated:
        warnings_list.append(
            f"Final period dropped: fewer than {min_last_period} observed years"
        )

    params = PersonMonthParams(
        data=table,
        age_groups=age_bin_labels(month_cut),
        periods=period_labels(year_cut, short=short_period_labels),
        month_cut=month_cut,
        year_cut=year_cut,
        n_children=design.n,
        n_person_months=n_person_months,
        n_deaths=n_deaths,
        compact=compact,
        truncated=truncated,
    )

    result = Result(
        params=params,
        info={
            "method": "survival_split",
            "cmc_adjust": cmc_adjust,
            "min_last_period": min_last_period,
            "compact": compact,
        },
        timing=timer.result(),
        backend_name="cpu_split",
        warnings=tuple(warnings_list),
    )

    return PersonMonthSolution(_result=result)
