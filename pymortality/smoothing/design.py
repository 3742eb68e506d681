"""
Design validation for space-time smoothing.

SmoothingDesign validates and organises the inputs of ``fit_smoothing``:
the count table, the adjacency, the likelihood family and the temporal
and spatial configuration. Every configuration or data problem is raised
here, before any model is assembled or any backend is called.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd

from pymortality.core.exceptions import ConfigurationError, DataShapeError
from pymortality.core.validation import (
    check_adjacency,
    check_choice,
    check_columns,
    check_dataframe,
    check_nonempty,
    check_vocabulary,
)
from pymortality.smoothing._index import NATIONAL_REGION
from pymortality.smoothing.families import Family, resolve_family


REQUIRED_COLUMNS = ('cluster', 'years', 'region', 'strata', 'age', 'total', 'Y')


@dataclass(frozen=True, eq=False)
class SmoothingDesign:
    """Validated design for a space-time smoothing fit.

    Attributes:
        data: Count rows kept for the fit (copy; zero-exposure rows dropped).
        adjacency: Labelled adjacency, or None for a national model.
        family: Likelihood family.
        region_names: Region labels in adjacency order (None if national).
        time_labels: Labels of the N time units.
        survey_labels: Distinct survey labels, or None.
        n_years: Single years of a yearly model (0 for period models).
        period_length: Years per period m.
        age_groups: Ordered age-band vocabulary.
        age_n: Months in each age band.
        rw: Random-walk order.
        type_st: Space-time interaction type.
        is_yearly: Yearly temporal resolution.
    """
    data: pd.DataFrame
    adjacency: pd.DataFrame | None
    family: Family
    region_names: tuple[str, ...] | None
    time_labels: tuple[str, ...]
    survey_labels: tuple[str, ...] | None
    n_years: int
    period_length: int
    age_groups: tuple[str, ...]
    age_n: tuple[int, ...]
    rw: int
    type_st: int
    is_yearly: bool

    @property
    def national(self) -> bool:
        return self.adjacency is None

    @property
    def n(self) -> int:
        """Number of observed count rows."""
        return len(self.data)

    @staticmethod
    def validate(
        data,
        *,
        year_names: Sequence[str],
        adjacency=None,
        family: str | Family = 'betabinomial',
        age_groups: Sequence[str] = ("0", "1-11", "12-23", "24-35", "36-47", "48-59"),
        age_n: Sequence[int] = (1, 11, 12, 12, 12, 12),
        rw: int = 2,
        is_yearly: bool = True,
        year_range: Sequence[int] = (1980, 2014),
        m: int = 5,
        type_st: int = 1,
    ) -> 'SmoothingDesign':
        """Validate inputs and create a SmoothingDesign.

        Args:
            data: Count table with columns cluster, years, region, strata,
                age, total, Y and optionally survey.
            year_names: Period labels, as used in the ``years`` column.
            adjacency: Square DataFrame labelled by region on both axes, or
                None for a national model.
            family: Likelihood family name or instance.
            age_groups: Ordered age-band labels.
            age_n: Months per age band.
            rw: Random-walk order, 1 or 2.
            is_yearly: Model single years jointly with periods.
            year_range: First and last single year (inclusive).
            m: Years per period.
            type_st: Space-time interaction type, 1 to 4.

        Returns:
            Validated SmoothingDesign.

        Raises:
            ConfigurationError: On unsupported options or a malformed
                adjacency.
            DataShapeError: On missing columns, unknown labels or no rows.
        """
        family = resolve_family(family)
        check_choice(rw, (1, 2), 'rw')
        check_choice(type_st, (1, 2, 3, 4), 'type_st')

        age_groups = tuple(str(a) for a in age_groups)
        age_n = tuple(int(k) for k in age_n)
        if len(age_groups) != len(age_n):
            raise ConfigurationError(
                f"age_groups and age_n must have the same length, got "
                f"{len(age_groups)} and {len(age_n)}"
            )

        if adjacency is not None:
            adjacency = check_adjacency(adjacency, 'adjacency')

        year_names = tuple(str(y) for y in year_names)
        if len(year_names) == 0:
            raise ConfigurationError("year_names must not be empty")

        if is_yearly:
            if m < 1:
                raise ConfigurationError(f"m must be positive, got {m}")
            n_years = int(year_range[1]) - int(year_range[0]) + 1
            if n_years < 1:
                raise ConfigurationError(
                    f"year_range must be increasing, got {tuple(year_range)}"
                )
            if n_years // m != len(year_names):
                raise ConfigurationError(
                    f"year_range {tuple(year_range)} with m={m} gives "
                    f"{n_years // m} periods, but {len(year_names)} "
                    f"year_names were given"
                )
            years = tuple(str(y) for y in range(int(year_range[0]), int(year_range[1]) + 1))
            time_labels = years + year_names
        else:
            n_years = 0
            time_labels = year_names

        data = check_dataframe(data, 'data')
        check_columns(data, REQUIRED_COLUMNS, 'data')
        data = data.copy()
        data['region'] = data['region'].astype(str)

        if adjacency is None:
            data = data[data['region'] == NATIONAL_REGION].copy()
            if len(data) == 0:
                raise ConfigurationError(
                    "No adjacency specified and no observation labelled "
                    f"'{NATIONAL_REGION}' either"
                )
            region_names = None
        else:
            data = data[data['region'] != NATIONAL_REGION].copy()
            region_names = tuple(adjacency.columns)
            check_vocabulary(data['region'], region_names, 'data.region')

        check_vocabulary(data['age'], age_groups, 'data.age')
        if data['age'].isna().any():
            raise DataShapeError("data.age: contains missing age labels")
        data['years'] = data['years'].astype(str)
        check_vocabulary(data['years'], time_labels, 'data.years')

        data['strata'] = data['strata'].astype(object).where(data['strata'].notna(), "All")
        data['strata'] = data['strata'].astype(str)

        total = pd.to_numeric(data['total'], errors='coerce')
        if total.isna().any() or (total < 0).any():
            raise DataShapeError("data.total: must be non-negative counts")
        data['total'] = total
        data = data[total != 0].reset_index(drop=True)
        check_nonempty(data, 'data')

        data['Y'] = pd.to_numeric(data['Y'], errors='coerce')
        deaths = data['Y'].to_numpy(dtype=np.float64)
        if np.any(deaths < 0) or np.any(deaths > data['total'].to_numpy(dtype=np.float64)):
            raise DataShapeError("data.Y: deaths must lie between 0 and total")

        survey_labels = None
        if 'survey' in data.columns and data['survey'].notna().any():
            survey_labels = tuple(sorted(pd.unique(data['survey'].dropna().astype(str))))

        return SmoothingDesign(
            data=data,
            adjacency=adjacency,
            family=family,
            region_names=region_names,
            time_labels=time_labels,
            survey_labels=survey_labels,
            n_years=n_years,
            period_length=int(m),
            age_groups=age_groups,
            age_n=age_n,
            rw=int(rw),
            type_st=int(type_st),
            is_yearly=bool(is_yearly),
        )
