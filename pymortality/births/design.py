"""
BirthsDesign: immutable container for validated birth-history records.

Wraps the record table together with the calendar-adjusted observation
window of every child. Validates inputs at construction time; all
downstream code trusts clean data.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from pymortality.core.exceptions import ConfigurationError, DataShapeError
from pymortality.core.validation import check_columns, check_dataframe, check_nonempty


def _died_indicator(values: pd.Series) -> NDArray:
    """Death indicator from an alive-at-interview column.

    Accepts text ("yes"/"no", any case, as produced by labelled survey
    files), booleans (True = alive) and numeric codes (0 = dead).
    """
    if pd.api.types.is_bool_dtype(values):
        return ~values.to_numpy(dtype=bool)
    if pd.api.types.is_numeric_dtype(values):
        return (values == 0).to_numpy(dtype=bool)
    text = values.astype(str).str.strip().str.lower()
    return (text == "no").to_numpy(dtype=bool)


def _numeric(values: pd.Series, name: str) -> NDArray:
    try:
        return pd.to_numeric(values).to_numpy(dtype=np.float64)
    except (ValueError, TypeError) as e:
        raise DataShapeError(f"{name}: expected numeric month codes: {e}") from e


def combine_strata(frame: pd.DataFrame, strata: Sequence[str]) -> pd.Series:
    """Single stratum label per row.

    No stratification variables gives a missing label, one gives its values
    as text, several are joined with ".". A row missing any of the variables
    gets a missing label.
    """
    if len(strata) == 0:
        return pd.Series(np.nan, index=frame.index, dtype=object)
    label = frame[strata[0]].astype(str)
    missing = frame[strata[0]].isna()
    for col in strata[1:]:
        label = label + "." + frame[col].astype(str)
        missing = missing | frame[col].isna()
    return label.astype(object).where(~missing, np.nan)


@dataclass(frozen=True)
class BirthsDesign:
    """Immutable birth-history container.

    Parameters
    ----------
    records : pd.DataFrame
        The requested record variables, one row per child.
    dob : NDArray
        Calendar-adjusted date of birth (CMC).
    obs_stop : NDArray
        Calendar-adjusted end of observation: date of death for children
        who died, interview date otherwise, nudged by ``epsilon`` when it
        equals the date of birth.
    died : NDArray
        Death indicator (bool).
    strata : pd.Series
        Combined stratum label per child.
    """

    records: pd.DataFrame
    dob: NDArray
    obs_stop: NDArray
    died: NDArray
    strata: pd.Series

    @classmethod
    def for_births(
        cls,
        data,
        *,
        variables: Sequence[str],
        strata: Sequence[str],
        dob: str,
        alive: str,
        age: str,
        date_interview: str,
        cmc_adjust: int = 0,
        epsilon: float = 0.01,
    ) -> BirthsDesign:
        """Create and validate birth records.

        Parameters
        ----------
        data : pd.DataFrame
            One row per child.
        variables : sequence of str
            Record variables carried into the output.
        strata : sequence of str
            Variables whose combination defines the stratum.
        dob, alive, age, date_interview : str
            Column names of date of birth (CMC), alive flag, age at death
            (months) and interview date (CMC).
        cmc_adjust : int
            Months added to every date before binning.
        epsilon : float
            Width given to zero-length exposure intervals.

        Returns
        -------
        BirthsDesign

        Raises
        ------
        DataShapeError
            If columns are missing, dates are not numeric, a dead child has
            no age at death, or an observation ends before it starts.
        """
        data = check_dataframe(data, 'data')
        check_nonempty(data, 'data')

        keep = list(dict.fromkeys([*variables, *strata]))
        check_columns(data, [*keep, dob, alive, age, date_interview], 'data')

        if epsilon <= 0:
            raise ConfigurationError(f"epsilon must be positive, got {epsilon}")

        birth = _numeric(data[dob], dob) + cmc_adjust
        interview = _numeric(data[date_interview], date_interview) + cmc_adjust
        died = _died_indicator(data[alive])
        age_at_death = _numeric(data[age], age)

        if np.any(~np.isfinite(birth)):
            raise DataShapeError(f"{dob}: contains missing dates of birth")

        dead_no_age = died & ~np.isfinite(age_at_death)
        if np.any(dead_no_age):
            raise DataShapeError(
                f"{age}: {int(dead_no_age.sum())} dead children have no "
                f"age at death"
            )

        obs_stop = np.where(died, birth + np.nan_to_num(age_at_death), interview)
        if np.any(~np.isfinite(obs_stop)):
            raise DataShapeError(
                f"{date_interview}: contains missing interview dates"
            )
        if np.any(obs_stop < birth):
            n_bad = int(np.sum(obs_stop < birth))
            raise DataShapeError(
                f"{n_bad} record(s) end observation before the date of birth"
            )
        obs_stop = np.where(obs_stop == birth, obs_stop + epsilon, obs_stop)

        records = data[keep].reset_index(drop=True)
        strata_label = combine_strata(records, list(strata))

        return cls(
            records=records,
            dob=birth,
            obs_stop=obs_stop,
            died=died,
            strata=strata_label,
        )

    @property
    def n(self) -> int:
        """Number of children."""
        return len(self.dob)
