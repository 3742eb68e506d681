"""
Common data types for space-time smoothing.

Contains the index tables, constraint specifications, backend problem and
the frozen parameter payloads that go inside Result[P] envelopes.

References:
    Mercer, L. D., Wakefield, J., Pantazis, A., Lutambi, A. M., Masanja, H.
    & Clark, S. (2015). Space-time smoothing of complex survey data: small
    area estimation for child mortality. Annals of Applied Statistics,
    9(4), 1889-1905.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray

if TYPE_CHECKING:
    from pymortality.core.result import Result
    from pymortality.smoothing._priors import HyperParameters
    from pymortality.smoothing._terms import ModelSpec
    from pymortality.smoothing.families import Family


SUMMARY_COLUMNS = ('mean', 'sd', '0.025quant', '0.5quant', '0.975quant', 'mode')


@dataclass(frozen=True, eq=False)
class ConstraintSpec:
    """Linear constraint A x = e on a latent field.

    Attributes:
        A: Constraint matrix (k, d).
        e: Target vector (k,).
    """
    A: NDArray
    e: NDArray

    @property
    def n_constraints(self) -> int:
        return self.A.shape[0]

    @staticmethod
    def stack(*specs: ConstraintSpec | None) -> ConstraintSpec | None:
        """Stack constraint blocks row-wise, skipping missing ones."""
        present = [s for s in specs if s is not None]
        if not present:
            return None
        return ConstraintSpec(
            A=np.vstack([s.A for s in present]),
            e=np.concatenate([s.e for s in present]),
        )


@dataclass(frozen=True, eq=False)
class IndexTables:
    """Enumerated index spaces used as random-effect grouping keys.

    Every table maps a combination of labels or 1-based numbers to a dense
    integer column named after the table.

    Attributes:
        region: region label, region_number (1..S; 0 for the "All" sentinel).
        time: years label, time_number (1..N).
        survey: survey label, survey_number (1..K).
        survey_time: time_unstruct, survey, survey_time. Time fastest.
        survey_area: region_number, survey, survey_area. Region fastest.
        time_area: region_number, time_unstruct, time_area. Region-major,
            time fastest; yearly models list all single years for every
            region before all periods.
        survey_time_area: region_number, time_unstruct, survey,
            survey_time_area. Region fastest, then time, then survey.
        n_years: Number of single years n (0 for period models).
        national: True when the model has no geography.
    """
    region: pd.DataFrame
    time: pd.DataFrame
    survey: pd.DataFrame
    survey_time: pd.DataFrame
    survey_area: pd.DataFrame
    time_area: pd.DataFrame
    survey_time_area: pd.DataFrame
    n_years: int
    national: bool

    @property
    def S(self) -> int:
        """Number of regions."""
        return len(self.region)

    @property
    def N(self) -> int:
        """Number of time units (single years plus periods when yearly)."""
        return len(self.time)

    @property
    def K(self) -> int:
        """Number of surveys."""
        return len(self.survey)

    @property
    def n_periods(self) -> int:
        return self.N - self.n_years

    @property
    def n_struct(self) -> int:
        """Time units carrying temporal structure: n yearly, N otherwise."""
        return self.n_years if self.n_years > 0 else self.N


@dataclass(frozen=True, eq=False)
class PosteriorSummary:
    """Posterior summaries returned by an inference backend.

    Summary tables share the columns of ``SUMMARY_COLUMNS``.

    Attributes:
        fixed: One row per fixed effect, indexed by name.
        random: Random-effect term name -> table with an ``ID`` column.
        hyperpar: One row per hyperparameter, with ``theta`` (internal
            scale), ``theta_sd`` and ``mode`` (natural scale).
        linear_predictor: One row per data row.
        log_marginal_likelihood: Approximate log p(y).
        reference_levels: Factor name -> level absorbed into the baseline.
        converged: Whether the hyperparameter optimisation converged.
        n_iter: Outer iterations used.
    """
    fixed: pd.DataFrame
    random: dict[str, pd.DataFrame]
    hyperpar: pd.DataFrame
    linear_predictor: pd.DataFrame
    log_marginal_likelihood: float
    reference_levels: dict[str, str] = field(default_factory=dict)
    converged: bool = True
    n_iter: int = 0


@dataclass(frozen=True, eq=False)
class SmoothingProblem:
    """Everything a backend needs for one fit.

    Attributes:
        model: Declarative model description.
        data: Augmented data table (one row per observation).
        family: Likelihood family.
        response: Column holding death counts (missing for prediction rows).
        trials: Column holding the number of trials.
        offset: Column holding the log offset.
        options: Backend options, passed through unchanged.
        verbose: Ask the backend to report progress.
    """
    model: ModelSpec
    data: pd.DataFrame
    family: Family
    response: str = 'Y'
    trials: str = 'total'
    offset: str = 'logoffset'
    options: dict[str, Any] = field(default_factory=dict)
    verbose: bool = False


@dataclass(frozen=True, eq=False)
class SmoothingParams:
    """
    Parameter payload for a fitted space-time smoothing model.

    Carries the posterior together with every bookkeeping table needed
    to summarise or project the fit downstream.
    """
    model: ModelSpec
    fit: Result[PosteriorSummary]      # raw backend result
    family: str
    adjacency: pd.DataFrame | None
    data: pd.DataFrame                 # augmented, offset-merged table
    tables: IndexTables
    hyper: HyperParameters
    reference_stratum: str | None
    is_yearly: bool
    age_groups: tuple[str, ...]
    age_n: tuple[int, ...]
    time: NDArray                      # 0..N-1
    area: NDArray                      # 0..S-1
