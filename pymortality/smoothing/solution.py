"""
Solution wrapper for space-time smoothing fits.

Wraps a Result[SmoothingParams] and exposes the posterior summaries and
all bookkeeping tables as properties, with an INLA-style summary().
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from pymortality.core.result import Result
from pymortality.smoothing._common import IndexTables, PosteriorSummary, SmoothingParams
from pymortality.smoothing._priors import HyperParameters
from pymortality.smoothing._terms import ModelSpec


class SmoothingSolution:
    """Fitted space-time smoothing model."""

    __slots__ = ('_result',)

    def __init__(self, _result: Result[SmoothingParams]) -> None:
        self._result = _result

    # -- Model and posterior --

    @property
    def model(self) -> ModelSpec:
        return self._result.params.model

    @property
    def formula(self) -> str:
        return self._result.params.model.formula

    @property
    def fit(self) -> Result[PosteriorSummary]:
        """Raw backend result."""
        return self._result.params.fit

    @property
    def posterior(self) -> PosteriorSummary:
        return self._result.params.fit.params

    @property
    def fixed(self) -> pd.DataFrame:
        """Fixed-effect summaries (age bands and non-reference strata)."""
        return self.posterior.fixed

    @property
    def random(self) -> dict[str, pd.DataFrame]:
        return self.posterior.random

    @property
    def hyperpar(self) -> pd.DataFrame:
        return self.posterior.hyperpar

    @property
    def linear_predictor(self) -> pd.DataFrame:
        return self.posterior.linear_predictor

    @property
    def log_marginal_likelihood(self) -> float:
        return self.posterior.log_marginal_likelihood

    @property
    def family(self) -> str:
        return self._result.params.family

    @property
    def reference_stratum(self) -> str | None:
        """Stratum level absorbed into the age effects."""
        return self._result.params.reference_stratum

    # -- Data and index tables --

    @property
    def data(self) -> pd.DataFrame:
        """Augmented data with index columns, ratio and logoffset."""
        return self._result.params.data

    @property
    def adjacency(self) -> pd.DataFrame | None:
        return self._result.params.adjacency

    @property
    def tables(self) -> IndexTables:
        return self._result.params.tables

    @property
    def survey_time(self) -> pd.DataFrame:
        return self.tables.survey_time

    @property
    def survey_area(self) -> pd.DataFrame:
        return self.tables.survey_area

    @property
    def time_area(self) -> pd.DataFrame:
        return self.tables.time_area

    @property
    def survey_time_area(self) -> pd.DataFrame:
        return self.tables.survey_time_area

    @property
    def hyper(self) -> HyperParameters:
        """Hyperprior settings actually used."""
        return self._result.params.hyper

    @property
    def is_yearly(self) -> bool:
        return self._result.params.is_yearly

    @property
    def age_groups(self) -> tuple[str, ...]:
        return self._result.params.age_groups

    @property
    def age_n(self) -> tuple[int, ...]:
        return self._result.params.age_n

    @property
    def time(self) -> np.ndarray:
        """0-based time indices 0..N-1."""
        return self._result.params.time

    @property
    def area(self) -> np.ndarray:
        """0-based area indices 0..S-1."""
        return self._result.params.area

    # -- Envelope --

    @property
    def info(self) -> dict:
        return self._result.info

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    def summary(self) -> str:
        """INLA-style summary of the fit."""
        lines = []
        lines.append("Call: fit_smoothing()")
        lines.append("")
        lines.append(f"Formula: {self.formula}")
        lines.append("")
        lines.append(
            f"  family={self.family}, hyper={self.hyper.family}, "
            f"{'yearly' if self.is_yearly else 'period'}, "
            f"{'national' if self.tables.national else f'{self.tables.S} regions'}"
        )
        lines.append(f"  reference stratum: {self.reference_stratum}")
        lines.append("")

        lines.append("Fixed effects:")
        lines.append(
            f"  {'':>20s}  {'mean':>10s}  {'sd':>10s}  "
            f"{'0.025quant':>10s}  {'0.975quant':>10s}"
        )
        for name, row in self.fixed.iterrows():
            lines.append(
                f"  {str(name):>20s}  {row['mean']:10.4f}  {row['sd']:10.4f}  "
                f"{row['0.025quant']:10.4f}  {row['0.975quant']:10.4f}"
            )
        lines.append("")

        lines.append("Random effects:")
        for term in self.model.terms:
            lines.append(f"  {term.index:<20s} {term.model}")
        lines.append("")

        if len(self.hyperpar) > 0:
            lines.append("Hyperparameters (mode):")
            for name, row in self.hyperpar.iterrows():
                lines.append(f"  {str(name):<40s} {row['mode']:12.4f}")
            lines.append("")

        lines.append(f"Log marginal likelihood: {self.log_marginal_likelihood:.3f}")
        if self.warnings:
            lines.append("")
            lines.append("Warnings:")
            for w in self.warnings:
                lines.append(f"  {w}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"SmoothingSolution(family={self.family!r}, "
            f"terms={list(self.model.names)}, "
            f"reference_stratum={self.reference_stratum!r})"
        )
