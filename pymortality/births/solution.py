"""
Solution wrapper for person-month construction.

Wraps a Result[PersonMonthParams] and exposes the table and its binning
as properties, with a short summary() report.
"""

from __future__ import annotations

import pandas as pd

from pymortality.core.result import Result
from pymortality.births._common import PersonMonthParams


class PersonMonthSolution:
    """Person-month table produced by ``get_births``."""

    __slots__ = ('_result',)

    def __init__(self, _result: Result[PersonMonthParams]) -> None:
        self._result = _result

    @property
    def data(self) -> pd.DataFrame:
        """Person-months, or count cells (``total``, ``Y``) if compact."""
        return self._result.params.data

    @property
    def age_groups(self) -> tuple[str, ...]:
        return self._result.params.age_groups

    @property
    def periods(self) -> tuple[str, ...]:
        return self._result.params.periods

    @property
    def month_cut(self) -> tuple[int, ...]:
        return self._result.params.month_cut

    @property
    def year_cut(self) -> tuple[int, ...]:
        return self._result.params.year_cut

    @property
    def n_children(self) -> int:
        return self._result.params.n_children

    @property
    def n_person_months(self) -> int:
        """Segments in the age/period window, before compaction."""
        return self._result.params.n_person_months

    @property
    def n_deaths(self) -> int:
        return self._result.params.n_deaths

    @property
    def compact(self) -> bool:
        return self._result.params.compact

    @property
    def truncated(self) -> bool:
        """True if the trailing period was dropped."""
        return self._result.params.truncated

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
        """Counts of person-months and deaths by age band and period."""
        lines = []
        lines.append("Call: get_births()")
        lines.append("")
        lines.append(
            f"  children={self.n_children}, "
            f"person-months={self.n_person_months}, "
            f"deaths={self.n_deaths}"
        )
        if self.truncated:
            lines.append("  final period dropped (min_last_period)")
        lines.append("")

        frame = self.data
        if self.compact:
            exposure = frame.groupby(['age', 'time'], observed=False)['total'].sum()
            deaths = frame.groupby(['age', 'time'], observed=False)['Y'].sum()
        else:
            exposure = frame.groupby(['age', 'time'], observed=False).size()
            deaths = frame.groupby(['age', 'time'], observed=False)['died'].sum()

        lines.append(f"  {'age':>8s}  {'period':>10s}  {'exposure':>10s}  {'deaths':>8s}")
        for (age, period), total in exposure.items():
            if total == 0:
                continue
            lines.append(
                f"  {age:>8s}  {period:>10s}  {int(total):10d}  "
                f"{int(deaths.loc[(age, period)]):8d}"
            )

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"PersonMonthSolution(children={self.n_children}, "
            f"person_months={self.n_person_months}, "
            f"deaths={self.n_deaths}, compact={self.compact})"
        )
