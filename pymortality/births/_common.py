"""
Parameter payloads for person-month construction.

Each dataclass is a frozen payload carried inside a Result[P] envelope.
"""

from __future__ import annotations

from dataclasses import dataclass

import pandas as pd


@dataclass(frozen=True)
class PersonMonthParams:
    """Person-month table and the binning that produced it."""

    data: pd.DataFrame                # person-months, or count cells if compact
    age_groups: tuple[str, ...]       # ordered age-band vocabulary
    periods: tuple[str, ...]          # ordered calendar-period labels
    month_cut: tuple[int, ...]
    year_cut: tuple[int, ...]
    n_children: int                   # children in the input
    n_person_months: int              # segments before compaction
    n_deaths: int                     # deaths inside the age/period window
    compact: bool
    truncated: bool                   # trailing period dropped by min_last_period
