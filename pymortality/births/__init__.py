"""
Person-month construction from birth histories.

Public API:
    get_births(data, ...) -> PersonMonthSolution
"""

from pymortality.births.design import BirthsDesign
from pymortality.births.solution import PersonMonthSolution
from pymortality.births.solvers import DHS_VARIABLES, get_births

__all__ = [
    "get_births",
    "PersonMonthSolution",
    "BirthsDesign",
    "DHS_VARIABLES",
]
