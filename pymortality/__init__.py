"""
pymortality: child mortality estimation from birth-history surveys.

Turns DHS-style birth records into person-month exposure tables and fits
Bayesian space-time smoothing models to the resulting counts.

Submodules:
    births: Person-month construction (get_births)
    smoothing: Space-time smoothing of mortality counts (fit_smoothing)
"""

__version__ = "0.1.0"

from pymortality import births
from pymortality import smoothing
from pymortality.births import get_births
from pymortality.smoothing import fit_smoothing

__all__ = [
    "__version__",
    "births",
    "smoothing",
    "get_births",
    "fit_smoothing",
]
