"""
Space-time smoothing of child mortality counts.

Public API:
    fit_smoothing(): assemble and fit a space-time smoothing model
    SmoothingSolution: result wrapper
    build_index_tables(): region/time/survey index enumerations
    st_constraints(): space-time interaction constraints
"""

from pymortality.smoothing._common import (
    ConstraintSpec,
    IndexTables,
    PosteriorSummary,
    SmoothingProblem,
)
from pymortality.smoothing._constraints import (
    period_constraint,
    st_constraints,
    time_constraint,
)
from pymortality.smoothing._index import build_index_tables
from pymortality.smoothing._priors import (
    GammaPrior,
    HyperParameters,
    PCMixingPrior,
    PCPrior,
    wakefield_gamma,
)
from pymortality.smoothing._terms import GroupSpec, ModelSpec, RandomEffectTerm
from pymortality.smoothing.families import BetaBinomial, Binomial, resolve_family
from pymortality.smoothing.solution import SmoothingSolution
from pymortality.smoothing.solvers import apply_bias_adjustment, fit_smoothing

__all__ = [
    "fit_smoothing",
    "SmoothingSolution",
    "build_index_tables",
    "st_constraints",
    "time_constraint",
    "period_constraint",
    "apply_bias_adjustment",
    "ConstraintSpec",
    "IndexTables",
    "PosteriorSummary",
    "SmoothingProblem",
    "ModelSpec",
    "RandomEffectTerm",
    "GroupSpec",
    "PCPrior",
    "PCMixingPrior",
    "GammaPrior",
    "HyperParameters",
    "wakefield_gamma",
    "Binomial",
    "BetaBinomial",
    "resolve_family",
]
