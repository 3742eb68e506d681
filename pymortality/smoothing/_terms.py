"""
Declarative model description for space-time smoothing.

A ModelSpec is a list of typed random-effect terms plus the fixed part
(categorical fixed effects, no intercept, log offset). It is built once
per fit by ``assemble_model`` and read by the backend; nothing mutates it.

Latent layouts:
    - A plain term has ``n_levels`` entries addressed by the 1-based value
      of its index column.
    - A grouped term is laid out main-major with the group fastest:
      entry (main - 1) * group.n_levels + (group - 1). For region x time
      interactions this is the ``time_area`` order.
    - bym2 has 2 * n_levels entries [b, u]; data rows address b.
"""

from __future__ import annotations

from dataclasses import dataclass

import pandas as pd

from pymortality.smoothing._common import ConstraintSpec
from pymortality.smoothing._priors import GammaPrior, PCMixingPrior, PCPrior


TERM_MODELS = (
    'iid', 'rw1', 'rw2', 'besag', 'bym2',
    'rw_yearly', 'iid_yearly', 'st_yearly',
)
GROUP_MODELS = ('iid', 'rw1', 'rw2')


@dataclass(frozen=True)
class GroupSpec:
    """Second-level structure of a grouped (Kronecker) term."""
    index: str
    model: str
    n_levels: int
    scale_model: bool = False


@dataclass(frozen=True, eq=False)
class RandomEffectTerm:
    """One random effect of the model.

    Attributes:
        index: Data column holding the 1-based level of each row.
        model: One of ``TERM_MODELS``.
        n_levels: Number of levels of the index.
        prior: Prior on the term's precision.
        mixing_prior: Prior on the BYM2 mixing parameter.
        graph: Adjacency for besag/bym2/st_yearly terms.
        group: Grouping structure, for grouped interactions.
        constr: Sum-to-zero on the structured part (per connected
            component for spatial models).
        extra_constraint: Additional linear constraints on the latent field.
        scale_model: Scale structure matrices to unit generalised variance.
        diagonal: Constant added to the diagonal of the precision.
        order: Random-walk order of yearly terms.
        n_years: Single years of yearly terms.
        period_length: Years per period of yearly terms.
        type_st: Interaction type of st_yearly terms.
    """
    index: str
    model: str
    n_levels: int
    prior: PCPrior | GammaPrior
    mixing_prior: PCMixingPrior | None = None
    graph: pd.DataFrame | None = None
    group: GroupSpec | None = None
    constr: bool = False
    extra_constraint: ConstraintSpec | None = None
    scale_model: bool = False
    diagonal: float = 0.0
    order: int | None = None
    n_years: int = 0
    period_length: int = 0
    type_st: int | None = None

    @property
    def size(self) -> int:
        """Length of the term's latent vector."""
        if self.model == 'bym2':
            return 2 * self.n_levels
        if self.group is not None:
            return self.n_levels * self.group.n_levels
        return self.n_levels

    def render(self) -> str:
        """f(...) expression for display."""
        parts = [self.index, f"model='{self.model}'"]
        if self.graph is not None:
            parts.append("graph=adjacency")
        if self.group is not None:
            parts.append(f"group={self.group.index}")
            parts.append(f"control_group=dict(model='{self.group.model}'"
                         + (", scale_model=True)" if self.group.scale_model else ")"))
        if self.scale_model:
            parts.append("scale_model=True")
        if self.constr:
            parts.append("constr=True")
        if self.extra_constraint is not None:
            parts.append(f"extraconstr=<{self.extra_constraint.n_constraints} rows>")
        if self.diagonal:
            parts.append(f"diagonal={self.diagonal:g}")
        if isinstance(self.prior, PCPrior):
            parts.append(f"prior=pc.prec({self.prior.u:g}, {self.prior.alpha:g})")
        else:
            parts.append(f"prior=gamma({self.prior.shape:g}, {self.prior.rate:.4g})")
        if self.mixing_prior is not None:
            parts.append(
                f"phi=pc({self.mixing_prior.u:g}, {self.mixing_prior.alpha:.4g})"
            )
        return f"f({', '.join(parts)})"


@dataclass(frozen=True, eq=False)
class ModelSpec:
    """Complete model description.

    Attributes:
        terms: Random effects, in formula order.
        fixed: Categorical fixed-effect columns. The first is coded with one
            column per level (no intercept), the rest treatment coded.
        response: Count column.
        offset: Log-offset column.
    """
    terms: tuple[RandomEffectTerm, ...]
    fixed: tuple[str, ...] = ('age', 'strata')
    response: str = 'Y'
    offset: str = 'logoffset'

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(t.index for t in self.terms)

    def term(self, index: str) -> RandomEffectTerm:
        for t in self.terms:
            if t.index == index:
                return t
        raise KeyError(f"No term indexed by {index!r}; have {list(self.names)}")

    def __contains__(self, index: str) -> bool:
        return index in self.names

    @property
    def formula(self) -> str:
        """Human-readable formula. For display only."""
        pieces = ["-1", *self.fixed]
        pieces += [t.render() for t in self.terms]
        pieces.append(f"offset({self.offset})")
        return f"{self.response} ~ " + " + ".join(pieces)

    def __repr__(self) -> str:
        return f"ModelSpec(terms={list(self.names)}, fixed={list(self.fixed)})"
