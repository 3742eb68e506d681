"""
Latent Gaussian field of a smoothing model.

The latent vector stacks the fixed effects and one block per random-effect
term. Each block knows its structure matrix, the hyperparameters its
precision depends on, their priors, and its identifiability constraints.

    x = [beta, term_1, ..., term_k]
    eta = M x + offset,   M = [X, M_1, ..., M_k]

Block precisions are tau * R (plus a fixed tie penalty for yearly terms);
bym2 blocks use the Riebler parameterisation in (tau, phi).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

import numpy as np
import pandas as pd
import scipy.sparse as sp
from numpy.typing import NDArray
from scipy.special import expit

from pymortality.core.exceptions import ConfigurationError
from pymortality.smoothing._precision import (
    bym2_precision,
    generalized_variances,
    graph_components,
    icar_structure,
    iid_structure,
    kron_structure,
    pad,
    rw_structure,
    scale_structure,
    st_year_structure,
    yearly_tie,
)
from pymortality.smoothing._terms import GroupSpec, ModelSpec, RandomEffectTerm


FIXED_PRECISION = 0.001


@dataclass
class LatentBlock:
    """One random-effect term inside the latent vector.

    Attributes:
        term: The term this block represents.
        start: Offset of the block in the latent vector.
        structure: Structure matrix R (size x size).
        fixed: Precision added independently of the hyperparameters.
        hyper_names: Internal-scale hyperparameter names.
        log_prior: theta_block -> log prior density.
        constraints: Constraint rows in block coordinates, (k, size).
        targets: Constraint targets (k,).
    """
    term: RandomEffectTerm
    start: int
    structure: sp.csr_matrix
    fixed: sp.csr_matrix | None
    hyper_names: tuple[str, ...]
    log_prior: Callable[[NDArray], float]
    constraints: NDArray
    targets: NDArray

    @property
    def size(self) -> int:
        return self.term.size

    @property
    def stop(self) -> int:
        return self.start + self.size

    @property
    def is_bym2(self) -> bool:
        return self.term.model == 'bym2'

    def precision(self, theta: NDArray) -> sp.csr_matrix:
        tau = float(np.exp(theta[0]))
        if self.is_bym2:
            Q = bym2_precision(self.structure, tau, float(expit(theta[1])))
        else:
            Q = tau * self.structure
        if self.fixed is not None:
            Q = Q + self.fixed
        if self.term.diagonal:
            Q = Q + self.term.diagonal * sp.identity(self.size, format='csr')
        return sp.csr_matrix(Q)

    def initial_hyper(self) -> NDArray:
        return np.array([4.0, 0.0][:len(self.hyper_names)])

    def bounds(self) -> list[tuple[float, float]]:
        return [(-5.0, 15.0), (-7.0, 7.0)][:len(self.hyper_names)]


def _group_structure(group: GroupSpec) -> sp.csr_matrix:
    if group.model == 'iid':
        return iid_structure(group.n_levels)
    R = rw_structure(group.n_levels, int(group.model[-1]))
    return scale_structure(R) if group.scale_model else R


def _spatial(term: RandomEffectTerm) -> tuple[sp.csr_matrix, NDArray]:
    if term.graph is None:
        raise ConfigurationError(f"Term {term.index!r} ({term.model}) needs a graph")
    if term.graph.shape[0] != term.n_levels:
        raise ConfigurationError(
            f"Term {term.index!r}: graph has {term.graph.shape[0]} regions, "
            f"expected {term.n_levels}"
        )
    components = graph_components(term.graph)
    R = icar_structure(term.graph)
    if term.scale_model:
        R = scale_structure(R, components)
    return R, components


def _component_rows(components: NDArray) -> NDArray:
    rows = [
        (components == c).astype(np.float64)
        for c in np.unique(components)
        if np.sum(components == c) > 1
    ]
    return np.array(rows).reshape(len(rows), len(components))


def build_block(term: RandomEffectTerm, start: int) -> LatentBlock:
    """Structure, priors and constraints of one term."""
    model = term.model
    fixed = None
    rows = np.zeros((0, term.size))
    hyper_names = (f"log precision for {term.index}",)

    def prec_prior(theta):
        return term.prior.log_density(float(theta[0]))

    log_prior = prec_prior

    if model == 'iid':
        R = iid_structure(term.n_levels)
        if term.group is not None:
            R = kron_structure(R, _group_structure(term.group))
    elif model in ('rw1', 'rw2'):
        R = rw_structure(term.n_levels, int(model[-1]))
        if term.scale_model:
            R = scale_structure(R)
        if term.constr:
            rows = np.ones((1, term.size))
    elif model == 'besag':
        R, components = _spatial(term)
        if term.group is not None:
            R = kron_structure(R, _group_structure(term.group))
        elif term.constr:
            rows = _component_rows(components)
    elif model == 'bym2':
        R, components = _spatial(term)
        if term.mixing_prior is None:
            raise ConfigurationError(f"bym2 term {term.index!r} needs a mixing prior")
        gamma = generalized_variances(R)
        mixing = term.mixing_prior
        hyper_names = hyper_names + (f"logit phi for {term.index}",)

        def log_prior(theta):
            return prec_prior(theta) + mixing.log_density(float(theta[1]), gamma)

        if term.constr:
            u_rows = _component_rows(components)
            rows = np.hstack([np.zeros_like(u_rows), u_rows])
    elif model in ('rw_yearly', 'iid_yearly'):
        n, m = term.n_years, term.period_length
        if model == 'rw_yearly':
            base = scale_structure(rw_structure(n, term.order))
        else:
            base = iid_structure(n)
        R = pad(base, term.n_levels)
        fixed = yearly_tie(n, m)
    elif model == 'st_yearly':
        n, m = term.n_years, term.period_length
        S = term.n_levels // (n + n // m)
        if term.type_st in (3, 4):
            R_space, _ = _spatial(RandomEffectTerm(
                index=term.index, model='besag', n_levels=S, prior=term.prior,
                graph=term.graph, scale_model=True,
            ))
        else:
            R_space = iid_structure(S)
        R = pad(st_year_structure(n, S, term.order, term.type_st, R_space), term.n_levels)
        fixed = yearly_tie(n, m, S)
    else:
        raise ConfigurationError(f"Unknown term model {model!r} for {term.index!r}")

    if term.extra_constraint is not None:
        A = np.asarray(term.extra_constraint.A, dtype=np.float64)
        if A.shape[1] != term.size:
            raise ConfigurationError(
                f"Term {term.index!r}: extra constraint has {A.shape[1]} "
                f"columns, expected {term.size}"
            )
        rows = np.vstack([rows, A])
        targets = np.concatenate([np.zeros(rows.shape[0] - A.shape[0]),
                                  np.asarray(term.extra_constraint.e, dtype=np.float64)])
    else:
        targets = np.zeros(rows.shape[0])

    return LatentBlock(
        term=term,
        start=start,
        structure=sp.csr_matrix(R),
        fixed=fixed,
        hyper_names=hyper_names,
        log_prior=log_prior,
        constraints=rows,
        targets=targets,
    )


def fixed_design(data: pd.DataFrame, fixed: tuple[str, ...]) -> tuple[NDArray, list[str], dict[str, str]]:
    """Dummy-coded fixed effects.

    The first factor gets one column per level (no intercept); later
    factors are treatment coded against their first level.

    Returns:
        (X, column names, factor -> reference level)
    """
    columns, names, reference = [], [], {}
    for j, factor in enumerate(fixed):
        values = data[factor]
        if isinstance(values.dtype, pd.CategoricalDtype):
            levels = [str(c) for c in values.cat.categories]
        else:
            levels = sorted(pd.unique(values.dropna().astype(str)))
        labels = values.astype(str).to_numpy()
        if j > 0 and levels:
            reference[factor] = levels[0]
            levels = levels[1:]
        for level in levels:
            columns.append((labels == level).astype(np.float64))
            names.append(f"{factor}{level}")
    X = np.column_stack(columns) if columns else np.zeros((len(data), 0))
    return X, names, reference


def term_design(data: pd.DataFrame, block: LatentBlock) -> sp.csr_matrix:
    """Incidence matrix mapping data rows to the block's latent entries."""
    term = block.term
    idx = data[term.index].to_numpy(dtype=np.float64)
    if term.group is not None:
        g = data[term.group.index].to_numpy(dtype=np.float64)
        pos = (idx - 1.0) * term.group.n_levels + (g - 1.0)
    else:
        pos = idx - 1.0

    valid = np.isfinite(pos)
    pos_valid = pos[valid].astype(np.int64)
    if np.any(pos_valid < 0) or np.any(pos_valid >= term.size):
        raise ConfigurationError(
            f"Term {term.index!r}: index values outside 1..{term.n_levels}"
        )
    rows = np.flatnonzero(valid)
    return sp.csr_matrix(
        (np.ones(len(rows)), (rows, pos_valid)),
        shape=(len(data), term.size),
    )


@dataclass
class LatentModel:
    """Latent field, design and constraints of one problem."""
    X: NDArray
    fixed_names: list[str]
    reference_levels: dict[str, str]
    blocks: list[LatentBlock]
    M: sp.csr_matrix
    A: sp.csr_matrix
    e: NDArray
    hyper_names: list[str] = field(default_factory=list)

    @property
    def dim(self) -> int:
        return self.M.shape[1]

    @property
    def p(self) -> int:
        return self.X.shape[1]

    def hyper_slices(self) -> list[slice]:
        out, k = [], 0
        for b in self.blocks:
            out.append(slice(k, k + len(b.hyper_names)))
            k += len(b.hyper_names)
        return out

    def prior_precision(self, theta: NDArray) -> sp.csr_matrix:
        """Block-diagonal latent precision for block hyperparameters theta."""
        parts = [FIXED_PRECISION * sp.identity(self.p, format='csr')]
        for b, sl in zip(self.blocks, self.hyper_slices()):
            parts.append(b.precision(theta[sl]))
        return sp.block_diag(parts, format='csr')

    def log_prior(self, theta: NDArray) -> float:
        return float(sum(
            b.log_prior(theta[sl]) for b, sl in zip(self.blocks, self.hyper_slices())
        ))


def build_latent(model: ModelSpec, data: pd.DataFrame) -> LatentModel:
    """Assemble the latent model of a problem."""
    X, names, reference = fixed_design(data, model.fixed)

    blocks, start = [], X.shape[1]
    for term in model.terms:
        block = build_block(term, start)
        blocks.append(block)
        start = block.stop
    dim = start

    M = sp.hstack(
        [sp.csr_matrix(X)] + [term_design(data, b) for b in blocks],
        format='csr',
    )

    rows, targets = [], []
    for b in blocks:
        if b.constraints.shape[0] == 0:
            continue
        full = sp.lil_matrix((b.constraints.shape[0], dim))
        full[:, b.start:b.stop] = b.constraints
        rows.append(full.tocsr())
        targets.append(b.targets)
    if rows:
        A = sp.vstack(rows, format='csr')
        e = np.concatenate(targets)
    else:
        A = sp.csr_matrix((0, dim))
        e = np.zeros(0)

    hyper_names = [name for b in blocks for name in b.hyper_names]
    return LatentModel(
        X=X,
        fixed_names=names,
        reference_levels=reference,
        blocks=blocks,
        M=M,
        A=A,
        e=e,
        hyper_names=hyper_names,
    )
