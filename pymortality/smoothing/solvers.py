"""
Public API for space-time smoothing.

    fit_smoothing(data, ...) → SmoothingSolution

Validates inputs, builds index tables, augments the data with prediction
rows, assembles the model, merges the bias-adjustment offset, hands the
problem to a backend and wraps the Result in a Solution.
"""

from __future__ import annotations

import warnings
from collections.abc import Sequence
from typing import Any, Literal

import numpy as np
import pandas as pd

from pymortality.core.compute.timing import Timer
from pymortality.core.exceptions import ConfigurationError
from pymortality.core.protocols import Backend
from pymortality.core.result import Result
from pymortality.core.validation import check_dataframe
from pymortality.smoothing._assemble import assemble_model, augment_data, index_data
from pymortality.smoothing._common import PosteriorSummary, SmoothingParams, SmoothingProblem
from pymortality.smoothing._index import build_index_tables
from pymortality.smoothing._priors import HyperParameters
from pymortality.smoothing._terms import ModelSpec
from pymortality.smoothing.backends.cpu import LaplaceBackend
from pymortality.smoothing.design import SmoothingDesign
from pymortality.smoothing.families import Family
from pymortality.smoothing.solution import SmoothingSolution


BackendChoice = Literal['auto', 'cpu', 'cpu_laplace']


def fit_smoothing(
    data: pd.DataFrame,
    *,
    year_names: Sequence[str],
    family: Literal['betabinomial', 'beta-binomial', 'binomial'] | Family = 'betabinomial',
    age_groups: Sequence[str] = ("0", "1-11", "12-23", "24-35", "36-47", "48-59"),
    age_n: Sequence[int] = (1, 11, 12, 12, 12, 12),
    adjacency: pd.DataFrame | None = None,
    bias_adjust: pd.DataFrame | None = None,
    model: ModelSpec | None = None,
    rw: int = 2,
    is_yearly: bool = True,
    year_range: Sequence[int] = (1980, 2014),
    m: int = 5,
    type_st: int = 1,
    hyper: Literal['pc', 'gamma'] = 'pc',
    pc_u: float = 1.0,
    pc_alpha: float = 0.01,
    pc_u_phi: float = 0.5,
    pc_alpha_phi: float = 2.0 / 3.0,
    a_iid: float | None = None,
    b_iid: float | None = None,
    a_rw: float | None = None,
    b_rw: float | None = None,
    a_icar: float | None = None,
    b_icar: float | None = None,
    options: dict[str, Any] | None = None,
    verbose: bool = False,
    backend: BackendChoice | Backend = 'auto',
) -> SmoothingSolution:
    """
    Fit a cluster-level space-time smoothing model to mortality counts.

    Every model has fixed effects for age band and stratum (no intercept),
    an offset log(ratio) from the bias adjustment, temporal random effects,
    and, with an adjacency, spatial and space-time effects. A binomial
    family adds an observation-level nugget.

    Args:
        data: Count table with columns cluster, years, region, strata, age,
            total, Y and optionally survey.
        year_names: Period labels used in ``years``.
        family: 'betabinomial' or 'binomial', or a Family instance.
        age_groups: Age-band labels in increasing order.
        age_n: Months in each age band.
        adjacency: Square DataFrame with region names on both axes. None
            fits a national model on rows with region "All".
        bias_adjust: Table with a ``ratio`` column plus key columns shared
            with the data (e.g. years, or years and region).
        model: Ready-made ModelSpec; replaces automatic assembly.
        rw: Random-walk order, 1 or 2.
        is_yearly: Model single years jointly with periods.
        year_range: First and last single year (inclusive).
        m: Years per period.
        type_st: Space-time interaction type, 1 to 4.
        hyper: 'pc' or 'gamma' hyperpriors.
        pc_u, pc_alpha: PC prior on precisions, P(sd > u) = alpha.
        pc_u_phi, pc_alpha_phi: PC prior on the BYM2 mixing parameter.
        a_iid, b_iid, a_rw, b_rw, a_icar, b_icar: Gamma (shape, rate)
            pairs; unset values follow ``wakefield_gamma()``.
        options: Backend options, passed through unchanged.
        verbose: Ask the backend to record progress.
        backend: 'auto', 'cpu', 'cpu_laplace' or a Backend instance.

    Returns:
        SmoothingSolution.

    Raises:
        ConfigurationError: On invalid options, a malformed adjacency or
            bias table.
        DataShapeError: On missing columns, unknown labels or no rows.
        SolverFailure: If the backend fails; propagated unchanged.
    """
    timer = Timer()
    timer.start()

    with timer.section('validate'):
        design = SmoothingDesign.validate(
            data,
            year_names=year_names,
            adjacency=adjacency,
            family=family,
            age_groups=age_groups,
            age_n=age_n,
            rw=rw,
            is_yearly=is_yearly,
            year_range=year_range,
            m=m,
            type_st=type_st,
        )
        hyper_params = HyperParameters.resolve(
            hyper,
            pc_u=pc_u, pc_alpha=pc_alpha,
            pc_u_phi=pc_u_phi, pc_alpha_phi=pc_alpha_phi,
            a_iid=a_iid, b_iid=b_iid, a_rw=a_rw, b_rw=b_rw,
            a_icar=a_icar, b_icar=b_icar,
        )
        if bias_adjust is not None:
            _check_bias_table(bias_adjust, design.data)
        backend_impl = _get_backend(backend)

    with timer.section('index'):
        tables = build_index_tables(
            design.region_names,
            design.time_labels,
            design.survey_labels,
            n_years=design.n_years,
        )
        indexed = index_data(design, tables)

    with timer.section('augment'):
        augmented = augment_data(indexed, tables)
        augmented = apply_bias_adjustment(augmented, bias_adjust)
        augmented['age'] = pd.Categorical(augmented['age'].astype(str), categories=design.age_groups)
        strata_levels = sorted(pd.unique(augmented['strata'].astype(str)))
        augmented['strata'] = pd.Categorical(augmented['strata'].astype(str), categories=strata_levels)

    with timer.section('assemble'):
        if model is None:
            model = assemble_model(design, tables, hyper_params, n_rows=len(augmented))

    problem = SmoothingProblem(
        model=model,
        data=augmented,
        family=design.family,
        options=dict(options or {}),
        verbose=verbose,
    )

    with timer.section('solve'):
        fit = backend_impl.solve(problem)

    with timer.section('package'):
        reference, reference_warning = _reference_stratum(fit.params, strata_levels)
        params = SmoothingParams(
            model=model,
            fit=fit,
            family=design.family.name,
            adjacency=design.adjacency,
            data=augmented,
            tables=tables,
            hyper=hyper_params,
            reference_stratum=reference,
            is_yearly=design.is_yearly,
            age_groups=design.age_groups,
            age_n=design.age_n,
            time=np.arange(tables.N),
            area=np.arange(tables.S),
        )

    timer.stop()

    warn_list = list(fit.warnings)
    if reference_warning is not None:
        warn_list.append(reference_warning)

    result = Result(
        params=params,
        info={
            'method': 'space_time_smoothing',
            'family': design.family.name,
            'hyper': hyper_params.family,
            'is_yearly': design.is_yearly,
            'national': design.national,
            'type_st': design.type_st,
            'rw': design.rw,
            'n_obs': design.n,
            'n_augmented': len(augmented) - design.n,
            'backend_info': fit.info,
        },
        timing=timer.result(),
        backend_name=fit.backend_name,
        warnings=tuple(warn_list),
    )
    return SmoothingSolution(_result=result)


def _get_backend(choice):
    """
    Select and instantiate the backend.

    Raises:
        ConfigurationError: If the choice is not a known name and does not
            satisfy the Backend protocol
    """
    if isinstance(choice, str):
        if choice in ('auto', 'cpu', 'cpu_laplace'):
            return LaplaceBackend()
        raise ConfigurationError(f"Unknown backend: {choice!r}")
    if isinstance(choice, Backend):
        return choice
    raise ConfigurationError(
        f"backend must be a name or provide 'name' and 'solve', "
        f"got {type(choice).__name__}"
    )


def _check_bias_table(bias_adjust, data: pd.DataFrame) -> None:
    bias_adjust = check_dataframe(bias_adjust, 'bias_adjust')
    if 'ratio' not in bias_adjust.columns:
        raise ConfigurationError(
            "bias_adjust argument is misspecified. It requires the "
            "following column: ratio"
        )
    keys = [c for c in bias_adjust.columns if c != 'ratio' and c in data.columns]
    if not keys:
        raise ConfigurationError(
            f"bias_adjust shares no key column with the data; columns are "
            f"{list(bias_adjust.columns)}"
        )
    if bias_adjust.duplicated(keys).any():
        raise ConfigurationError(
            f"bias_adjust has duplicated rows for keys {keys}"
        )


def apply_bias_adjustment(data: pd.DataFrame, bias_adjust: pd.DataFrame | None) -> pd.DataFrame:
    """Add ``ratio`` and ``logoffset`` columns.

    The bias table is left-joined on the key columns it shares with the
    data, keeping every data row in order. Unmatched rows get ratio 1.
    Key columns are compared as text.
    """
    out = data.copy()
    if bias_adjust is None:
        out['ratio'] = 1.0
        out['logoffset'] = 0.0
        return out

    keys = [c for c in bias_adjust.columns if c != 'ratio' and c in out.columns]
    table = bias_adjust[keys + ['ratio']].copy()
    left = out[keys].copy()
    for k in keys:
        table[k] = table[k].astype(str)
        left[k] = left[k].astype(str)

    merged = left.merge(table, on=keys, how='left')
    ratio = merged['ratio'].to_numpy(dtype=np.float64)
    ratio = np.where(np.isnan(ratio), 1.0, ratio)
    if np.any(ratio <= 0):
        raise ConfigurationError("bias_adjust: ratio must be positive")

    out['ratio'] = ratio
    out['logoffset'] = np.log(ratio)
    return out


def _reference_stratum(
    posterior: PosteriorSummary,
    strata_levels: Sequence[str],
) -> tuple[str | None, str | None]:
    """Stratum level absorbed into the baseline.

    Taken from the backend's reported reference levels when present;
    otherwise the one stratum level with no ``strata<level>`` fixed effect.
    """
    reported = (posterior.reference_levels or {}).get('strata')
    if reported is not None:
        return str(reported), None

    named = {
        str(name)[len('strata'):]
        for name in posterior.fixed.index
        if str(name).startswith('strata')
    }
    remaining = [s for s in strata_levels if s not in named]
    if len(remaining) == 1:
        return remaining[0], None

    message = (
        f"Could not identify the reference stratum: {len(remaining)} "
        f"levels have no fixed effect ({remaining[:5]})"
    )
    warnings.warn(message, RuntimeWarning, stacklevel=3)
    return None, message
