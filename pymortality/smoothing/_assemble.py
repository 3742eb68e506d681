"""
Model assembly for space-time smoothing.

Three pure steps turn a validated design into backend input:

    index_data      attach region/time/survey index columns to the rows
    augment_data    append one prediction row per (time, region)
    assemble_model  compose the random-effect terms for the configuration

Term composition follows four axes: period or yearly time, national or
subnational, PC or Gamma hyperpriors, binomial (with nugget) or
beta-binomial likelihood.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from pymortality.smoothing._common import IndexTables
from pymortality.smoothing._constraints import (
    period_constraint,
    st_constraints,
    time_constraint,
)
from pymortality.smoothing._priors import HyperParameters
from pymortality.smoothing._terms import GroupSpec, ModelSpec, RandomEffectTerm
from pymortality.smoothing.design import SmoothingDesign


YEARLY_DIAGONAL = 1e-6


def _lookup(frame: pd.DataFrame, table: pd.DataFrame, keys: list[str], column: str) -> np.ndarray:
    """Left-join ``column`` of an index table onto ``frame`` by ``keys``."""
    merged = frame[keys].merge(table[keys + [column]], on=keys, how='left')
    return merged[column].to_numpy()


def index_data(design: SmoothingDesign, tables: IndexTables) -> pd.DataFrame:
    """Observed rows with every index column a term may refer to."""
    out = design.data.copy()

    if tables.national:
        out['region_number'] = 0
    else:
        numbers = dict(zip(tables.region['region'], tables.region['region_number']))
        out['region_number'] = out['region'].map(numbers).astype(np.int64)
    out['region_struct'] = out['region_number']
    out['region_unstruct'] = out['region_number']
    out['region_int'] = out['region_number']

    times = dict(zip(tables.time['years'], tables.time['time_number']))
    out['time_struct'] = out['years'].map(times).astype(np.int64)
    out['time_unstruct'] = out['time_struct']
    out['time_int'] = out['time_struct']

    out['time_area'] = _lookup(out, tables.time_area, ['region_number', 'time_unstruct'], 'time_area')

    if design.survey_labels is not None:
        surveys = dict(zip(tables.survey['survey'], tables.survey['survey_number']))
        out['survey_number'] = out['survey'].astype(str).map(surveys)
        _attach_survey_indices(out, tables)

    out['nugget_id'] = np.arange(1, len(out) + 1)
    return out


def _attach_survey_indices(frame: pd.DataFrame, tables: IndexTables) -> None:
    keyed = frame.rename(columns={'survey': '_survey_label', 'survey_number': 'survey'})
    frame['survey_time'] = _lookup(keyed, tables.survey_time, ['time_unstruct', 'survey'], 'survey_time')
    frame['survey_area'] = _lookup(keyed, tables.survey_area, ['region_number', 'survey'], 'survey_area')
    frame['survey_time_area'] = _lookup(
        keyed, tables.survey_time_area,
        ['region_number', 'time_unstruct', 'survey'], 'survey_time_area',
    )


def augment_data(data: pd.DataFrame, tables: IndexTables) -> pd.DataFrame:
    """Append N x S prediction rows with one trial and a missing outcome.

    For every time index and every region (observed or not) one row is
    added, copied from the first observed row of that region (or of the
    whole table for unobserved regions) with the time indices, ``years``,
    ``time_area`` and survey indices reset, ``total = 1``, ``Y`` missing
    and a fresh ``nugget_id``. Missing outcomes leave the likelihood
    unchanged while every index the model predicts on gets a row.
    """
    data = data.assign(Y=data['Y'].astype(np.float64))
    first = data.drop_duplicates('region_number').set_index('region_number')
    templates = []
    for region, number in zip(tables.region['region'], tables.region['region_number']):
        if number in first.index:
            row = first.loc[[number]].reset_index()
        else:
            row = data.iloc[[0]].copy()
            row['region'] = region
            row['region_number'] = number
            for col in ('region_struct', 'region_unstruct', 'region_int'):
                row[col] = number
        templates.append(row)
    template = pd.concat(templates, ignore_index=True)[data.columns]

    blocks = []
    for t, label in zip(tables.time['time_number'], tables.time['years']):
        block = template.copy()
        block['time_struct'] = t
        block['time_unstruct'] = t
        block['time_int'] = t
        block['years'] = label
        blocks.append(block)
    extra = pd.concat(blocks, ignore_index=True)

    extra['time_area'] = _lookup(extra, tables.time_area, ['region_number', 'time_unstruct'], 'time_area')
    if 'survey_time' in extra.columns:
        _attach_survey_indices(extra, tables)
    extra['total'] = 1
    extra['Y'] = np.nan
    extra['nugget_id'] = np.arange(len(data) + 1, len(data) + len(extra) + 1)

    return pd.concat([data, extra], ignore_index=True)


def _time_terms(design: SmoothingDesign, tables: IndexTables, hyper: HyperParameters) -> list[RandomEffectTerm]:
    N, rw = tables.N, design.rw
    rw_prior = hyper.precision('rw')
    iid_prior = hyper.precision('iid')

    if design.is_yearly:
        n, m = design.n_years, design.period_length
        return [
            RandomEffectTerm(
                index='time_struct', model='rw_yearly', n_levels=N, prior=rw_prior,
                extra_constraint=time_constraint(n, N - n), diagonal=YEARLY_DIAGONAL,
                order=rw, n_years=n, period_length=m,
            ),
            RandomEffectTerm(
                index='time_unstruct', model='iid_yearly', n_levels=N, prior=iid_prior,
                n_years=n, period_length=m,
            ),
        ]

    return [
        RandomEffectTerm(
            index='time_struct', model=f'rw{rw}', n_levels=N, prior=rw_prior,
            constr=True, extra_constraint=period_constraint(N, rw),
            scale_model=not design.national,
        ),
        RandomEffectTerm(index='time_unstruct', model='iid', n_levels=N, prior=iid_prior),
    ]


def _space_terms(design: SmoothingDesign, tables: IndexTables, hyper: HyperParameters) -> list[RandomEffectTerm]:
    S = tables.S
    if hyper.family == 'pc':
        return [
            RandomEffectTerm(
                index='region_struct', model='bym2', n_levels=S,
                prior=hyper.precision('icar'), mixing_prior=hyper.mixing(),
                graph=design.adjacency, constr=True, scale_model=True,
            ),
        ]
    return [
        RandomEffectTerm(
            index='region_struct', model='besag', n_levels=S,
            prior=hyper.precision('icar'), graph=design.adjacency,
            constr=True, scale_model=True,
        ),
        RandomEffectTerm(index='region_unstruct', model='iid', n_levels=S, prior=hyper.precision('iid')),
    ]


def _interaction_term(design: SmoothingDesign, tables: IndexTables, hyper: HyperParameters) -> RandomEffectTerm:
    S, N, rw, type_st = tables.S, tables.N, design.rw, design.type_st
    prior = hyper.precision('iid')

    if design.is_yearly:
        n = design.n_years
        return RandomEffectTerm(
            index='time_area', model='st_yearly', n_levels=N * S, prior=prior,
            graph=design.adjacency, diagonal=YEARLY_DIAGONAL,
            extra_constraint=st_constraints(n, N - n, S, type_st),
            scale_model=True, order=rw, n_years=n,
            period_length=design.period_length, type_st=type_st,
        )

    constraint = st_constraints(N, 0, S, type_st)
    # Gamma-prior interactions always group with rw2
    group_rw = f'rw{rw}' if hyper.family == 'pc' else 'rw2'
    if type_st == 1:
        return RandomEffectTerm(index='time_area', model='iid', n_levels=N * S, prior=prior)
    if type_st == 2:
        return RandomEffectTerm(
            index='region_int', model='iid', n_levels=S, prior=prior,
            group=GroupSpec('time_int', group_rw, N, scale_model=True),
            extra_constraint=constraint,
        )
    group = GroupSpec('time_int', 'iid', N) if type_st == 3 else GroupSpec('time_int', group_rw, N, scale_model=True)
    return RandomEffectTerm(
        index='region_int', model='besag', n_levels=S, prior=prior,
        graph=design.adjacency, group=group, scale_model=True,
        extra_constraint=constraint,
    )


def assemble_model(
    design: SmoothingDesign,
    tables: IndexTables,
    hyper: HyperParameters,
    n_rows: int,
) -> ModelSpec:
    """Random-effect terms for the design's configuration.

    Args:
        design: Validated design.
        tables: Index tables of the fit.
        hyper: Hyperprior settings.
        n_rows: Rows of the augmented data (levels of the nugget).

    Returns:
        ModelSpec with fixed effects age + strata, no intercept and offset
        ``logoffset``.
    """
    terms = _time_terms(design, tables, hyper)
    if not design.national:
        terms += _space_terms(design, tables, hyper)
        terms.append(_interaction_term(design, tables, hyper))
    if design.family.name == 'binomial':
        terms.append(
            RandomEffectTerm(index='nugget_id', model='iid', n_levels=n_rows, prior=hyper.precision('iid'))
        )
    return ModelSpec(terms=tuple(terms))
