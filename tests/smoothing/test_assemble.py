"""
Tests for model assembly.

Validates:
    - Term composition for all sixteen configurations
      (period/yearly x national/subnational x PC/Gamma x binomial/beta-binomial)
    - Priors, constraints and layouts attached to each term
    - Period and yearly interaction types
    - Every assembled model builds a consistent latent field
"""

import itertools

import numpy as np
import pytest

from pymortality.smoothing import (
    GammaPrior,
    ModelSpec,
    PCPrior,
    RandomEffectTerm,
    fit_smoothing,
    wakefield_gamma,
)
from pymortality.smoothing._latent import build_latent


PERIODS = ('00-04', '05-09', '10-14')
AGES = ('0', '1-11')
AGE_N = (1, 11)
S, N_PERIOD, N_YEARS = 4, 3, 15

CONFIGS = list(itertools.product(
    [False, True],                  # is_yearly
    [True, False],                  # national
    ['pc', 'gamma'],                # hyper
    ['binomial', 'betabinomial'],   # family
))


def _problem(backend, counts, national_counts, adjacency, *, is_yearly, national, **kwargs):
    data = national_counts if national else counts
    fit_smoothing(
        data,
        year_names=PERIODS,
        age_groups=AGES,
        age_n=AGE_N,
        adjacency=None if national else adjacency,
        is_yearly=is_yearly,
        year_range=(2000, 2014),
        backend=backend,
        **kwargs,
    )
    return backend.problems[-1]


def _expected_terms(is_yearly, national, hyper, family):
    terms = [
        ('time_struct', 'rw_yearly' if is_yearly else 'rw2'),
        ('time_unstruct', 'iid_yearly' if is_yearly else 'iid'),
    ]
    if not national:
        if hyper == 'pc':
            terms.append(('region_struct', 'bym2'))
        else:
            terms += [('region_struct', 'besag'), ('region_unstruct', 'iid')]
        terms.append(('time_area', 'st_yearly' if is_yearly else 'iid'))
    if family == 'binomial':
        terms.append(('nugget_id', 'iid'))
    return terms


# ═══════════════════════════════════════════════════════════════════════
# Sixteen configurations
# ═══════════════════════════════════════════════════════════════════════


class TestConfigurations:

    @pytest.mark.parametrize("is_yearly, national, hyper, family", CONFIGS)
    def test_terms(self, recording_backend, counts, national_counts, adjacency,
                   is_yearly, national, hyper, family):
        problem = _problem(
            recording_backend, counts, national_counts, adjacency,
            is_yearly=is_yearly, national=national, hyper=hyper, family=family,
        )
        model = problem.model
        assert [(t.index, t.model) for t in model.terms] == _expected_terms(
            is_yearly, national, hyper, family,
        )
        assert model.fixed == ('age', 'strata')
        assert model.offset == 'logoffset'
        assert model.formula.startswith('Y ~ -1 + age + strata')
        assert problem.family.name == family

    @pytest.mark.parametrize("is_yearly, national, hyper, family", CONFIGS)
    def test_prior_family(self, recording_backend, counts, national_counts, adjacency,
                          is_yearly, national, hyper, family):
        problem = _problem(
            recording_backend, counts, national_counts, adjacency,
            is_yearly=is_yearly, national=national, hyper=hyper, family=family,
        )
        expected = PCPrior if hyper == 'pc' else GammaPrior
        for term in problem.model.terms:
            assert isinstance(term.prior, expected)
        bym2 = [t for t in problem.model.terms if t.model == 'bym2']
        for term in bym2:
            assert term.mixing_prior is not None

    @pytest.mark.parametrize("is_yearly, national, hyper, family", CONFIGS)
    def test_latent_field_builds(self, recording_backend, counts, national_counts, adjacency,
                                 is_yearly, national, hyper, family):
        problem = _problem(
            recording_backend, counts, national_counts, adjacency,
            is_yearly=is_yearly, national=national, hyper=hyper, family=family,
        )
        latent = build_latent(problem.model, problem.data)
        sizes = sum(t.size for t in problem.model.terms)

        assert latent.M.shape == (len(problem.data), latent.p + sizes)
        assert latent.A.shape[1] == latent.dim
        # one indicator per row and term, plus fixed-effect dummies
        assert np.all(latent.M[:, latent.p:].sum(axis=1) == len(problem.model.terms))

        theta = np.concatenate([b.initial_hyper() for b in latent.blocks])
        Q = latent.prior_precision(theta)
        assert Q.shape == (latent.dim, latent.dim)
        assert np.isfinite(latent.log_prior(theta))

    def test_nugget_levels(self, recording_backend, counts, national_counts, adjacency):
        problem = _problem(
            recording_backend, counts, national_counts, adjacency,
            is_yearly=False, national=False, family='binomial',
        )
        nugget = problem.model.term('nugget_id')
        assert nugget.n_levels == len(problem.data)


# ═══════════════════════════════════════════════════════════════════════
# Term details
# ═══════════════════════════════════════════════════════════════════════


class TestTemporalTerms:

    def test_period_subnational_scaled(self, recording_backend, counts, national_counts, adjacency):
        problem = _problem(recording_backend, counts, national_counts, adjacency,
                           is_yearly=False, national=False)
        term = problem.model.term('time_struct')
        assert term.scale_model
        assert term.constr
        assert term.extra_constraint.n_constraints == 1
        assert term.n_levels == N_PERIOD

    def test_period_national_unscaled(self, recording_backend, counts, national_counts, adjacency):
        problem = _problem(recording_backend, counts, national_counts, adjacency,
                           is_yearly=False, national=True)
        assert not problem.model.term('time_struct').scale_model

    def test_rw1_no_extra_constraint(self, recording_backend, counts, national_counts, adjacency):
        problem = _problem(recording_backend, counts, national_counts, adjacency,
                           is_yearly=False, national=True, rw=1)
        term = problem.model.term('time_struct')
        assert term.model == 'rw1'
        assert term.extra_constraint is None

    def test_yearly(self, recording_backend, counts, national_counts, adjacency):
        problem = _problem(recording_backend, counts, national_counts, adjacency,
                           is_yearly=True, national=True)
        term = problem.model.term('time_struct')
        assert term.n_levels == N_YEARS + N_PERIOD
        assert term.diagonal == 1e-6
        assert term.order == 2
        assert term.n_years == N_YEARS
        assert term.period_length == 5
        A = term.extra_constraint.A
        assert A.shape == (1, N_YEARS + N_PERIOD)
        assert A[0, :N_YEARS].sum() == N_YEARS
        assert A[0, N_YEARS:].sum() == 0


class TestSpatialTerms:

    def test_bym2(self, recording_backend, counts, national_counts, adjacency):
        problem = _problem(recording_backend, counts, national_counts, adjacency,
                           is_yearly=False, national=False, pc_u_phi=0.4)
        term = problem.model.term('region_struct')
        assert term.size == 2 * S
        assert term.scale_model and term.constr
        assert term.mixing_prior.u == 0.4
        assert list(term.graph.columns) == ['A', 'B', 'C', 'D']

    def test_gamma_besag_priors(self, recording_backend, counts, national_counts, adjacency):
        problem = _problem(recording_backend, counts, national_counts, adjacency,
                           is_yearly=False, national=False, hyper='gamma',
                           a_icar=2.0, b_icar=0.1)
        assert problem.model.term('region_struct').prior == GammaPrior(2.0, 0.1)
        default = wakefield_gamma()
        assert problem.model.term('region_unstruct').prior.rate == pytest.approx(default.rate)


class TestInteraction:

    @pytest.mark.parametrize("type_st, index, model, group_model, rows", [
        (1, 'time_area', 'iid', None, 0),
        (2, 'region_int', 'iid', 'rw2', S),
        (3, 'region_int', 'besag', 'iid', N_PERIOD),
        (4, 'region_int', 'besag', 'rw2', S + N_PERIOD),
    ])
    def test_period_types(self, recording_backend, counts, national_counts, adjacency,
                          type_st, index, model, group_model, rows):
        problem = _problem(recording_backend, counts, national_counts, adjacency,
                           is_yearly=False, national=False, type_st=type_st)
        term = problem.model.terms[-1]
        assert (term.index, term.model) == (index, model)
        assert term.size == S * N_PERIOD
        if group_model is None:
            assert term.group is None
            assert term.extra_constraint is None
        else:
            assert term.group.index == 'time_int'
            assert term.group.model == group_model
            assert term.group.n_levels == N_PERIOD
            assert term.extra_constraint.n_constraints == rows

    @pytest.mark.parametrize("hyper, type_st, group_model", [
        ('pc', 2, 'rw1'),
        ('pc', 4, 'rw1'),
        ('gamma', 2, 'rw2'),
        ('gamma', 4, 'rw2'),
        ('gamma', 3, 'iid'),
    ])
    def test_group_order_with_rw1(self, recording_backend, counts, national_counts, adjacency,
                                  hyper, type_st, group_model):
        problem = _problem(recording_backend, counts, national_counts, adjacency,
                           is_yearly=False, national=False, type_st=type_st,
                           hyper=hyper, rw=1)
        assert problem.model.term('time_struct').model == 'rw1'
        assert problem.model.term('region_int').group.model == group_model

    @pytest.mark.parametrize("type_st, rows", [(1, 0), (2, S), (3, N_YEARS), (4, S + N_YEARS)])
    def test_yearly_types(self, recording_backend, counts, national_counts, adjacency, type_st, rows):
        problem = _problem(recording_backend, counts, national_counts, adjacency,
                           is_yearly=True, national=False, type_st=type_st)
        term = problem.model.term('time_area')
        assert term.model == 'st_yearly'
        assert term.type_st == type_st
        assert term.n_levels == S * (N_YEARS + N_PERIOD)
        n_rows = 0 if term.extra_constraint is None else term.extra_constraint.n_constraints
        assert n_rows == rows

    @pytest.mark.parametrize("type_st", [2, 3, 4])
    def test_period_types_build(self, recording_backend, counts, national_counts, adjacency, type_st):
        problem = _problem(recording_backend, counts, national_counts, adjacency,
                           is_yearly=False, national=False, type_st=type_st)
        latent = build_latent(problem.model, problem.data)
        block = latent.blocks[-1]
        assert block.structure.shape == (S * N_PERIOD, S * N_PERIOD)


# ═══════════════════════════════════════════════════════════════════════
# ModelSpec
# ═══════════════════════════════════════════════════════════════════════


class TestModelSpec:

    def test_formula(self, recording_backend, counts, national_counts, adjacency):
        problem = _problem(recording_backend, counts, national_counts, adjacency,
                           is_yearly=False, national=False)
        formula = problem.model.formula
        assert formula.startswith("Y ~ -1 + age + strata")
        assert "f(region_struct, model='bym2'" in formula
        assert formula.endswith("offset(logoffset)")

    def test_lookup(self, recording_backend, counts, national_counts, adjacency):
        problem = _problem(recording_backend, counts, national_counts, adjacency,
                           is_yearly=False, national=True)
        assert 'time_struct' in problem.model
        assert 'region_struct' not in problem.model
        with pytest.raises(KeyError, match="region_struct"):
            problem.model.term('region_struct')

    def test_caller_model_replaces_assembly(self, recording_backend, counts, national_counts, adjacency):
        model = ModelSpec(terms=(
            RandomEffectTerm(index='time_unstruct', model='iid', n_levels=N_PERIOD, prior=PCPrior()),
        ))
        problem = _problem(recording_backend, counts, national_counts, adjacency,
                           is_yearly=False, national=True, model=model)
        assert problem.model is model
