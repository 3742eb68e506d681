"""
Structure matrices for Gaussian Markov random field effects.

A random effect with precision tau has prior density proportional to
exp(-tau/2 x' R x) for a structure matrix R built here. Intrinsic models
(random walks, ICAR) have singular R; identifiability comes from linear
constraints applied by the backend.

Scaling (``scale_model``) multiplies R so that the geometric mean of the
marginal variances of its generalised inverse is 1, making precisions
comparable across graphs and time lengths. Each connected component of
a graph is scaled separately; isolated regions get unit precision.

References:
    Rue, H. & Held, L. (2005). Gaussian Markov Random Fields: Theory and
        Applications. Chapman & Hall/CRC.
    Sørbye, S. H. & Rue, H. (2014). Scaling intrinsic Gaussian Markov
        random field priors in spatial modelling. Spatial Statistics, 8.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import scipy.linalg as sla
import scipy.sparse as sp
from numpy.typing import NDArray
from scipy.sparse.csgraph import connected_components


TIE_PRECISION = float(np.exp(10))


def _as_weights(adjacency: pd.DataFrame | NDArray) -> NDArray:
    W = np.asarray(adjacency, dtype=np.float64)
    W = ((W > 0) | (W.T > 0)).astype(np.float64)
    np.fill_diagonal(W, 0.0)
    return W


def iid_structure(n: int) -> sp.csr_matrix:
    return sp.identity(n, format='csr')


def rw_structure(n: int, order: int) -> sp.csr_matrix:
    """R = D' D with D the order-th difference operator (n - order, n)."""
    D = np.diff(np.eye(n), n=order, axis=0)
    return sp.csr_matrix(D.T @ D)


def icar_structure(adjacency: pd.DataFrame | NDArray) -> sp.csr_matrix:
    """Graph Laplacian: number of neighbours on the diagonal, -1 per edge."""
    W = _as_weights(adjacency)
    return sp.csr_matrix(np.diag(W.sum(axis=1)) - W)


def graph_components(adjacency: pd.DataFrame | NDArray) -> NDArray:
    """Connected-component label of each region."""
    _, labels = connected_components(sp.csr_matrix(_as_weights(adjacency)),
                                     directed=False)
    return labels


def _geometric_mean_variance(R: NDArray) -> float:
    return float(np.exp(np.mean(np.log(np.diag(sla.pinvh(R))))))


def scale_structure(R: sp.spmatrix, components: NDArray | None = None) -> sp.csr_matrix:
    """Scale R to unit geometric-mean generalised variance.

    Args:
        R: Structure matrix.
        components: Connected-component label per node; None treats the
            whole matrix as one component.
    """
    dense = R.toarray()
    if components is None:
        components = np.zeros(dense.shape[0], dtype=np.int64)

    scaled = np.zeros_like(dense)
    for c in np.unique(components):
        idx = np.flatnonzero(components == c)
        block = dense[np.ix_(idx, idx)]
        if len(idx) == 1:
            scaled[idx[0], idx[0]] = 1.0
            continue
        scaled[np.ix_(idx, idx)] = block * _geometric_mean_variance(block)
    return sp.csr_matrix(scaled)


def generalized_variances(R: sp.spmatrix, tol: float = 1e-8) -> NDArray:
    """Reciprocals of the non-zero eigenvalues of R."""
    eig = np.linalg.eigvalsh(R.toarray())
    return 1.0 / eig[eig > tol * max(eig.max(), 1.0)]


def bym2_precision(R: sp.spmatrix, tau: float, phi: float) -> sp.csr_matrix:
    """Joint precision of the BYM2 latent vector [b, u].

    b = (sqrt(1 - phi) v + sqrt(phi) u) / sqrt(tau), v ~ N(0, I) and u the
    scaled ICAR field with structure R.
    """
    S = R.shape[0]
    I = sp.identity(S, format='csr')
    off = -np.sqrt(phi * tau) / (1.0 - phi) * I
    return sp.bmat([
        [tau / (1.0 - phi) * I, off],
        [off, R + phi / (1.0 - phi) * I],
    ], format='csr')


def kron_structure(R_main: sp.spmatrix, R_group: sp.spmatrix) -> sp.csr_matrix:
    """Structure of a grouped term, main-major with the group fastest."""
    return sp.kron(R_main, R_group, format='csr')


def pad(R: sp.spmatrix, size: int) -> sp.csr_matrix:
    """Embed R in the top-left corner of a size x size zero matrix."""
    k = R.shape[0]
    if k == size:
        return sp.csr_matrix(R)
    return sp.block_diag([R, sp.csr_matrix((size - k, size - k))], format='csr')


def yearly_tie(n: int, m: int, S: int = 1, tau: float = TIE_PRECISION) -> sp.csr_matrix:
    """Penalty tying every period value to the mean of its member years.

    Layout: n * S year cells (region-major), then nn * S period cells
    (region-major), nn = n // m. Period k covers years k*m .. k*m + m - 1.
    Returns tau * T'T with T the (S * nn) x ((n + nn) * S) tie operator.
    """
    nn = n // m
    size = (n + nn) * S
    T = sp.lil_matrix((S * nn, size))
    for i in range(S):
        for k in range(nn):
            row = i * nn + k
            T[row, n * S + i * nn + k] = 1.0
            for j in range(m):
                T[row, i * n + k * m + j] = -1.0 / m
    T = T.tocsr()
    return tau * (T.T @ T)


def st_year_structure(
    n: int,
    S: int,
    order: int,
    type_st: int,
    R_space: sp.spmatrix,
) -> sp.csr_matrix:
    """Structure of the single-year cells of a yearly space-time field.

    | type | structure |
    |------|-----------|
    | 1    | I |
    | 2    | I_S (x) R_rw |
    | 3    | R_space (x) I_n |
    | 4    | R_space (x) R_rw |
    """
    R_time = scale_structure(rw_structure(n, order))
    if type_st == 1:
        return iid_structure(n * S)
    if type_st == 2:
        return kron_structure(iid_structure(S), R_time)
    if type_st == 3:
        return kron_structure(R_space, iid_structure(n))
    return kron_structure(R_space, R_time)
