"""
Identifiability constraints for temporal and space-time random effects.

Random walks and ICAR fields are improper: their precision matrices have
a null space (constants, and linear trends for RW2), so the effects are
only identified up to that direction. Sum-to-zero constraints pin it
down.

The space-time field is laid out as in ``IndexTables.time_area``: region
i, structured time t sits at column i * n_struct + t (0-based), and any
period columns of a yearly model follow all structured columns.
"""

from __future__ import annotations

import numpy as np

from pymortality.core.exceptions import ConfigurationError
from pymortality.smoothing._common import ConstraintSpec


def time_constraint(n: int, nn: int) -> ConstraintSpec:
    """Sum-to-zero over the n single years of a yearly model."""
    A = np.concatenate([np.ones(n), np.zeros(nn)]).reshape(1, n + nn)
    return ConstraintSpec(A=A, e=np.zeros(1))


def period_constraint(N: int, rw: int) -> ConstraintSpec | None:
    """Extra sum-to-zero row used with RW2 period models; None for RW1."""
    if rw != 2:
        return None
    return ConstraintSpec(A=np.ones((1, N)), e=np.zeros(1))


def st_constraints(
    n_struct: int,
    n_extra: int,
    S: int,
    type_st: int,
) -> ConstraintSpec | None:
    """Constraints on the region x time interaction field.

    | type | rows |
    |------|------|
    | 1    | none |
    | 2    | S: sum over each region's structured times |
    | 3    | n_struct: sum over regions at each structured time |
    | 4    | S + n_struct, type-2 block above type-3 block |

    Args:
        n_struct: Structured time units (n yearly, N period).
        n_extra: Period units appended by a yearly model (0 otherwise).
        S: Number of regions.
        type_st: Interaction type, 1 to 4.

    Returns:
        ConstraintSpec over (n_struct + n_extra) * S columns, or None for
        type 1.
    """
    if type_st not in (1, 2, 3, 4):
        raise ConfigurationError(f"type_st must be 1, 2, 3 or 4, got {type_st}")

    width = (n_struct + n_extra) * S
    blocks = []

    if type_st in (2, 4):
        A = np.zeros((S, width))
        for i in range(S):
            A[i, i * n_struct:(i + 1) * n_struct] = 1.0
        blocks.append(ConstraintSpec(A=A, e=np.zeros(S)))

    if type_st in (3, 4):
        A = np.zeros((n_struct, width))
        for t in range(n_struct):
            A[t, t:n_struct * S:n_struct] = 1.0
        blocks.append(ConstraintSpec(A=A, e=np.zeros(n_struct)))

    return ConstraintSpec.stack(*blocks)
