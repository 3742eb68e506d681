"""
Input validation utilities for pymortality.

These validators follow the "fail fast, fail loud" principle. They raise
immediately with clear error messages rather than silently correcting
or making assumptions about user intent.

Design principles:
    - No silent type coercion
    - Clear, actionable error messages with actual values
    - Each function validates ONE thing
    - Parameter names included in all error messages
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

import numpy as np
import pandas as pd

from pymortality.core.exceptions import ConfigurationError, DataShapeError


def check_dataframe(data: Any, name: str) -> pd.DataFrame:
    """
    Verify input is a pandas DataFrame.

    Args:
        data: Input to validate
        name: Parameter name for error messages

    Returns:
        The DataFrame (not copied)

    Raises:
        DataShapeError: If input is not a DataFrame
    """
    if not isinstance(data, pd.DataFrame):
        raise DataShapeError(
            f"{name}: expected a pandas DataFrame, got {type(data).__name__}"
        )
    return data


def check_columns(data: pd.DataFrame, required: Iterable[str], name: str) -> None:
    """
    Verify a table carries every required column.

    Args:
        data: Table to check
        required: Column names that must be present
        name: Parameter name for error messages

    Raises:
        DataShapeError: If any column is missing
    """
    missing = tuple(c for c in required if c not in data.columns)
    if missing:
        raise DataShapeError(
            f"{name}: missing required column(s) {list(missing)}. "
            f"Available: {list(data.columns)}",
            missing=missing,
        )


def check_vocabulary(values: pd.Series, allowed: Sequence[str], name: str) -> None:
    """
    Verify every non-missing value belongs to a fixed vocabulary.

    Args:
        values: Labels to check
        allowed: Permitted labels
        name: Parameter name for error messages

    Raises:
        DataShapeError: If any label is outside the vocabulary
    """
    present = pd.unique(values.dropna().astype(str))
    unknown = tuple(sorted(set(present) - set(allowed)))
    if unknown:
        raise DataShapeError(
            f"{name}: values {list(unknown)} are not in the configured "
            f"vocabulary {list(allowed)}",
            missing=unknown,
        )


def check_nonempty(data: pd.DataFrame, name: str) -> None:
    """
    Verify a table has at least one row.

    Raises:
        DataShapeError: If the table is empty
    """
    if len(data) == 0:
        raise DataShapeError(f"{name}: no rows left after filtering")


def check_increasing(cuts: Sequence[float], name: str, min_length: int = 2) -> None:
    """
    Verify a cutoff sequence is strictly increasing and long enough.

    Args:
        cuts: Cutoff values
        name: Parameter name for error messages
        min_length: Minimum number of cutoffs

    Raises:
        ConfigurationError: If the sequence is too short or not increasing
    """
    arr = np.asarray(cuts, dtype=np.float64)
    if arr.ndim != 1 or arr.size < min_length:
        raise ConfigurationError(
            f"{name}: expected at least {min_length} cutoffs, got {arr.size}"
        )
    if np.any(np.diff(arr) <= 0):
        raise ConfigurationError(
            f"{name}: cutoffs must be strictly increasing, got {arr.tolist()}"
        )


def check_choice(value: Any, allowed: Sequence[Any], name: str) -> None:
    """
    Verify a configuration option takes one of the supported values.

    Raises:
        ConfigurationError: If value is not one of allowed
    """
    if value not in allowed:
        raise ConfigurationError(
            f"{name}: must be one of {list(allowed)}, got {value!r}"
        )


def check_adjacency(adjacency: Any, name: str = 'adjacency') -> pd.DataFrame:
    """
    Verify an adjacency matrix is square and labelled by region.

    Row and column labels must both be present and identical, in the same
    order. A bare numpy array carries no labels and is rejected.

    Args:
        adjacency: Candidate adjacency matrix
        name: Parameter name for error messages

    Returns:
        The adjacency as a float DataFrame with string labels

    Raises:
        ConfigurationError: If labels are missing or mismatched, the matrix
            is not square, or it contains negative or non-finite weights
    """
    if not isinstance(adjacency, pd.DataFrame):
        raise ConfigurationError(
            f"{name}: row and column names need to be specified as region "
            f"names; pass a pandas DataFrame, got {type(adjacency).__name__}"
        )
    if isinstance(adjacency.index, pd.RangeIndex):
        raise ConfigurationError(
            f"{name}: row names need to be specified as region names"
        )
    if isinstance(adjacency.columns, pd.RangeIndex):
        raise ConfigurationError(
            f"{name}: column names need to be specified as region names"
        )
    if adjacency.shape[0] != adjacency.shape[1]:
        raise ConfigurationError(
            f"{name}: must be square, got shape {adjacency.shape}"
        )

    rows = [str(r) for r in adjacency.index]
    cols = [str(c) for c in adjacency.columns]
    if rows != cols:
        mismatched = [(r, c) for r, c in zip(rows, cols) if r != c]
        raise ConfigurationError(
            f"{name}: row and column names need to be the same; "
            f"first mismatches (row, column): {mismatched[:5]}"
        )
    if len(set(rows)) != len(rows):
        raise ConfigurationError(f"{name}: region names must be unique")

    values = adjacency.to_numpy(dtype=np.float64)
    if not np.all(np.isfinite(values)) or np.any(values < 0):
        raise ConfigurationError(
            f"{name}: weights must be finite and non-negative"
        )

    return pd.DataFrame(values, index=rows, columns=cols)
