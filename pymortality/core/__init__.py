"""
Core infrastructure for pymortality.

Shared abstractions used by the births and smoothing subpackages.

Key components:
    protocols: Backend protocol for pluggable inference engines
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    compute.timing: Stage timing
"""

from pymortality.core.protocols import Backend
from pymortality.core.result import Result
from pymortality.core.exceptions import (
    PyMortalityError,
    ValidationError,
    ConfigurationError,
    DataShapeError,
    SolverFailure,
    NumericalError,
    NotPositiveDefiniteError,
    ConvergenceError,
)

__all__ = [
    # Protocols
    "Backend",
    # Result
    "Result",
    # Exceptions
    "PyMortalityError",
    "ValidationError",
    "ConfigurationError",
    "DataShapeError",
    "SolverFailure",
    "NumericalError",
    "NotPositiveDefiniteError",
    "ConvergenceError",
]
